from __future__ import annotations

from decimal import Decimal
from enum import StrEnum
from typing import Annotated, Any, Literal

from hexbytes import HexBytes
from pydantic import BaseModel, ConfigDict, Field, model_validator

from berabundle.core.constants.base import ZERO_ADDRESS
from berabundle.core.utils.addresses import require_address
from berabundle.core.utils.units import parse_int_value, round_display


class SourceKind(StrEnum):
    VAULT = "Vault"
    FEE_STAKER = "FeeStaker"
    VALIDATOR_BOOST = "ValidatorBoost"


class BoostStatus(StrEnum):
    ACTIVE = "active"
    QUEUED = "queued"


# Only plain calls are ever batched; delegate-call is not supported.
OPERATION_CALL = 0


def normalize_hex_data(value: Any) -> str:
    if value is None:
        return "0x"
    if isinstance(value, (bytes, bytearray, HexBytes)):
        return "0x" + bytes(value).hex()
    text = str(value).strip()
    if text in ("", "0x", "0X"):
        return "0x"
    if not text.startswith(("0x", "0X")):
        raise ValueError(f"Call data must be 0x-prefixed hex: {value!r}")
    body = text[2:]
    if len(body) % 2:
        raise ValueError("Call data has an odd number of hex digits")
    try:
        bytes.fromhex(body)
    except ValueError as exc:
        raise ValueError(f"Call data is not valid hex: {value!r}") from exc
    return "0x" + body.lower()


class TokenInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str
    symbol: str
    decimals: int
    name: str | None = None


class RewardSource(BaseModel):
    address: str
    source_kind: SourceKind
    stake_token: str | None = None
    reward_token: str | None = None
    name: str | None = None
    protocol: str | None = None
    # Validator boosts: the validator's consensus pubkey (0x-hex bytes).
    validator_pubkey: str | None = None
    last_checked_at: float | None = None

    @model_validator(mode="after")
    def _validate_source(self) -> RewardSource:
        self.address = require_address(self.address, field="source address")
        if self.source_kind == SourceKind.VALIDATOR_BOOST and not self.validator_pubkey:
            raise ValueError("validator boost sources require validator_pubkey")
        return self

    @property
    def key(self) -> str:
        if self.validator_pubkey:
            return f"{self.address.lower()}:{self.validator_pubkey.lower()}"
        return self.address.lower()


class RewardRecord(BaseModel):
    id: str
    source_kind: SourceKind
    source_address: str
    reward_token: TokenInfo
    # Full source-contract precision; rounding happens only for display.
    earned_amount: str
    raw_earned: int
    price_usd: Decimal | None = None
    value_usd: Decimal | None = None
    name: str | None = None
    protocol: str | None = None

    # Vaults / fee staker
    stake_token: TokenInfo | None = None
    user_stake: str | None = None
    total_stake: str | None = None
    pool_share_percent: Decimal | None = None
    reward_rate: str | None = None
    reward_for_duration: str | None = None

    # Validator boosts
    validator_pubkey: str | None = None
    status: BoostStatus | None = None
    total_boost: str | None = None
    share_percent: Decimal | None = None

    @model_validator(mode="after")
    def _validate_positive(self) -> RewardRecord:
        if self.raw_earned <= 0 or Decimal(self.earned_amount) <= 0:
            raise ValueError("reward records require a strictly positive amount")
        return self

    @property
    def earned_display(self) -> Decimal:
        return round_display(self.earned_amount)

    @property
    def value_display(self) -> Decimal | None:
        if self.value_usd is None:
            return None
        return round_display(self.value_usd)


class BundleOperation(BaseModel):
    model_config = ConfigDict(frozen=True)

    to: str
    value: int = 0
    data: str = "0x"
    operation: Literal[0] = OPERATION_CALL

    @model_validator(mode="before")
    @classmethod
    def _coerce_fields(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        values = dict(values)
        values["to"] = require_address(values.get("to"), field="operation target")
        values["value"] = parse_int_value(values.get("value"))
        values["data"] = normalize_hex_data(values.get("data"))
        return values

    @property
    def data_bytes(self) -> bytes:
        return bytes.fromhex(self.data[2:])


class SafeTransaction(BaseModel):
    to: str
    value: int = 0
    data: str = "0x"
    operation: int = OPERATION_CALL
    safe_tx_gas: int = 0
    base_gas: int = 0
    gas_price: int = 0
    gas_token: str = ZERO_ADDRESS
    refund_receiver: str = ZERO_ADDRESS
    nonce: int

    @model_validator(mode="before")
    @classmethod
    def _coerce_fields(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        values = dict(values)
        values["to"] = require_address(values.get("to"), field="safe tx target")
        values["value"] = parse_int_value(values.get("value"))
        values["data"] = normalize_hex_data(values.get("data"))
        for key in ("gas_token", "refund_receiver"):
            if values.get(key):
                values[key] = require_address(values[key], field=key)
        return values

    @property
    def data_bytes(self) -> bytes:
        return bytes.fromhex(self.data[2:])

    def to_service_payload(self) -> dict[str, Any]:
        return {
            "to": self.to,
            "value": str(self.value),
            "data": self.data,
            "operation": self.operation,
            "safeTxGas": str(self.safe_tx_gas),
            "baseGas": str(self.base_gas),
            "gasPrice": str(self.gas_price),
            "gasToken": self.gas_token,
            "refundReceiver": self.refund_receiver,
            "nonce": self.nonce,
        }


class ProposalResult(BaseModel):
    success: bool
    safe_tx_hash: str | None = None
    transaction_url: str | None = None
    error: str | None = None
    # True when the service's expected hash was adopted after a mismatch.
    hash_mismatch_recovered: bool = False

    @property
    def message(self) -> str:
        if self.success:
            return f"Transaction proposed: {self.safe_tx_hash}"
        return self.error or "proposal failed"


class EoaBundle(BaseModel):
    format: Literal["eoa"] = "eoa"
    operations: list[BundleOperation]


class SafeBundle(BaseModel):
    format: Literal["safe"] = "safe"
    operations: list[BundleOperation]
    safe_address: str | None = None


BundleFormat = EoaBundle | SafeBundle


class BundleEnvelope(BaseModel):
    bundle: Annotated[BundleFormat, Field(discriminator="format")]
