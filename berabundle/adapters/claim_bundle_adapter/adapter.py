from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from eth_utils import to_checksum_address
from loguru import logger
from web3 import Web3

from berabundle.core.adapters.BaseAdapter import (
    BaseAdapter,
    require_wallet,
    status_tuple,
)
from berabundle.core.adapters.models import (
    BoostStatus,
    BundleFormat,
    BundleOperation,
    EoaBundle,
    RewardRecord,
    SafeBundle,
    SourceKind,
)
from berabundle.core.constants.abis import (
    BGT_BOOST_ABI,
    BGT_STAKER_ABI,
    REWARD_VAULT_ABI,
)
from berabundle.core.constants.chains import CHAIN_ID_BERACHAIN, get_explorer_tx_url
from berabundle.core.utils.addresses import require_address
from berabundle.core.utils.keystore import KeyNotFoundError, KeyStore
from berabundle.core.utils.transaction import (
    SignCallback,
    make_keystore_sign_callback,
    send_transaction,
)

ClaimEncoder = Callable[[RewardRecord, str, str], BundleOperation | None]


# Offline instance: encoding calldata needs the ABI only, never a provider.
_ENCODER = Web3()


def _encode_call(address: str, abi: list[dict[str, Any]], fn_name: str, args: list) -> str:
    contract = _ENCODER.eth.contract(address=to_checksum_address(address), abi=abi)
    try:
        return contract.encode_abi(fn_name, args=args)
    except (ValueError, TypeError) as exc:
        raise ValueError(f"Failed to encode {fn_name}: {exc}") from exc


def encode_vault_claim(
    record: RewardRecord, account: str, recipient: str
) -> BundleOperation:
    return BundleOperation(
        to=record.source_address,
        data=_encode_call(
            record.source_address, REWARD_VAULT_ABI, "getReward", [account, recipient]
        ),
    )


def encode_fee_staker_claim(
    record: RewardRecord, account: str, recipient: str
) -> BundleOperation:
    return BundleOperation(
        to=record.source_address,
        data=_encode_call(record.source_address, BGT_STAKER_ABI, "getReward", []),
    )


def encode_boost_activation(
    record: RewardRecord, account: str, recipient: str
) -> BundleOperation | None:
    if record.status != BoostStatus.QUEUED:
        logger.warning(
            f"Boost for validator {record.validator_pubkey} is already active; "
            "nothing to claim"
        )
        return None
    pubkey = bytes.fromhex(str(record.validator_pubkey).removeprefix("0x"))
    return BundleOperation(
        to=record.source_address,
        data=_encode_call(
            record.source_address, BGT_BOOST_ABI, "activateBoost", [account, pubkey]
        ),
    )


CLAIM_ENCODERS: dict[SourceKind, ClaimEncoder] = {
    SourceKind.VAULT: encode_vault_claim,
    SourceKind.FEE_STAKER: encode_fee_staker_claim,
    SourceKind.VALIDATOR_BOOST: encode_boost_activation,
}


def build_operations(
    records: Sequence[RewardRecord],
    *,
    account: str,
    recipient: str | None = None,
) -> list[BundleOperation]:
    """One claim call per record, in the order given."""
    account = require_address(account, field="account")
    recipient = require_address(recipient or account, field="recipient")
    operations: list[BundleOperation] = []
    for record in records:
        op = CLAIM_ENCODERS[record.source_kind](record, account, recipient)
        if op is not None:
            operations.append(op)
    return operations


def build_bundle(
    operations: Sequence[BundleOperation],
    *,
    safe_address: str | None = None,
) -> BundleFormat:
    if not operations:
        raise ValueError("bundle has no operations")
    if safe_address:
        return SafeBundle(
            operations=list(operations),
            safe_address=require_address(safe_address, field="safe address"),
        )
    return EoaBundle(operations=list(operations))


def _operation_from_tx(tx: Any) -> BundleOperation:
    if isinstance(tx, BundleOperation):
        return tx
    if not isinstance(tx, dict):
        raise ValueError(f"Unsupported transaction entry: {tx!r}")
    return BundleOperation(to=tx.get("to"), value=tx.get("value"), data=tx.get("data"))


def parse_bundle(raw: Any) -> BundleFormat:
    """Resolve every accepted bundle shape into one tagged value.

    Accepted: a bare list of txs, ``{"bundleData": [...]}`` (EOA),
    ``{"bundleData": {"transactions": [...]}}`` and ``{"transactions": [...]}``
    (Safe), or an already-tagged ``{"format": ...}`` document.
    """
    if isinstance(raw, (EoaBundle, SafeBundle)):
        return raw
    if isinstance(raw, list):
        return EoaBundle(operations=[_operation_from_tx(t) for t in raw])
    if not isinstance(raw, dict):
        raise ValueError(f"Unsupported bundle type: {type(raw).__name__}")

    fmt = raw.get("format")
    if fmt == "eoa":
        return EoaBundle.model_validate(raw)
    if fmt == "safe":
        return SafeBundle.model_validate(raw)

    safe_address = raw.get("safeAddress") or raw.get("safe_address")
    data = raw.get("bundleData", raw)
    if isinstance(data, list):
        return EoaBundle(operations=[_operation_from_tx(t) for t in data])
    if isinstance(data, dict) and isinstance(data.get("transactions"), list):
        return SafeBundle(
            operations=[_operation_from_tx(t) for t in data["transactions"]],
            safe_address=safe_address or data.get("safeAddress"),
        )
    raise ValueError("Bundle has no recognizable transaction list")


class BundleSendError(RuntimeError):
    def __init__(self, index: int, cause: Exception, sent: list[str]):
        self.index = index
        self.sent = sent
        super().__init__(
            f"Operation {index} failed: {cause}. Already mined: {sent or 'none'}"
        )


class ClaimBundleAdapter(BaseAdapter):
    adapter_type = "CLAIM_BUNDLE"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        wallet_address: str | None = None,
        chain_id: int = CHAIN_ID_BERACHAIN,
        keystore: KeyStore | None = None,
    ) -> None:
        super().__init__("claim_bundle_adapter", config)
        self.wallet_address = wallet_address or self.config_value("wallet_address")
        self.chain_id = chain_id
        self.keystore = keystore

    def build_operations(
        self, records: Sequence[RewardRecord], *, recipient: str | None = None
    ) -> list[BundleOperation]:
        if not self.wallet_address:
            raise ValueError("wallet address not configured")
        return build_operations(
            records, account=self.wallet_address, recipient=recipient
        )

    def build_bundle(
        self,
        records: Sequence[RewardRecord],
        *,
        recipient: str | None = None,
        safe_address: str | None = None,
    ) -> BundleFormat:
        return build_bundle(
            self.build_operations(records, recipient=recipient),
            safe_address=safe_address,
        )

    @require_wallet
    @status_tuple
    async def send_bundle(
        self, bundle: Any, sign_callback: SignCallback
    ) -> list[str]:
        """Send each operation as its own transaction, in order.

        Stops at the first failure; the error names the hashes already mined.
        """
        resolved = parse_bundle(bundle)
        if not resolved.operations:
            raise ValueError("bundle has no operations")
        sender = require_address(self.wallet_address, field="wallet address")

        sent: list[str] = []
        for index, op in enumerate(resolved.operations):
            tx = {
                "chainId": int(self.chain_id),
                "from": sender,
                "to": op.to,
                "data": op.data,
                "value": op.value,
            }
            try:
                txn_hash = await send_transaction(tx, sign_callback)
            except Exception as exc:
                raise BundleSendError(index, exc, sent) from exc
            self.logger.info(
                f"Claim {index + 1}/{len(resolved.operations)} mined: "
                f"{get_explorer_tx_url(self.chain_id, txn_hash) or txn_hash}"
            )
            sent.append(txn_hash)
        return sent

    async def send_bundle_with_keystore(
        self, bundle: Any, password: str
    ) -> tuple[bool, list[str] | str]:
        """Like :meth:`send_bundle`, decrypting the wallet key once per signature."""
        if self.keystore is None:
            return False, "keystore not configured"
        if not self.wallet_address:
            return False, "wallet address not configured"
        try:
            wallet = require_address(self.wallet_address, field="wallet address")
        except ValueError as exc:
            return False, str(exc)
        if not self.keystore.has_key(wallet):
            error = str(KeyNotFoundError(wallet))
            self.logger.error(error)
            return False, error
        return await self.send_bundle(
            bundle, make_keystore_sign_callback(self.keystore, wallet, password)
        )
