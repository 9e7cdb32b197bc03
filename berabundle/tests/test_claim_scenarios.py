"""End-to-end claim scenarios with the chain and HTTP services faked out."""

import json
from contextlib import asynccontextmanager
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from eth_account import Account

from berabundle.adapters.claim_bundle_adapter.adapter import build_operations
from berabundle.adapters.reward_scanner_adapter.adapter import RewardScannerAdapter
from berabundle.adapters.reward_scanner_adapter.aggregator import aggregate
from berabundle.adapters.reward_scanner_adapter.discovery import VaultDiscovery
from berabundle.adapters.safe_adapter.adapter import SafeAdapter
from berabundle.core.adapters.models import (
    RewardRecord,
    RewardSource,
    SourceKind,
    TokenInfo,
)
from berabundle.core.clients.PriceClient import StaticPriceOracle
from berabundle.core.clients.SafeTransactionClient import SafeTransactionClient
from berabundle.core.constants.contracts import SAFE_MULTISEND_CALL_ONLY
from berabundle.core.utils.keystore import KeyStore
from berabundle.core.utils.multisend import ENTRY_HEADER_SIZE, encode_multisend
from berabundle.core.utils.signing import recover_signer

SCANNER_MODULE = "berabundle.adapters.reward_scanner_adapter.adapter"
DISCOVERY_MODULE = "berabundle.adapters.reward_scanner_adapter.discovery"

PRIVATE_KEY = "0x" + "66" * 32
OWNER = Account.from_key(PRIVATE_KEY).address
WALLET = "0x4444444444444444444444444444444444444444"
SAFE = "0x9999999999999999999999999999999999999999"
VAULT_A = "0x1111111111111111111111111111111111111111"
VAULT_B = "0x2222222222222222222222222222222222222222"
TOKEN_X = "0x3333333333333333333333333333333333333333"
STAKE = "0x5555555555555555555555555555555555555555"


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def _fn(value):
    return MagicMock(call=AsyncMock(return_value=value))


def _vault_contract(balance: int, earned: int) -> MagicMock:
    contract = MagicMock()
    f = contract.functions
    f.balanceOf.return_value = _fn(balance)
    f.earned.return_value = _fn(earned)
    f.totalSupply.return_value = _fn(balance * 4)
    f.rewardRate.return_value = _fn(0)
    f.getRewardForDuration.return_value = _fn(0)
    f.stakeToken.return_value = _fn(STAKE)
    f.rewardToken.return_value = _fn(TOKEN_X)
    return contract


def _web3(contracts: dict[str, MagicMock]) -> MagicMock:
    by_address = {k.lower(): v for k, v in contracts.items()}
    web3 = MagicMock()
    web3.eth.contract.side_effect = lambda address, abi: by_address[address.lower()]
    return web3


def _patch_web3(module: str, web3: MagicMock, opened: list | None = None):
    @asynccontextmanager
    async def fake_web3_from_chain_id(chain_id):
        if opened is not None:
            opened.append(chain_id)
        yield web3

    return patch(f"{module}.web3_from_chain_id", fake_web3_from_chain_id)


def _metadata_client() -> MagicMock:
    client = MagicMock()
    client.get_tokens = AsyncMock(
        return_value={
            TOKEN_X.lower(): {"symbol": "X", "name": "Token X", "decimals": 18},
            STAKE.lower(): {"symbol": "LP", "name": "LP", "decimals": 18},
        }
    )
    client.get_vaults = AsyncMock(side_effect=RuntimeError("feed offline"))
    client.get_validators = AsyncMock(return_value=[])
    return client


def _record(vault: str) -> RewardRecord:
    return RewardRecord(
        id=vault.lower(),
        source_kind=SourceKind.VAULT,
        source_address=vault,
        reward_token=TokenInfo(address=TOKEN_X, symbol="X", decimals=18),
        earned_amount="1",
        raw_earned=10**18,
    )


# -- scenario A: one vault priced through the aggregator ----------------------


@pytest.mark.asyncio
async def test_vault_reward_valued_at_oracle_price():
    web3 = _web3({VAULT_A: _vault_contract(10**18, 12_345_600_000_000_000_000)})
    scanner = RewardScannerAdapter(
        config={},
        discovery=MagicMock(),
        metadata_client=_metadata_client(),
        sleep=AsyncMock(),
    )
    sources = [RewardSource(address=VAULT_A, source_kind=SourceKind.VAULT)]

    with _patch_web3(SCANNER_MODULE, web3):
        records = await scanner.scan(WALLET, sources)
    result = await aggregate(records, StaticPriceOracle({TOKEN_X: "2.00"}))

    (record,) = result.records
    assert record.earned_amount == "12.3456"
    assert record.value_display == Decimal("24.69")
    assert record.pool_share_percent == Decimal(25)
    assert result.total_value_usd == sum(r.value_usd for r in result.records)


# -- scenario B: two claims batched through MultiSend -------------------------


def test_two_records_become_one_multisend_call():
    operations = build_operations([_record(VAULT_A), _record(VAULT_B)], account=SAFE)
    assert len(operations) == 2

    calldata = encode_multisend(operations)
    packed = sum(ENTRY_HEADER_SIZE + len(op.data_bytes) for op in operations)
    padded = packed + (32 - packed % 32) % 32
    assert len(calldata) == 4 + 32 + 32 + padded


# -- scenario C: discovery cache within and past its TTL ----------------------


@pytest.mark.asyncio
async def test_discovery_cache_skips_registry_within_ttl():
    clock = FakeClock(1_000.0)
    factory = MagicMock()
    factory.functions.allVaultsLength.return_value = _fn(2)
    factory.functions.allVaults.side_effect = lambda i: _fn([VAULT_A, VAULT_B][i])
    registry_web3 = MagicMock()
    registry_web3.eth.contract.return_value = factory
    discovery = VaultDiscovery(
        metadata_client=_metadata_client(),
        fee_staker_address=None,
        include_validators=False,
        vault_ttl_s=300,
        clock=clock,
        sleep=AsyncMock(),
    )
    scanner = RewardScannerAdapter(
        config={}, discovery=discovery, metadata_client=_metadata_client(), sleep=AsyncMock()
    )
    scan_web3 = _web3(
        {VAULT_A: _vault_contract(10**18, 10**18), VAULT_B: _vault_contract(0, 0)}
    )
    opened: list[int] = []

    with (
        _patch_web3(DISCOVERY_MODULE, registry_web3, opened),
        _patch_web3(SCANNER_MODULE, scan_web3),
    ):
        first = await scanner.discover_and_scan(WALLET)
        clock.now += 4 * 60
        second = await scanner.discover_and_scan(WALLET)
        registry_reads_after_hit = factory.functions.allVaultsLength.call_count
        clock.now += 2 * 60
        await scanner.discover_and_scan(WALLET)

    assert [r.source_address for r in first] == [VAULT_A]
    assert [r.source_address for r in second] == [VAULT_A]
    assert registry_reads_after_hit == 1
    assert factory.functions.allVaultsLength.call_count == 2
    assert len(opened) == 2


# -- Safe proposal over the wire with a hash mismatch -------------------------


@pytest.mark.asyncio
async def test_safe_proposal_recovers_from_hash_mismatch(tmp_path):
    service_hash = "0x" + "bb" * 32
    proposals: list[dict] = []
    confirmations: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if request.method == "GET" and path.endswith(f"/safes/{SAFE}/"):
            return httpx.Response(200, json={"nonce": 3})
        if path.endswith("/multisig-transactions/"):
            body = json.loads(request.content)
            proposals.append(body)
            if len(proposals) == 1:
                return httpx.Response(
                    422,
                    json={
                        "nonFieldErrors": [
                            f"Contract-transaction-hash={service_hash} does not match "
                            f"provided contract-tx-hash={body['contractTransactionHash']}"
                        ]
                    },
                )
            return httpx.Response(201)
        if path.endswith("/confirmations/"):
            confirmations.append(json.loads(request.content))
            return httpx.Response(201)
        return httpx.Response(404)

    store = KeyStore(tmp_path, kdf="pbkdf2", iterations=2)
    store.save_key(OWNER, PRIVATE_KEY, "pw")
    adapter = SafeAdapter(
        config={},
        safe_client=SafeTransactionClient(
            "https://safe.example/api/v1",
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        ),
        keystore=store,
        app_url="https://app.safe.global",
    )
    bundle = {
        "transactions": [
            {"to": VAULT_A, "data": "0x3d18b912"},
            {"to": VAULT_B, "data": "0x3d18b912"},
        ]
    }

    result = await adapter.propose_bundle(SAFE, bundle, OWNER, "pw")
    await adapter.close()

    assert result.success is True
    assert result.hash_mismatch_recovered is True
    assert result.safe_tx_hash == service_hash
    assert result.transaction_url == (
        f"https://app.safe.global/transactions/queue?safe=ber:{SAFE.lower()}"
    )

    first, second = proposals
    assert first["to"] == SAFE_MULTISEND_CALL_ONLY
    assert first["operation"] == 0
    assert first["nonce"] == 3
    assert first["contractTransactionHash"] != service_hash
    assert second["contractTransactionHash"] == service_hash
    assert recover_signer(service_hash, second["signature"]) == OWNER
    assert confirmations == [{"signature": second["signature"]}]
