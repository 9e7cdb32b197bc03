from unittest.mock import AsyncMock, patch

import pytest
from eth_abi import decode
from eth_account import Account
from eth_utils import function_signature_to_4byte_selector
from loguru import logger

from berabundle.adapters.claim_bundle_adapter.adapter import (
    ClaimBundleAdapter,
    build_bundle,
    build_operations,
    encode_boost_activation,
    encode_fee_staker_claim,
    encode_vault_claim,
    parse_bundle,
)
from berabundle.core.adapters.models import (
    BoostStatus,
    BundleOperation,
    EoaBundle,
    RewardRecord,
    SafeBundle,
    SourceKind,
    TokenInfo,
)
from berabundle.core.constants.contracts import BGT, BGT_STAKER
from berabundle.core.utils.keystore import KeyStore

MODULE = "berabundle.adapters.claim_bundle_adapter.adapter"

PRIVATE_KEY = "0x" + "44" * 32
WALLET = Account.from_key(PRIVATE_KEY).address
RECIPIENT = "0x7777777777777777777777777777777777777777"
VAULT = "0x1111111111111111111111111111111111111111"
SAFE = "0x9999999999999999999999999999999999999999"
PUBKEY = "0x" + "ab" * 48
TOKEN = TokenInfo(address=BGT, symbol="BGT", decimals=18)


def _record(kind: SourceKind, address: str, **extra) -> RewardRecord:
    return RewardRecord(
        id=address.lower(),
        source_kind=kind,
        source_address=address,
        reward_token=TOKEN,
        earned_amount="1",
        raw_earned=10**18,
        **extra,
    )


def _selector(signature: str) -> str:
    return "0x" + function_signature_to_4byte_selector(signature).hex()


class TestClaimEncoders:
    def test_vault_claim_encodes_account_and_recipient(self):
        op = encode_vault_claim(_record(SourceKind.VAULT, VAULT), WALLET, RECIPIENT)

        assert op.to == VAULT
        assert op.value == 0
        assert op.data.startswith(_selector("getReward(address,address)"))
        account, recipient = decode(["address", "address"], op.data_bytes[4:])
        assert account.lower() == WALLET.lower()
        assert recipient.lower() == RECIPIENT

    def test_fee_staker_claim_has_no_args(self):
        op = encode_fee_staker_claim(
            _record(SourceKind.FEE_STAKER, BGT_STAKER), WALLET, WALLET
        )
        assert op.to == BGT_STAKER
        assert op.data == _selector("getReward()")

    def test_queued_boost_activates(self):
        record = _record(
            SourceKind.VALIDATOR_BOOST,
            BGT,
            validator_pubkey=PUBKEY,
            status=BoostStatus.QUEUED,
        )
        op = encode_boost_activation(record, WALLET, WALLET)

        assert op.to == BGT
        assert op.data.startswith(_selector("activateBoost(address,bytes)"))
        user, pubkey = decode(["address", "bytes"], op.data_bytes[4:])
        assert user.lower() == WALLET.lower()
        assert pubkey == bytes.fromhex(PUBKEY[2:])

    def test_active_boost_has_nothing_to_claim(self):
        record = _record(
            SourceKind.VALIDATOR_BOOST,
            BGT,
            validator_pubkey=PUBKEY,
            status=BoostStatus.ACTIVE,
        )
        assert encode_boost_activation(record, WALLET, WALLET) is None


class TestBuildOperations:
    def test_one_operation_per_record_in_order(self):
        records = [
            _record(SourceKind.FEE_STAKER, BGT_STAKER),
            _record(SourceKind.VAULT, VAULT),
            _record(
                SourceKind.VALIDATOR_BOOST,
                BGT,
                validator_pubkey=PUBKEY,
                status=BoostStatus.ACTIVE,
            ),
        ]
        ops = build_operations(records, account=WALLET.lower())
        assert [op.to for op in ops] == [BGT_STAKER, VAULT]
        assert all(op.operation == 0 for op in ops)

    def test_invalid_account_rejected(self):
        with pytest.raises(ValueError):
            build_operations([_record(SourceKind.VAULT, VAULT)], account="0x12")

    def test_build_bundle_variants(self):
        ops = [BundleOperation(to=VAULT)]
        assert isinstance(build_bundle(ops), EoaBundle)
        safe_bundle = build_bundle(ops, safe_address=SAFE)
        assert isinstance(safe_bundle, SafeBundle)
        assert safe_bundle.safe_address == SAFE
        with pytest.raises(ValueError):
            build_bundle([])


class TestParseBundle:
    TX = {"to": VAULT, "value": "0x0", "data": "0x3d18b912"}

    @pytest.mark.parametrize(
        ("raw", "kind"),
        [
            ([TX], EoaBundle),
            ({"bundleData": [TX]}, EoaBundle),
            ({"bundleData": {"transactions": [TX]}}, SafeBundle),
            ({"transactions": [TX]}, SafeBundle),
            ({"format": "eoa", "operations": [TX]}, EoaBundle),
            ({"format": "safe", "operations": [TX], "safe_address": SAFE}, SafeBundle),
        ],
    )
    def test_accepted_shapes(self, raw, kind):
        bundle = parse_bundle(raw)
        assert isinstance(bundle, kind)
        assert bundle.operations == [BundleOperation(to=VAULT, data="0x3d18b912")]

    def test_missing_data_defaults_to_empty(self):
        bundle = parse_bundle([{"to": VAULT}])
        assert bundle.operations[0].data == "0x"

    @pytest.mark.parametrize("raw", ["nope", {"bundleData": "x"}, [42]])
    def test_rejects_unknown_shapes(self, raw):
        with pytest.raises(ValueError):
            parse_bundle(raw)

    def test_already_parsed_is_returned(self):
        bundle = EoaBundle(operations=[])
        assert parse_bundle(bundle) is bundle


class TestClaimBundleAdapter:
    @pytest.fixture
    def adapter(self):
        return ClaimBundleAdapter(config={}, wallet_address=WALLET)

    def test_adapter_type(self, adapter):
        assert adapter.adapter_type == "CLAIM_BUNDLE"

    @pytest.mark.asyncio
    async def test_send_bundle_sends_each_operation(self, adapter):
        bundle = [{"to": VAULT, "data": "0x01"}, {"to": BGT_STAKER, "data": "0x02"}]
        sign = AsyncMock()

        with patch(
            f"{MODULE}.send_transaction",
            new_callable=AsyncMock,
            side_effect=["0xaaa", "0xbbb"],
        ) as mock_send:
            ok, hashes = await adapter.send_bundle(bundle, sign)

        assert ok is True
        assert hashes == ["0xaaa", "0xbbb"]
        first_tx = mock_send.await_args_list[0].args[0]
        assert first_tx == {
            "chainId": 80094,
            "from": WALLET,
            "to": VAULT,
            "data": "0x01",
            "value": 0,
        }
        assert mock_send.await_args_list[1].args[0]["to"] == BGT_STAKER

    @pytest.mark.asyncio
    async def test_mined_claims_logged_with_explorer_link(self, adapter):
        messages: list[str] = []
        handler_id = logger.add(lambda m: messages.append(str(m)), level="INFO")
        try:
            with patch(
                f"{MODULE}.send_transaction", new_callable=AsyncMock, return_value="0xaaa"
            ):
                await adapter.send_bundle([{"to": VAULT}], AsyncMock())
        finally:
            logger.remove(handler_id)

        assert any("https://berascan.com/tx/0xaaa" in m for m in messages)

    @pytest.mark.asyncio
    async def test_send_bundle_stops_at_first_failure(self, adapter):
        bundle = [{"to": VAULT}, {"to": BGT_STAKER}, {"to": BGT}]

        with patch(
            f"{MODULE}.send_transaction",
            new_callable=AsyncMock,
            side_effect=["0xaaa", RuntimeError("reverted")],
        ) as mock_send:
            ok, error = await adapter.send_bundle(bundle, AsyncMock())

        assert ok is False
        assert "Operation 1 failed" in error
        assert "0xaaa" in error
        assert mock_send.await_count == 2

    @pytest.mark.asyncio
    async def test_send_bundle_requires_wallet(self):
        adapter = ClaimBundleAdapter(config={})
        ok, error = await adapter.send_bundle([{"to": VAULT}], AsyncMock())
        assert ok is False
        assert "wallet" in error

    @pytest.mark.asyncio
    async def test_empty_bundle_rejected(self, adapter):
        ok, error = await adapter.send_bundle([], AsyncMock())
        assert ok is False
        assert "no operations" in error

    @pytest.fixture
    def store(self, tmp_path):
        store = KeyStore(tmp_path, kdf="pbkdf2", iterations=2)
        store.save_key(WALLET, PRIVATE_KEY, "pw")
        return store

    @staticmethod
    def _signing_send(signed: list[bytes]):
        async def fake_send(tx, sign_callback):
            raw = await sign_callback(
                {
                    **tx,
                    "gas": 100_000,
                    "nonce": len(signed),
                    "maxFeePerGas": 2_000,
                    "maxPriorityFeePerGas": 1_000,
                }
            )
            signed.append(raw)
            return f"0x{len(signed):064x}"

        return fake_send

    @pytest.mark.asyncio
    async def test_send_with_keystore_unlocks_key_per_signature(self, store):
        adapter = ClaimBundleAdapter(config={}, wallet_address=WALLET, keystore=store)
        bundle = [{"to": VAULT}, {"to": BGT_STAKER}, {"to": BGT}]
        signed: list[bytes] = []

        with (
            patch.object(store, "decrypt", wraps=store.decrypt) as decrypt,
            patch(f"{MODULE}.send_transaction", side_effect=self._signing_send(signed)),
        ):
            ok, hashes = await adapter.send_bundle_with_keystore(bundle, "pw")

        assert ok is True
        assert len(hashes) == 3
        assert decrypt.call_count == len(signed) == 3
        assert all(Account.recover_transaction(raw) == WALLET for raw in signed)

    @pytest.mark.asyncio
    async def test_send_with_keystore_wrong_password(self, store):
        adapter = ClaimBundleAdapter(config={}, wallet_address=WALLET, keystore=store)

        with patch(f"{MODULE}.send_transaction", side_effect=self._signing_send([])):
            ok, error = await adapter.send_bundle_with_keystore([{"to": VAULT}], "bad")

        assert ok is False
        assert "Failed to decrypt" in error

    @pytest.mark.asyncio
    async def test_send_with_keystore_unknown_wallet(self, tmp_path):
        adapter = ClaimBundleAdapter(
            config={}, wallet_address=WALLET, keystore=KeyStore(tmp_path)
        )

        with patch(f"{MODULE}.send_transaction", new_callable=AsyncMock) as mock_send:
            ok, error = await adapter.send_bundle_with_keystore([{"to": VAULT}], "pw")

        assert ok is False
        assert "No private key" in error
        mock_send.assert_not_awaited()
