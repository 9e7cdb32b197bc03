from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from loguru import logger

from berabundle.adapters.claim_bundle_adapter.adapter import (
    ClaimBundleAdapter,
    build_bundle,
    build_operations,
)
from berabundle.adapters.reward_scanner_adapter.adapter import (
    ProgressCallback,
    RewardScannerAdapter,
)
from berabundle.adapters.reward_scanner_adapter.aggregator import (
    AggregateResult,
    aggregate,
)
from berabundle.adapters.safe_adapter.adapter import SafeAdapter
from berabundle.core.adapters.models import BundleFormat, ProposalResult, RewardRecord
from berabundle.core.clients.MetadataClient import MetadataClient
from berabundle.core.clients.PriceClient import PriceClient, PriceOracle
from berabundle.core.clients.SafeTransactionClient import SafeTransactionClient
from berabundle.core.constants.chains import CHAIN_ID_BERACHAIN
from berabundle.core.utils.addresses import require_address
from berabundle.core.utils.keystore import KeyStore


class ClaimRewardsFlow:
    """Discover, scan, price and claim rewards for one wallet or Safe.

    Selection of which records to claim is left to the caller: ``scan``
    returns everything claimable and the claim methods take the chosen
    subset.
    """

    def __init__(
        self,
        *,
        scanner: RewardScannerAdapter,
        price_oracle: PriceOracle,
        safe_adapter: SafeAdapter | None = None,
        keystore: KeyStore | None = None,
        chain_id: int = CHAIN_ID_BERACHAIN,
    ) -> None:
        self.scanner = scanner
        self.price_oracle = price_oracle
        self.safe_adapter = safe_adapter
        self.keystore = keystore
        self.chain_id = chain_id

    @classmethod
    def from_config(
        cls, config: dict[str, Any] | None = None, *, chain_id: int = CHAIN_ID_BERACHAIN
    ) -> ClaimRewardsFlow:
        keystore = KeyStore()
        return cls(
            scanner=RewardScannerAdapter(
                config, metadata_client=MetadataClient(), chain_id=chain_id
            ),
            price_oracle=PriceClient(),
            safe_adapter=SafeAdapter(
                config,
                safe_client=SafeTransactionClient(),
                keystore=keystore,
                chain_id=chain_id,
            ),
            keystore=keystore,
            chain_id=chain_id,
        )

    async def scan(
        self,
        wallet: str,
        *,
        force_refresh: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> AggregateResult:
        records = await self.scanner.discover_and_scan(
            wallet, force_refresh=force_refresh, on_progress=on_progress
        )
        result = await aggregate(records, self.price_oracle)
        logger.info(
            f"{wallet}: {len(result.records)} claimable positions, "
            f"${result.total_value_display} ({result.summary()})"
        )
        return result

    def build_bundle(
        self,
        records: Sequence[RewardRecord],
        *,
        account: str,
        recipient: str | None = None,
        safe_address: str | None = None,
    ) -> BundleFormat:
        operations = build_operations(records, account=account, recipient=recipient)
        return build_bundle(operations, safe_address=safe_address)

    async def claim_via_safe(
        self,
        safe_address: str,
        records: Sequence[RewardRecord],
        *,
        signer_address: str,
        password: str,
        recipient: str | None = None,
    ) -> ProposalResult:
        """Propose one Safe transaction claiming ``records`` on the Safe's behalf."""
        if self.safe_adapter is None:
            return ProposalResult(success=False, error="Safe adapter not configured")
        try:
            safe = require_address(safe_address, field="safe address")
            bundle = self.build_bundle(
                records, account=safe, recipient=recipient, safe_address=safe
            )
        except ValueError as exc:
            return ProposalResult(success=False, error=str(exc))
        return await self.safe_adapter.propose_bundle(
            safe, bundle, signer_address, password
        )

    async def claim_via_eoa(
        self,
        wallet_address: str,
        records: Sequence[RewardRecord],
        *,
        password: str,
        recipient: str | None = None,
    ) -> tuple[bool, list[str] | str]:
        """Send each claim from ``wallet_address`` as its own transaction."""
        adapter = ClaimBundleAdapter(
            wallet_address=wallet_address, chain_id=self.chain_id, keystore=self.keystore
        )
        try:
            bundle = adapter.build_bundle(records, recipient=recipient)
        except ValueError as exc:
            return False, str(exc)
        return await adapter.send_bundle_with_keystore(bundle, password)

    async def close(self) -> None:
        await self.scanner.close()
        if isinstance(self.price_oracle, PriceClient):
            await self.price_oracle.close()
        if self.safe_adapter is not None:
            await self.safe_adapter.close()
