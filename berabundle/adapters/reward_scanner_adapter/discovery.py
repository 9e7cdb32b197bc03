from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from eth_utils import to_checksum_address
from loguru import logger

from berabundle.core.adapters.models import RewardSource, SourceKind
from berabundle.core.clients.MetadataClient import MetadataClient
from berabundle.core.config import get_performance_settings
from berabundle.core.constants.abis import REWARD_VAULT_FACTORY_ABI
from berabundle.core.constants.base import VALIDATOR_CACHE_TTL_S, VAULT_CACHE_TTL_S
from berabundle.core.constants.chains import CHAIN_ID_BERACHAIN
from berabundle.core.constants.contracts import (
    BGT,
    BGT_STAKER,
    HONEY,
    REWARD_VAULT_FACTORY,
)
from berabundle.core.utils.cache import TtlCache
from berabundle.core.utils.retry import with_retry
from berabundle.core.utils.web3 import web3_from_chain_id


def fee_staker_source(address: str = BGT_STAKER) -> RewardSource:
    return RewardSource(
        address=address,
        source_kind=SourceKind.FEE_STAKER,
        stake_token=BGT,
        reward_token=HONEY,
        name="BGT Staker",
        protocol="Berachain",
    )


class VaultDiscovery:
    """Builds the candidate reward-source list for a scan.

    Vaults come from the metadata feed when it is reachable, otherwise from
    the on-chain factory (``allVaultsLength`` then ``allVaults(i)``). Vault and
    validator lists are cached independently, each with its own TTL.
    Discovery never raises: exhausting every source yields an empty list.
    """

    def __init__(
        self,
        *,
        metadata_client: MetadataClient | None = None,
        chain_id: int = CHAIN_ID_BERACHAIN,
        factory_address: str = REWARD_VAULT_FACTORY,
        fee_staker_address: str | None = BGT_STAKER,
        boost_address: str = BGT,
        include_validators: bool = True,
        vault_ttl_s: float = VAULT_CACHE_TTL_S,
        validator_ttl_s: float = VALIDATOR_CACHE_TTL_S,
        batch_size: int | None = None,
        batch_delay_s: float | None = None,
        max_retries: int | None = None,
        base_delay_s: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        perf = get_performance_settings()
        self.metadata_client = metadata_client
        self.chain_id = chain_id
        self.factory_address = factory_address
        self.fee_staker_address = fee_staker_address
        self.boost_address = boost_address
        self.include_validators = include_validators
        self.batch_size = max(1, int(batch_size or perf["batch_size"]))
        self.batch_delay_s = (
            perf["batch_delay_s"] if batch_delay_s is None else float(batch_delay_s)
        )
        self.retry_kwargs: dict[str, Any] = {
            "max_retries": max_retries or perf["max_retries"],
            "base_delay_s": perf["base_delay_s"] if base_delay_s is None else base_delay_s,
            "sleep": sleep,
        }
        self.clock = clock
        self.sleep = sleep
        self.vault_cache: TtlCache[list[RewardSource]] = TtlCache(vault_ttl_s, clock)
        self.validator_cache: TtlCache[list[RewardSource]] = TtlCache(
            validator_ttl_s, clock
        )

    async def discover_sources(self, force_refresh: bool = False) -> list[RewardSource]:
        vaults = await self.discover_vaults(force_refresh)
        sources = list(vaults)
        if self.fee_staker_address:
            sources.append(fee_staker_source(self.fee_staker_address))
        if self.include_validators:
            sources.extend(await self.discover_validators(force_refresh))
        return sources

    async def discover_vaults(self, force_refresh: bool = False) -> list[RewardSource]:
        if not force_refresh and (cached := self.vault_cache.get()) is not None:
            logger.debug(f"Vault cache hit ({len(cached)} vaults)")
            return list(cached)

        vaults = await self._vaults_from_feed()
        if not vaults:
            vaults = await self._vaults_from_registry()
        if vaults:
            self.vault_cache.set(vaults)
        return list(vaults)

    async def discover_validators(
        self, force_refresh: bool = False
    ) -> list[RewardSource]:
        if not force_refresh and (cached := self.validator_cache.get()) is not None:
            logger.debug(f"Validator cache hit ({len(cached)} validators)")
            return list(cached)
        if self.metadata_client is None:
            return []

        try:
            entries = await self.metadata_client.get_validators()
        except Exception as exc:
            logger.warning(f"Validator metadata unavailable: {exc}")
            return []

        validators: list[RewardSource] = []
        for entry in entries:
            try:
                validators.append(
                    RewardSource(
                        address=self.boost_address,
                        source_kind=SourceKind.VALIDATOR_BOOST,
                        validator_pubkey=entry["pubkey"],
                        name=entry.get("name"),
                        reward_token=self.boost_address,
                    )
                )
            except (KeyError, ValueError) as exc:
                logger.warning(f"Skipping validator entry {entry}: {exc}")
        if validators:
            self.validator_cache.set(validators)
        return list(validators)

    def invalidate(self) -> None:
        self.vault_cache.invalidate()
        self.validator_cache.invalidate()

    async def _vaults_from_feed(self) -> list[RewardSource]:
        if self.metadata_client is None:
            return []
        try:
            entries = await self.metadata_client.get_vaults()
        except Exception as exc:
            logger.warning(f"Vault metadata unavailable, falling back to registry: {exc}")
            return []

        vaults: list[RewardSource] = []
        seen: set[str] = set()
        for entry in entries:
            try:
                source = RewardSource(
                    address=entry["address"],
                    source_kind=SourceKind.VAULT,
                    stake_token=entry.get("stake_token"),
                    reward_token=entry.get("reward_token"),
                    name=entry.get("name"),
                    protocol=entry.get("protocol"),
                )
            except (KeyError, ValueError) as exc:
                logger.warning(f"Skipping vault entry {entry}: {exc}")
                continue
            if source.key in seen:
                continue
            seen.add(source.key)
            vaults.append(source)
        logger.info(f"Discovered {len(vaults)} vaults from metadata feed")
        return vaults

    async def _vaults_from_registry(self) -> list[RewardSource]:
        try:
            async with web3_from_chain_id(self.chain_id) as web3:
                factory = web3.eth.contract(
                    address=to_checksum_address(self.factory_address),
                    abi=REWARD_VAULT_FACTORY_ABI,
                )
                addresses = await self._enumerate_registry(factory)
        except Exception as exc:
            logger.warning(f"Vault registry enumeration failed: {exc}")
            return []

        vaults: list[RewardSource] = []
        seen: set[str] = set()
        for address in addresses:
            if address.lower() in seen:
                continue
            seen.add(address.lower())
            vaults.append(RewardSource(address=address, source_kind=SourceKind.VAULT))
        logger.info(f"Discovered {len(vaults)} vaults from on-chain registry")
        return vaults

    async def _enumerate_registry(self, factory: Any) -> list[str]:
        count = int(
            await with_retry(
                lambda: factory.functions.allVaultsLength().call(), **self.retry_kwargs
            )
        )
        logger.info(f"Registry reports {count} vaults")

        addresses: list[str] = []
        for start in range(0, count, self.batch_size):
            indices = range(start, min(start + self.batch_size, count))
            results = await asyncio.gather(
                *[self._vault_at(factory, i) for i in indices]
            )
            addresses.extend(a for a in results if a)
            if start + self.batch_size < count and self.batch_delay_s > 0:
                await self.sleep(self.batch_delay_s)
        return addresses

    async def _vault_at(self, factory: Any, index: int) -> str | None:
        try:
            return await with_retry(
                lambda: factory.functions.allVaults(index).call(), **self.retry_kwargs
            )
        except Exception as exc:
            logger.warning(f"Skipping vault index {index}: {exc}")
            return None
