from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from aiocache import Cache
from eth_utils import to_checksum_address

from berabundle.adapters.reward_scanner_adapter.discovery import VaultDiscovery
from berabundle.core.adapters.BaseAdapter import BaseAdapter
from berabundle.core.adapters.models import (
    BoostStatus,
    RewardRecord,
    RewardSource,
    SourceKind,
    TokenInfo,
)
from berabundle.core.clients.MetadataClient import MetadataClient
from berabundle.core.config import get_performance_settings
from berabundle.core.constants.abis import (
    BGT_BOOST_ABI,
    BGT_STAKER_ABI,
    REWARD_VAULT_ABI,
)
from berabundle.core.constants.base import TOKEN_INFO_CACHE_TTL_S
from berabundle.core.constants.chains import CHAIN_ID_BERACHAIN
from berabundle.core.constants.contracts import BGT, HONEY, HONEY_DECIMALS
from berabundle.core.utils.addresses import require_address
from berabundle.core.utils.retry import with_retry
from berabundle.core.utils.tokens import read_token_info
from berabundle.core.utils.units import to_decimal_string
from berabundle.core.utils.web3 import web3_from_chain_id

# Tokens whose identity is fixed on Berachain; no on-chain reads needed.
KNOWN_TOKENS: dict[str, TokenInfo] = {
    HONEY.lower(): TokenInfo(
        address=HONEY, symbol="HONEY", name="Honey", decimals=HONEY_DECIMALS
    ),
    BGT.lower(): TokenInfo(address=BGT, symbol="BGT", name="Bera Governance Token", decimals=18),
}


@dataclass(frozen=True)
class ScanProgress:
    processed: int
    total: int
    found: int
    batch_index: int
    batch_count: int


ProgressCallback = Callable[[ScanProgress], None]


def _queued_amount(value: Any) -> int:
    # boostedQueue returns (blockNumberLast, balance)
    if isinstance(value, (list, tuple)):
        return int(value[-1])
    return int(value)


def _percent(part: int, whole: int) -> Decimal:
    if whole <= 0:
        return Decimal(0)
    return Decimal(part) * 100 / Decimal(whole)


class RewardScannerAdapter(BaseAdapter):
    """Scan reward sources for one wallet in paced, concurrent batches.

    Each source gets a cheap position check first; only sources with a
    non-zero position get the full set of reads. Failures are contained to
    the source that produced them.
    """

    adapter_type = "REWARD_SCANNER"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        discovery: VaultDiscovery | None = None,
        metadata_client: MetadataClient | None = None,
        chain_id: int = CHAIN_ID_BERACHAIN,
        boost_address: str = BGT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__("reward_scanner_adapter", config)
        perf = get_performance_settings()
        self.chain_id = chain_id
        self.boost_address = boost_address
        self.batch_size = max(1, int(self.config_value("batch_size", perf["batch_size"])))
        self.batch_delay_s = float(
            self.config_value("batch_delay_s", perf["batch_delay_s"])
        )
        self.retry_kwargs: dict[str, Any] = {
            "max_retries": int(self.config_value("max_retries", perf["max_retries"])),
            "base_delay_s": float(
                self.config_value("base_delay_s", perf["base_delay_s"])
            ),
            "sleep": sleep,
        }
        self.sleep = sleep
        self.clock = clock
        self.metadata_client = metadata_client
        self.discovery = discovery or VaultDiscovery(
            metadata_client=metadata_client,
            chain_id=chain_id,
            batch_size=self.batch_size,
            batch_delay_s=self.batch_delay_s,
            max_retries=self.retry_kwargs["max_retries"],
            base_delay_s=self.retry_kwargs["base_delay_s"],
            sleep=sleep,
        )
        self._token_cache = Cache(Cache.MEMORY)
        self._feed_tokens: dict[str, dict[str, Any]] | None = None

    async def discover_and_scan(
        self,
        wallet: str,
        *,
        force_refresh: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> list[RewardRecord]:
        wallet = require_address(wallet, field="wallet address")
        sources = await self.discovery.discover_sources(force_refresh)
        return await self.scan(wallet, sources, on_progress=on_progress)

    async def scan(
        self,
        wallet: str,
        sources: Sequence[RewardSource],
        *,
        on_progress: ProgressCallback | None = None,
    ) -> list[RewardRecord]:
        wallet = require_address(wallet, field="wallet address")
        if not sources:
            return []

        batches = [
            list(sources[i : i + self.batch_size])
            for i in range(0, len(sources), self.batch_size)
        ]
        records: dict[str, RewardRecord] = {}
        processed = 0

        async with web3_from_chain_id(self.chain_id) as web3:
            boosts_possible = await self._wallet_may_have_boosts(web3, wallet, sources)

            for batch_index, batch in enumerate(batches):
                # Every position check in the batch settles before any follow-up read.
                positions = await asyncio.gather(
                    *[
                        self._check_source(web3, wallet, source, boosts_possible)
                        for source in batch
                    ]
                )
                survivors = [
                    (source, position)
                    for source, position in zip(batch, positions, strict=True)
                    if position
                ]
                results = await asyncio.gather(
                    *[
                        self._read_source(web3, wallet, source, position)
                        for source, position in survivors
                    ]
                )
                for (source, _), record in zip(survivors, results, strict=True):
                    if record is not None:
                        records.setdefault(source.key, record)

                processed += len(batch)
                self.logger.info(
                    f"Scanned batch {batch_index + 1}/{len(batches)}: "
                    f"{processed}/{len(sources)} sources, {len(records)} positions"
                )
                if on_progress is not None:
                    on_progress(
                        ScanProgress(
                            processed=processed,
                            total=len(sources),
                            found=len(records),
                            batch_index=batch_index,
                            batch_count=len(batches),
                        )
                    )
                if batch_index < len(batches) - 1 and self.batch_delay_s > 0:
                    await self.sleep(self.batch_delay_s)

        ordered: list[RewardRecord] = []
        seen: set[str] = set()
        for source in sources:
            if source.key in records and source.key not in seen:
                seen.add(source.key)
                ordered.append(records[source.key])
        return ordered

    # -- per-source dispatch ------------------------------------------------

    async def _check_source(
        self,
        web3: Any,
        wallet: str,
        source: RewardSource,
        boosts_possible: bool,
    ) -> Any:
        source.last_checked_at = self.clock()
        if source.source_kind == SourceKind.VALIDATOR_BOOST and not boosts_possible:
            return None

        check, _ = self._handlers[source.source_kind]
        try:
            return await check(self, web3, wallet, source)
        except Exception as exc:
            self.logger.warning(
                f"Position check failed for {source.source_kind} {source.key}: {exc}"
            )
            return None

    async def _read_source(
        self, web3: Any, wallet: str, source: RewardSource, position: Any
    ) -> RewardRecord | None:
        _, details = self._handlers[source.source_kind]
        try:
            return await details(self, web3, wallet, source, position)
        except Exception as exc:
            self.logger.warning(
                f"Dropping {source.source_kind} {source.key} after failed reads: {exc}"
            )
            return None

    async def _call(self, fn: Any) -> Any:
        return await with_retry(lambda: fn.call(), **self.retry_kwargs)

    # -- vaults -----------------------------------------------------------------

    async def _vault_position(
        self, web3: Any, wallet: str, source: RewardSource
    ) -> int:
        vault = web3.eth.contract(address=source.address, abi=REWARD_VAULT_ABI)
        return int(await self._call(vault.functions.balanceOf(wallet)))

    async def _vault_record(
        self, web3: Any, wallet: str, source: RewardSource, user_stake: int
    ) -> RewardRecord | None:
        vault = web3.eth.contract(address=source.address, abi=REWARD_VAULT_ABI)
        f = vault.functions

        async def _address(known: str | None, fn: Any) -> str:
            if known:
                return known
            return str(await self._call(fn))

        earned, total_stake, rate, for_duration, stake_token, reward_token = (
            await asyncio.gather(
                self._call(f.earned(wallet)),
                self._call(f.totalSupply()),
                self._call(f.rewardRate()),
                self._call(f.getRewardForDuration()),
                _address(source.stake_token, f.stakeToken()),
                _address(source.reward_token, f.rewardToken()),
            )
        )
        earned = int(earned)
        if earned <= 0:
            return None

        reward_info, stake_info = await asyncio.gather(
            self.get_token_info(web3, reward_token),
            self.get_token_info(web3, stake_token),
        )
        source.stake_token = stake_info.address
        source.reward_token = reward_info.address
        return RewardRecord(
            id=source.key,
            source_kind=SourceKind.VAULT,
            source_address=source.address,
            reward_token=reward_info,
            earned_amount=to_decimal_string(earned, reward_info.decimals),
            raw_earned=earned,
            name=source.name,
            protocol=source.protocol,
            stake_token=stake_info,
            user_stake=to_decimal_string(user_stake, stake_info.decimals),
            total_stake=to_decimal_string(int(total_stake), stake_info.decimals),
            pool_share_percent=_percent(user_stake, int(total_stake)),
            reward_rate=to_decimal_string(int(rate), reward_info.decimals),
            reward_for_duration=to_decimal_string(
                int(for_duration), reward_info.decimals
            ),
        )

    # -- fee staker -----------------------------------------------------------

    async def _fee_staker_position(
        self, web3: Any, wallet: str, source: RewardSource
    ) -> int:
        staker = web3.eth.contract(address=source.address, abi=BGT_STAKER_ABI)
        return int(await self._call(staker.functions.balanceOf(wallet)))

    async def _fee_staker_record(
        self, web3: Any, wallet: str, source: RewardSource, stake: int
    ) -> RewardRecord | None:
        staker = web3.eth.contract(address=source.address, abi=BGT_STAKER_ABI)
        earned = int(await self._call(staker.functions.earned(wallet)))
        if earned <= 0:
            return None
        # Fee staker always pays out HONEY against staked BGT.
        reward_info = KNOWN_TOKENS[HONEY.lower()]
        stake_info = KNOWN_TOKENS[BGT.lower()]
        return RewardRecord(
            id=source.key,
            source_kind=SourceKind.FEE_STAKER,
            source_address=source.address,
            reward_token=reward_info,
            earned_amount=to_decimal_string(earned, reward_info.decimals),
            raw_earned=earned,
            name=source.name,
            protocol=source.protocol,
            stake_token=stake_info,
            user_stake=to_decimal_string(stake, stake_info.decimals),
        )

    # -- validator boosts -----------------------------------------------------

    async def _wallet_may_have_boosts(
        self, web3: Any, wallet: str, sources: Sequence[RewardSource]
    ) -> bool:
        if not any(s.source_kind == SourceKind.VALIDATOR_BOOST for s in sources):
            return False
        bgt = web3.eth.contract(
            address=to_checksum_address(self.boost_address), abi=BGT_BOOST_ABI
        )
        try:
            active, queued = await asyncio.gather(
                self._call(bgt.functions.boosts(wallet)),
                self._call(bgt.functions.queuedBoost(wallet)),
            )
        except Exception as exc:
            # Fall back to per-validator checks.
            self.logger.warning(f"Wallet boost totals unavailable: {exc}")
            return True
        if int(active) == 0 and int(queued) == 0:
            self.logger.info("Wallet has no active or queued boosts; skipping validators")
            return False
        return True

    async def _boost_position(
        self, web3: Any, wallet: str, source: RewardSource
    ) -> tuple[int, int] | None:
        bgt = web3.eth.contract(address=source.address, abi=BGT_BOOST_ABI)
        pubkey = bytes.fromhex(str(source.validator_pubkey).removeprefix("0x"))
        active, queued = await asyncio.gather(
            self._call(bgt.functions.boosted(wallet, pubkey)),
            self._call(bgt.functions.boostedQueue(wallet, pubkey)),
        )
        active, queued = int(active), _queued_amount(queued)
        if active == 0 and queued == 0:
            return None
        return (active, queued)

    async def _boost_record(
        self,
        web3: Any,
        wallet: str,
        source: RewardSource,
        position: tuple[int, int],
    ) -> RewardRecord | None:
        active, queued = position
        bgt = web3.eth.contract(address=source.address, abi=BGT_BOOST_ABI)
        pubkey = bytes.fromhex(str(source.validator_pubkey).removeprefix("0x"))
        total = int(await self._call(bgt.functions.boostees(pubkey)))

        # A queued boost is the actionable part (it can be activated).
        status = BoostStatus.QUEUED if queued > 0 else BoostStatus.ACTIVE
        amount = queued if status == BoostStatus.QUEUED else active
        token = KNOWN_TOKENS[BGT.lower()]
        return RewardRecord(
            id=source.key,
            source_kind=SourceKind.VALIDATOR_BOOST,
            source_address=source.address,
            reward_token=token,
            earned_amount=to_decimal_string(amount, token.decimals),
            raw_earned=amount,
            name=source.name,
            validator_pubkey=source.validator_pubkey,
            status=status,
            total_boost=to_decimal_string(total, token.decimals),
            share_percent=_percent(active, total),
        )

    _handlers: dict[SourceKind, tuple[Callable[..., Any], Callable[..., Any]]] = {
        SourceKind.VAULT: (_vault_position, _vault_record),
        SourceKind.FEE_STAKER: (_fee_staker_position, _fee_staker_record),
        SourceKind.VALIDATOR_BOOST: (_boost_position, _boost_record),
    }

    # -- token metadata -------------------------------------------------------

    async def _load_feed_tokens(self) -> dict[str, dict[str, Any]]:
        if self._feed_tokens is not None:
            return self._feed_tokens
        self._feed_tokens = {}
        if self.metadata_client is not None:
            try:
                self._feed_tokens = await self.metadata_client.get_tokens()
            except Exception as exc:
                self.logger.warning(f"Token metadata unavailable: {exc}")
        return self._feed_tokens

    async def get_token_info(self, web3: Any, token_address: str) -> TokenInfo:
        key = str(token_address).lower()
        if key in KNOWN_TOKENS:
            return KNOWN_TOKENS[key]
        if cached := await self._token_cache.get(key):
            return cached

        feed = (await self._load_feed_tokens()).get(key)
        if feed is not None:
            info = TokenInfo(
                address=to_checksum_address(token_address),
                symbol=feed["symbol"],
                name=feed.get("name"),
                decimals=int(feed["decimals"]),
            )
        else:
            info = await read_token_info(web3, token_address)
        await self._token_cache.set(key, info, ttl=TOKEN_INFO_CACHE_TTL_S)
        return info

    async def close(self) -> None:
        await self._token_cache.clear()
        if self.metadata_client is not None:
            await self.metadata_client.close()

