from __future__ import annotations

import asyncio
from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from loguru import logger

from berabundle.core.adapters.models import BoostStatus, RewardRecord, SourceKind
from berabundle.core.clients.PriceClient import PriceOracle
from berabundle.core.utils.units import format_display, round_display


@dataclass
class TokenTotal:
    symbol: str
    amount: Decimal = Decimal(0)
    value_usd: Decimal = Decimal(0)

    @property
    def amount_display(self) -> Decimal:
        return round_display(self.amount)

    @property
    def value_display(self) -> Decimal:
        return round_display(self.value_usd)


@dataclass
class AggregateResult:
    records: list[RewardRecord]
    totals_by_token: dict[str, TokenTotal] = field(default_factory=dict)
    # Validator boosts are staked principal, kept apart from claimable rewards.
    boost_totals: dict[BoostStatus, TokenTotal] = field(default_factory=dict)
    total_value_usd: Decimal = Decimal(0)

    @property
    def total_value_display(self) -> Decimal:
        return round_display(self.total_value_usd)

    @property
    def reward_value_usd(self) -> Decimal:
        return sum((t.value_usd for t in self.totals_by_token.values()), Decimal(0))

    def summary(self) -> str:
        """One line such as ``"3.10 HONEY, 1.00 X; boosts: 10.00 BGT active"``."""
        parts = [
            f"{format_display(total.amount)} {symbol}"
            for symbol, total in self.totals_by_token.items()
        ]
        line = ", ".join(parts) if parts else "No rewards"
        if self.boost_totals:
            boosts = ", ".join(
                f"{format_display(total.amount)} {total.symbol} {status}"
                for status, total in self.boost_totals.items()
            )
            line = f"{line}; boosts: {boosts}"
        return line


async def _lookup_price(oracle: PriceOracle, token_address: str) -> Decimal | None:
    try:
        price = await oracle.get_price(token_address)
    except Exception as exc:
        logger.warning(f"Price lookup failed for {token_address}: {exc}")
        return None
    return None if price is None else Decimal(str(price))


async def aggregate(
    records: Sequence[RewardRecord], price_oracle: PriceOracle
) -> AggregateResult:
    """Price every record and total them per reward-token symbol and overall.

    Sums keep full precision; rounding to 2 dp only happens on the
    ``*_display`` accessors. A missing price values that record at zero. Validator boosts
    are totalled per status in ``boost_totals``, outside ``totals_by_token``;
    ``total_value_usd`` still covers every record.
    """
    addresses = list(dict.fromkeys(r.reward_token.address.lower() for r in records))
    prices = dict(
        zip(
            addresses,
            await asyncio.gather(*[_lookup_price(price_oracle, a) for a in addresses]),
            strict=True,
        )
    )

    priced: list[RewardRecord] = []
    totals: dict[str, TokenTotal] = {}
    boosts: dict[BoostStatus, TokenTotal] = {}
    total_value = Decimal(0)
    for record in records:
        amount = Decimal(record.earned_amount)
        price = prices.get(record.reward_token.address.lower())
        if price is None:
            logger.warning(
                f"No USD price for {record.reward_token.symbol} "
                f"({record.reward_token.address}); valuing at 0"
            )
            value = Decimal(0)
        else:
            value = amount * price
        priced.append(record.model_copy(update={"price_usd": price, "value_usd": value}))

        symbol = record.reward_token.symbol
        if record.source_kind == SourceKind.VALIDATOR_BOOST:
            status = record.status or BoostStatus.ACTIVE
            bucket = boosts.setdefault(status, TokenTotal(symbol=symbol))
        else:
            bucket = totals.setdefault(symbol, TokenTotal(symbol=symbol))
        bucket.amount += amount
        bucket.value_usd += value
        total_value += value

    return AggregateResult(
        records=priced,
        totals_by_token=totals,
        boost_totals=boosts,
        total_value_usd=total_value,
    )
