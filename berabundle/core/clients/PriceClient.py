from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any, Protocol

import httpx
from aiocache import Cache
from loguru import logger

from berabundle.core.clients.ServiceClient import ServiceClient
from berabundle.core.config import get_price_api_key, get_price_api_url
from berabundle.core.constants.base import PRICE_CACHE_TTL_S

_PRICE_TABLE_KEY = "usd_prices"


class PriceOracle(Protocol):
    async def get_price(self, token_address: str) -> Decimal | None: ...


class PriceClient(ServiceClient):
    """USD price oracle backed by the OogaBooga prices endpoint.

    The whole price table is fetched at once and cached for a few minutes.
    Any failure yields ``None`` (unpriced) rather than an exception.
    """

    def __init__(
        self,
        base_url: str | None = None,
        *,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
        ttl_s: int = PRICE_CACHE_TTL_S,
    ):
        api_key = api_key or get_price_api_key()
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        super().__init__(base_url or get_price_api_url(), client=client, headers=headers)
        self.ttl_s = ttl_s
        self._cache = Cache(Cache.MEMORY)

    async def _load_prices(self) -> dict[str, Decimal]:
        data = await self._get_json("/v1/prices", params={"currency": "USD"})
        if not isinstance(data, list):
            raise ValueError("Price API returned unexpected response type")
        prices: dict[str, Decimal] = {}
        for entry in data:
            if not isinstance(entry, dict) or not entry.get("address"):
                continue
            try:
                prices[str(entry["address"]).lower()] = Decimal(str(entry["price"]))
            except (KeyError, InvalidOperation):
                continue
        return prices

    async def get_prices(self) -> dict[str, Decimal]:
        if cached := await self._cache.get(_PRICE_TABLE_KEY):
            return cached
        try:
            prices = await self._load_prices()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning(f"Price lookup failed: {exc}")
            return {}
        await self._cache.set(_PRICE_TABLE_KEY, prices, ttl=self.ttl_s)
        return prices

    async def get_price(self, token_address: str) -> Decimal | None:
        prices = await self.get_prices()
        price = prices.get(str(token_address).lower())
        if price is None:
            logger.debug(f"No USD price for {token_address}")
        return price

    async def clear(self) -> None:
        await self._cache.clear()


class StaticPriceOracle:
    """Price oracle over a fixed ``{address: price}`` mapping."""

    def __init__(self, prices: dict[str, Any]):
        self.prices = {str(k).lower(): Decimal(str(v)) for k, v in prices.items()}

    async def get_price(self, token_address: str) -> Decimal | None:
        return self.prices.get(str(token_address).lower())
