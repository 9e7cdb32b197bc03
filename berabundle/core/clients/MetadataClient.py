from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from berabundle.core.clients.ServiceClient import ServiceClient
from berabundle.core.config import get_metadata_base_urls
from berabundle.core.constants.base import UNKNOWN_TOKEN_SYMBOL
from berabundle.core.utils.addresses import is_valid_address


class MetadataUnavailableError(RuntimeError):
    pass


class MetadataClient(ServiceClient):
    """Static Berachain metadata feed (vaults, validators, tokens).

    Each list is fetched from the first mirror that answers with a usable
    document; the remaining mirrors are only tried on failure.
    """

    def __init__(
        self,
        base_urls: list[str] | None = None,
        *,
        network: str = "mainnet",
        client: httpx.AsyncClient | None = None,
    ):
        self.base_urls = [u.rstrip("/") for u in (base_urls or get_metadata_base_urls())]
        self.network = network
        super().__init__(self.base_urls[0], client=client)

    async def _fetch_list(self, kind: str) -> list[dict[str, Any]]:
        errors: list[str] = []
        for base in self.base_urls:
            url = f"{base}/{kind}/{self.network}.json"
            try:
                data = await self._get_json(url)
            except (httpx.HTTPError, ValueError) as exc:
                errors.append(f"{url}: {exc}")
                continue
            items = data.get(kind) if isinstance(data, dict) else None
            if isinstance(items, list):
                logger.info(f"Loaded {len(items)} {kind} from {url}")
                return [i for i in items if isinstance(i, dict)]
            errors.append(f"{url}: missing '{kind}' list")
        raise MetadataUnavailableError(
            f"Could not fetch {kind} metadata: {'; '.join(errors)}"
        )

    async def get_vaults(self) -> list[dict[str, Any]]:
        vaults = []
        for entry in await self._fetch_list("vaults"):
            address = entry.get("address") or entry.get("vaultAddress")
            if not is_valid_address(address):
                continue
            vaults.append(
                {
                    "address": address,
                    "name": entry.get("name") or "Unknown Vault",
                    "protocol": entry.get("protocol") or "",
                    "stake_token": entry.get("stakeTokenAddress")
                    or entry.get("stakingTokenAddress")
                    or None,
                    "reward_token": entry.get("rewardTokenAddress") or None,
                }
            )
        return vaults

    async def get_validators(self) -> list[dict[str, Any]]:
        validators = []
        for entry in await self._fetch_list("validators"):
            pubkey = entry.get("id") or entry.get("pubkey")
            if not isinstance(pubkey, str) or not pubkey.startswith("0x"):
                continue
            validators.append({"pubkey": pubkey, "name": entry.get("name") or pubkey})
        return validators

    async def get_tokens(self) -> dict[str, dict[str, Any]]:
        tokens: dict[str, dict[str, Any]] = {}
        for entry in await self._fetch_list("tokens"):
            address = entry.get("address")
            if not is_valid_address(address):
                continue
            try:
                decimals = int(entry.get("decimals", 18))
            except (TypeError, ValueError):
                continue
            tokens[address.lower()] = {
                "symbol": entry.get("symbol") or UNKNOWN_TOKEN_SYMBOL,
                "name": entry.get("name"),
                "decimals": decimals,
            }
        return tokens
