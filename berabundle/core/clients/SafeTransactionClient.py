from __future__ import annotations

import re
from typing import Any

import httpx

from berabundle.core.adapters.models import SafeTransaction
from berabundle.core.clients.ServiceClient import ServiceClient
from berabundle.core.config import get_safe_service_url
from berabundle.core.constants.base import SAFE_PROPOSAL_ORIGIN
from berabundle.core.utils.addresses import require_address

_HASH_MISMATCH_RE = re.compile(r"Contract-transaction-hash=(0x[0-9a-fA-F]{64})")
_PROVIDED_HASH_RE = re.compile(r"provided.*?(0x[0-9a-fA-F]{64})", re.I)


class SafeHashMismatchError(RuntimeError):
    """The service computed a different contractTransactionHash than we sent."""

    def __init__(
        self,
        expected_hash: str,
        provided_hash: str | None = None,
        message: str | None = None,
    ):
        self.expected_hash = expected_hash
        self.provided_hash = provided_hash
        super().__init__(
            message
            or f"Safe tx hash mismatch: service expects {expected_hash}, "
            f"got {provided_hash}"
        )


def _error_messages(body: Any) -> list[str]:
    if not isinstance(body, dict):
        return [str(body)] if body else []
    messages: list[str] = []
    for key in ("nonFieldErrors", "non_field_errors"):
        value = body.get(key)
        if isinstance(value, list):
            messages.extend(str(v) for v in value)
        elif value:
            messages.append(str(value))
    return messages


def parse_hash_mismatch(
    body: Any, provided_hash: str | None = None
) -> SafeHashMismatchError | None:
    """Return a mismatch error if ``body`` is the service's hash-mismatch reply."""
    for message in _error_messages(body):
        match = _HASH_MISMATCH_RE.search(message)
        if not match:
            continue
        expected = match.group(1).lower()
        provided = _PROVIDED_HASH_RE.search(message)
        return SafeHashMismatchError(
            expected,
            provided.group(1).lower() if provided else provided_hash,
            message=message,
        )
    return None


class SafeTransactionClient(ServiceClient):
    """Client for the Safe Transaction Service (multisig coordination)."""

    def __init__(
        self,
        base_url: str | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ):
        super().__init__(base_url or get_safe_service_url(), client=client)

    async def get_safe_info(self, safe_address: str) -> dict[str, Any]:
        safe = require_address(safe_address, field="safe address")
        data = await self._get_json(f"/safes/{safe}/")
        if not isinstance(data, dict):
            raise ValueError("Safe service returned unexpected response type")
        return data

    async def get_nonce(self, safe_address: str) -> int:
        info = await self.get_safe_info(safe_address)
        if "nonce" not in info:
            raise ValueError("Safe service response missing nonce")
        return int(info["nonce"])

    async def get_safes_by_owner(self, owner_address: str) -> list[str]:
        owner = require_address(owner_address, field="owner address")
        data = await self._get_json(f"/owners/{owner}/safes/")
        safes = data.get("safes") if isinstance(data, dict) else None
        if not isinstance(safes, list):
            raise ValueError("Safe service returned unexpected response type")
        return [require_address(s, field="safe address") for s in safes]

    async def propose_transaction(
        self,
        safe_address: str,
        tx: SafeTransaction,
        *,
        safe_tx_hash: str,
        signature: str,
        sender: str,
        origin: str = SAFE_PROPOSAL_ORIGIN,
    ) -> dict[str, Any]:
        """POST the signed proposal.

        Raises :class:`SafeHashMismatchError` when the service reports a
        different expected hash; any other non-2xx raises ``httpx.HTTPStatusError``.
        """
        safe = require_address(safe_address, field="safe address")
        payload = {
            "safe": safe,
            **tx.to_service_payload(),
            "contractTransactionHash": safe_tx_hash,
            "sender": require_address(sender, field="sender address"),
            "signature": signature,
            "origin": origin,
        }
        resp = await self._send(
            "POST", f"/safes/{safe}/multisig-transactions/", json=payload
        )
        if 400 <= resp.status_code < 500:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text
            mismatch = parse_hash_mismatch(body, provided_hash=safe_tx_hash)
            if mismatch is not None:
                raise mismatch
        resp.raise_for_status()
        if not resp.content:
            return {}
        data = resp.json()
        return data if isinstance(data, dict) else {"response": data}

    async def confirm_transaction(
        self, safe_tx_hash: str, signature: str
    ) -> dict[str, Any]:
        resp = await self._request(
            "POST",
            f"/multisig-transactions/{safe_tx_hash}/confirmations/",
            json={"signature": signature},
        )
        if not resp.content:
            return {}
        data = resp.json()
        return data if isinstance(data, dict) else {"response": data}

