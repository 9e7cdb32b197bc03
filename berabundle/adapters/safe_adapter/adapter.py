from __future__ import annotations

from collections.abc import Callable, Sequence
from enum import StrEnum
from typing import Any

import httpx

from berabundle.adapters.claim_bundle_adapter.adapter import parse_bundle
from berabundle.core.adapters.BaseAdapter import BaseAdapter
from berabundle.core.adapters.models import (
    OPERATION_CALL,
    BundleOperation,
    ProposalResult,
    SafeTransaction,
)
from berabundle.core.clients.SafeTransactionClient import (
    SafeHashMismatchError,
    SafeTransactionClient,
)
from berabundle.core.config import get_safe_app_url
from berabundle.core.constants.chains import CHAIN_ID_BERACHAIN, SAFE_CHAIN_PREFIXES
from berabundle.core.constants.contracts import SAFE_MULTISEND_CALL_ONLY
from berabundle.core.utils.addresses import require_address
from berabundle.core.utils.keystore import (
    KeyDecryptionError,
    KeyNotFoundError,
    KeyStore,
)
from berabundle.core.utils.multisend import encode_multisend
from berabundle.core.utils.safe_tx import compute_safe_tx_hash_hex
from berabundle.core.utils.signing import sign_hash

HashSigner = Callable[[str], str]


class ProposalState(StrEnum):
    HASHED = "hashed"
    PROPOSED = "proposed"
    MISMATCH_DETECTED = "mismatch_detected"
    REHASHED = "rehashed"
    REPROPOSED = "reproposed"
    CONFIRMED = "confirmed"
    FAILED = "failed"


def safe_transaction_for(
    operations: Sequence[BundleOperation],
    nonce: int,
    *,
    multisend_address: str = SAFE_MULTISEND_CALL_ONLY,
) -> SafeTransaction:
    """A single operation is wrapped as-is; several go through MultiSendCallOnly."""
    if not operations:
        raise ValueError("No transactions in bundle")
    if len(operations) == 1:
        op = operations[0]
        return SafeTransaction(
            to=op.to, value=op.value, data=op.data, operation=OPERATION_CALL, nonce=nonce
        )
    return SafeTransaction(
        to=multisend_address,
        value=0,
        data=encode_multisend(operations),
        operation=OPERATION_CALL,
        nonce=nonce,
    )


def _http_error_message(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        body = exc.response.text.strip()
        return f"{exc}: {body}" if body else str(exc)
    return str(exc)


class SafeAdapter(BaseAdapter):
    """Propose claim bundles to a Safe multisig through the transaction service."""

    adapter_type = "SAFE"

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        safe_client: SafeTransactionClient | None = None,
        keystore: KeyStore | None = None,
        chain_id: int = CHAIN_ID_BERACHAIN,
        multisend_address: str = SAFE_MULTISEND_CALL_ONLY,
        app_url: str | None = None,
    ) -> None:
        super().__init__("safe_adapter", config)
        self.safe_client = safe_client or SafeTransactionClient(
            self.config_value("service_url")
        )
        self.keystore = keystore
        self.chain_id = chain_id
        self.multisend_address = multisend_address
        self.app_url = (app_url or self.config_value("app_url") or get_safe_app_url()).rstrip("/")

    def get_transaction_url(self, safe_address: str) -> str:
        prefix = SAFE_CHAIN_PREFIXES.get(self.chain_id, str(self.chain_id))
        safe = require_address(safe_address, field="safe address")
        return f"{self.app_url}/transactions/queue?safe={prefix}:{safe.lower()}"

    async def get_safes_by_owner(self, owner_address: str) -> list[str]:
        return await self.safe_client.get_safes_by_owner(owner_address)

    async def build_safe_transaction(
        self, safe_address: str, operations: Sequence[BundleOperation]
    ) -> SafeTransaction:
        """Fetch a fresh nonce and wrap ``operations`` into one Safe transaction."""
        safe = require_address(safe_address, field="safe address")
        if not operations:
            raise ValueError("No transactions in bundle")
        nonce = await self.safe_client.get_nonce(safe)
        self.logger.info(f"Using nonce {nonce} for Safe {safe}")
        return safe_transaction_for(
            operations, nonce, multisend_address=self.multisend_address
        )

    def compute_hash(self, safe_address: str, tx: SafeTransaction) -> str:
        return compute_safe_tx_hash_hex(safe_address, self.chain_id, tx)

    def _transition(self, state: ProposalState, detail: str = "") -> ProposalState:
        self.logger.info(f"Safe proposal -> {state}{f': {detail}' if detail else ''}")
        return state

    async def propose(
        self,
        safe_address: str,
        tx: SafeTransaction,
        safe_tx_hash: str,
        signature: str,
        sender_address: str,
        *,
        resign: HashSigner | None = None,
    ) -> ProposalResult:
        """Submit a signed proposal, recovering once from a hash mismatch.

        ``safe_tx_hash`` must equal the locally computed hash of ``tx``. On
        mismatch the service's expected hash is re-signed with ``resign`` and
        submitted once more; a second mismatch is terminal. The follow-up
        confirmation is best effort and never changes the outcome.
        """
        try:
            safe = require_address(safe_address, field="safe address")
            sender = require_address(sender_address, field="sender address")
        except ValueError as exc:
            return ProposalResult(success=False, error=str(exc))

        local_hash = self.compute_hash(safe, tx)
        if safe_tx_hash.lower() != local_hash.lower():
            return self._failed(
                f"Signed hash {safe_tx_hash} does not match the transaction "
                f"(local hash {local_hash})"
            )

        self._transition(ProposalState.HASHED, safe_tx_hash)
        final_hash, final_signature = safe_tx_hash, signature
        recovered = False
        try:
            await self.safe_client.propose_transaction(
                safe, tx, safe_tx_hash=safe_tx_hash, signature=signature, sender=sender
            )
            self._transition(ProposalState.PROPOSED)
        except SafeHashMismatchError as mismatch:
            self.logger.warning(
                f"Hash mismatch: local {local_hash} vs service {mismatch.expected_hash}"
                f" (nonce {tx.nonce})"
            )
            self._transition(ProposalState.MISMATCH_DETECTED)
            if resign is None:
                return self._failed(f"{mismatch}; no signer available to re-sign")

            final_hash = mismatch.expected_hash
            try:
                final_signature = resign(final_hash)
            except Exception as exc:
                return self._failed(f"Re-signing {final_hash} failed: {exc}")
            recovered = True
            self._transition(ProposalState.REHASHED, final_hash)
            try:
                await self.safe_client.propose_transaction(
                    safe,
                    tx,
                    safe_tx_hash=final_hash,
                    signature=final_signature,
                    sender=sender,
                )
            except SafeHashMismatchError as second:
                return self._failed(
                    "Hash mismatch persisted after re-signing: submitted "
                    f"{final_hash}, service expects {second.expected_hash} "
                    f"(originally {safe_tx_hash})"
                )
            except (httpx.HTTPError, ValueError) as exc:
                return self._failed(_http_error_message(exc))
            self._transition(ProposalState.REPROPOSED)
        except (httpx.HTTPError, ValueError) as exc:
            return self._failed(_http_error_message(exc))

        try:
            await self.safe_client.confirm_transaction(final_hash, final_signature)
            self._transition(ProposalState.CONFIRMED)
        except (httpx.HTTPError, ValueError) as exc:
            self.logger.warning(
                f"Confirmation not recorded (may already be part of the proposal): {exc}"
            )

        return ProposalResult(
            success=True,
            safe_tx_hash=final_hash,
            transaction_url=self.get_transaction_url(safe),
            hash_mismatch_recovered=recovered,
        )

    def _failed(self, error: str) -> ProposalResult:
        self._transition(ProposalState.FAILED)
        self.logger.error(f"Safe proposal failed: {error}")
        return ProposalResult(success=False, error=error)

    def _sign_with_keystore(self, signer_address: str, password: str, hash_hex: str) -> str:
        if self.keystore is None:
            raise ValueError("keystore not configured")
        with self.keystore.unlocked_key(signer_address, password) as key:
            return sign_hash(key, hash_hex)

    async def propose_bundle(
        self,
        safe_address: str,
        bundle: Any,
        signer_address: str,
        password: str,
    ) -> ProposalResult:
        """Build, hash, sign and propose ``bundle`` for ``safe_address``.

        The signer's key is decrypted separately for each signature and
        discarded right after.
        """
        try:
            safe = require_address(safe_address, field="safe address")
            signer = require_address(signer_address, field="signer address")
            operations = parse_bundle(bundle).operations
            if not operations:
                raise ValueError("No transactions in bundle")
        except ValueError as exc:
            return ProposalResult(success=False, error=str(exc))
        if self.keystore is None:
            return ProposalResult(success=False, error="keystore not configured")
        if not self.keystore.has_key(signer):
            return ProposalResult(
                success=False, error=str(KeyNotFoundError(signer))
            )

        try:
            tx = await self.build_safe_transaction(safe, operations)
        except (httpx.HTTPError, ValueError) as exc:
            return self._failed(f"Failed to get nonce: {_http_error_message(exc)}")

        safe_tx_hash = self.compute_hash(safe, tx)
        try:
            signature = self._sign_with_keystore(signer, password, safe_tx_hash)
        except (KeyNotFoundError, KeyDecryptionError) as exc:
            return self._failed(str(exc))

        return await self.propose(
            safe,
            tx,
            safe_tx_hash,
            signature,
            signer,
            resign=lambda h: self._sign_with_keystore(signer, password, h),
        )

    async def close(self) -> None:
        await self.safe_client.close()
