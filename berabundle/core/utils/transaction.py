import math
from collections.abc import Awaitable, Callable
from typing import Any

from eth_account import Account
from loguru import logger
from web3 import AsyncWeb3

from berabundle.core.constants.base import (
    DEFAULT_TRANSACTION_TIMEOUT,
    GAS_BUFFER_MULTIPLIER,
    MAX_BASE_FEE_GROWTH_MULTIPLIER,
    SUGGESTED_PRIORITY_FEE_MULTIPLIER,
)
from berabundle.core.utils.keystore import KeyStore
from berabundle.core.utils.web3 import get_transaction_chain_id, web3_from_chain_id

SignCallback = Callable[[dict[str, Any]], Awaitable[bytes]]


class TransactionRevertedError(RuntimeError):
    def __init__(
        self,
        txn_hash: str,
        receipt: dict[str, Any] | None = None,
        message: str | None = None,
    ):
        self.txn_hash = txn_hash
        self.receipt = receipt or {}
        super().__init__(message or f"Transaction reverted: {txn_hash}")


class GasEstimationError(RuntimeError):
    pass


def _with_0x(txn_hash: str) -> str:
    return txn_hash if txn_hash.startswith("0x") else f"0x{txn_hash}"


def _revert_message(txn_hash: str, receipt: dict[str, Any], gas_limit: int) -> str:
    gas_used = int(receipt.get("gasUsed") or 0)
    if not (gas_used or gas_limit):
        return f"Transaction reverted (status=0): {txn_hash}"
    hint = " (likely out of gas)" if gas_used and gas_limit and gas_used >= gas_limit else ""
    return (
        f"Transaction reverted (status=0): {txn_hash} "
        f"gasUsed={gas_used} gasLimit={gas_limit}{hint}"
    )


async def _estimate_priority_fee(web3: AsyncWeb3) -> int:
    lookback_blocks = 10
    percentile = 80
    fee_history = await web3.eth.fee_history(lookback_blocks, "latest", [percentile])
    rewards = [r[0] for r in fee_history.reward]
    return sum(rewards) // len(rewards) if rewards else 0


async def prepare_transaction(web3: AsyncWeb3, transaction: dict[str, Any]) -> dict:
    """Fill ``gas``, ``nonce`` and EIP-1559 fee fields on a copy of ``transaction``."""
    transaction = transaction.copy()
    # prevents RPCs from taking a stale value as a hard limit
    transaction.pop("gas", None)

    try:
        estimate = await web3.eth.estimate_gas(transaction, block_identifier="latest")
    except Exception as exc:
        logger.error(f"Gas estimation failed: {exc}")
        raise GasEstimationError(f"Gas estimation failed: {exc}") from exc
    transaction["gas"] = int(math.ceil(estimate * GAS_BUFFER_MULTIPLIER))

    sender = AsyncWeb3.to_checksum_address(transaction["from"])
    transaction["nonce"] = await web3.eth.get_transaction_count(
        sender, block_identifier="pending"
    )

    latest_block = await web3.eth.get_block("latest")
    base_fee = int(latest_block["baseFeePerGas"])
    priority_fee = await _estimate_priority_fee(web3)
    transaction["maxPriorityFeePerGas"] = int(
        priority_fee * SUGGESTED_PRIORITY_FEE_MULTIPLIER
    )
    transaction["maxFeePerGas"] = int(
        base_fee * MAX_BASE_FEE_GROWTH_MULTIPLIER
        + priority_fee * SUGGESTED_PRIORITY_FEE_MULTIPLIER
    )
    return transaction


async def send_transaction(
    transaction: dict[str, Any],
    sign_callback: SignCallback,
    *,
    wait_for_receipt: bool = True,
    timeout: int = DEFAULT_TRANSACTION_TIMEOUT,
) -> str:
    if sign_callback is None:
        raise ValueError("sign_callback must be provided to send transaction")
    if "from" not in transaction:
        raise ValueError("Transaction does not contain from address")

    chain_id = get_transaction_chain_id(transaction)
    async with web3_from_chain_id(chain_id) as web3:
        prepared = await prepare_transaction(web3, transaction)
        signed = await sign_callback(prepared)
        txn_hash = _with_0x((await web3.eth.send_raw_transaction(signed)).hex())
        logger.info(f"Transaction broadcasted: {txn_hash}")

        if not wait_for_receipt:
            return txn_hash

        receipt = dict(
            await web3.eth.wait_for_transaction_receipt(txn_hash, timeout=timeout)
        )
        if int(receipt.get("status", 1)) == 0:
            raise TransactionRevertedError(
                txn_hash,
                receipt,
                message=_revert_message(txn_hash, receipt, int(prepared["gas"])),
            )
        logger.info(f"Transaction {txn_hash} mined in block {receipt.get('blockNumber')}")
        return txn_hash


def make_keystore_sign_callback(
    keystore: KeyStore, address: str, password: str
) -> SignCallback:
    """Sign each transaction with a key unlocked only for that one signature."""

    async def sign_callback(tx: dict[str, Any]) -> bytes:
        with keystore.unlocked_key(address, password) as key:
            return Account.sign_transaction(tx, key).raw_transaction

    return sign_callback
