from contextlib import asynccontextmanager

from web3 import AsyncHTTPProvider, AsyncWeb3

from berabundle.core.config import get_rpc_urls
from berabundle.core.constants.base import DEFAULT_HTTP_TIMEOUT


def rpc_url_for_chain(chain_id: int) -> str:
    """First configured RPC endpoint for ``chain_id``; list values pick the head."""
    configured = get_rpc_urls().get(str(chain_id))
    if isinstance(configured, (list, tuple)):
        configured = next((url for url in configured if url), None)
    if not configured:
        raise ValueError(f"No RPC URL configured for chain {chain_id}")
    return str(configured)


def get_transaction_chain_id(transaction: dict) -> int:
    if "chainId" not in transaction:
        raise ValueError("Transaction does not contain chainId")
    return int(transaction["chainId"])


@asynccontextmanager
async def web3_from_chain_id(chain_id: int):
    web3 = AsyncWeb3(
        AsyncHTTPProvider(
            rpc_url_for_chain(chain_id),
            request_kwargs={"timeout": DEFAULT_HTTP_TIMEOUT},
        )
    )
    try:
        yield web3
    finally:
        await web3.provider.disconnect()
