import asyncio
from typing import Any

from eth_utils import to_checksum_address
from loguru import logger
from web3 import AsyncWeb3
from web3.exceptions import BadFunctionCallOutput

from berabundle.core.adapters.models import TokenInfo
from berabundle.core.constants.abis import ERC20_ABI
from berabundle.core.constants.base import DEFAULT_TOKEN_DECIMALS, UNKNOWN_TOKEN_SYMBOL


def _coerce_bytes32_str(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).rstrip(b"\x00").decode("utf-8", errors="ignore")
    return str(value)


async def _erc20_string(web3: AsyncWeb3, token_address: str, field: str) -> str:
    contract = web3.eth.contract(address=token_address, abi=ERC20_ABI)
    try:
        value = await getattr(contract.functions, field)().call()
        return _coerce_bytes32_str(value)
    except (BadFunctionCallOutput, ValueError):
        # Some older tokens return bytes32 for name/symbol.
        bytes32_abi = [
            {
                "type": "function",
                "stateMutability": "view",
                "name": field,
                "inputs": [],
                "outputs": [{"name": "", "type": "bytes32"}],
            }
        ]
        contract32 = web3.eth.contract(address=token_address, abi=bytes32_abi)
        value = await getattr(contract32.functions, field)().call()
        return _coerce_bytes32_str(value)


async def read_token_info(web3: AsyncWeb3, token_address: str) -> TokenInfo:
    """Read symbol/name/decimals from chain.

    Unreadable fields degrade to ``UNKNOWN`` / 18 decimals instead of failing.
    """
    checksum = to_checksum_address(token_address)
    contract = web3.eth.contract(address=checksum, abi=ERC20_ABI)
    symbol, name, decimals = await asyncio.gather(
        _erc20_string(web3, checksum, "symbol"),
        _erc20_string(web3, checksum, "name"),
        contract.functions.decimals().call(),
        return_exceptions=True,
    )
    if isinstance(symbol, Exception):
        logger.warning(f"symbol() failed for {checksum}: {symbol}")
        symbol = UNKNOWN_TOKEN_SYMBOL
    if isinstance(name, Exception):
        name = None
    if isinstance(decimals, Exception):
        logger.warning(f"decimals() failed for {checksum}: {decimals}")
        decimals = DEFAULT_TOKEN_DECIMALS
    return TokenInfo(
        address=checksum,
        symbol=str(symbol) or UNKNOWN_TOKEN_SYMBOL,
        name=str(name) if name else None,
        decimals=int(decimals),
    )
