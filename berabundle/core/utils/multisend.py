from __future__ import annotations

from collections.abc import Sequence

from eth_abi import decode, encode
from eth_utils import function_signature_to_4byte_selector, to_checksum_address

from berabundle.core.adapters.models import OPERATION_CALL, BundleOperation

MULTISEND_SIGNATURE = "multiSend(bytes)"
MULTISEND_SELECTOR = function_signature_to_4byte_selector(MULTISEND_SIGNATURE)

# 1-byte operation + 20-byte target + 32-byte value + 32-byte data length.
ENTRY_HEADER_SIZE = 1 + 20 + 32 + 32


def _pad32(length: int) -> int:
    return (32 - length % 32) % 32


def encode_entry(op: BundleOperation) -> bytes:
    if op.operation != OPERATION_CALL:
        raise ValueError("only CALL operations can be batched")
    if op.value < 0:
        raise ValueError("operation value must be non-negative")
    data = op.data_bytes
    return (
        bytes([op.operation])
        + bytes.fromhex(op.to[2:])
        + op.value.to_bytes(32, "big")
        + len(data).to_bytes(32, "big")
        + data
    )


def encode_transactions(operations: Sequence[BundleOperation]) -> bytes:
    """Packed entries as consumed by ``multiSend(bytes transactions)``."""
    return b"".join(encode_entry(op) for op in operations)


def encode_multisend(operations: Sequence[BundleOperation]) -> bytes:
    """Calldata for ``multiSend(bytes)`` wrapping every operation in order.

    Layout: selector, offset (0x20), byte length of the packed entries, the
    entries, then zero padding to a 32-byte boundary. Callers with a single
    operation send it directly instead.
    """
    if not operations:
        raise ValueError("cannot encode an empty operation list")
    packed = encode_transactions(operations)
    calldata = MULTISEND_SELECTOR + encode(["bytes"], [packed])
    expected = 4 + 32 + 32 + len(packed) + _pad32(len(packed))
    if len(calldata) != expected:
        raise ValueError(
            f"multiSend calldata length {len(calldata)} != expected {expected}"
        )
    return calldata


def decode_transactions(packed: bytes) -> list[BundleOperation]:
    ops: list[BundleOperation] = []
    cursor = 0
    while cursor < len(packed):
        if cursor + ENTRY_HEADER_SIZE > len(packed):
            raise ValueError("truncated multiSend entry header")
        operation = packed[cursor]
        to = to_checksum_address(packed[cursor + 1 : cursor + 21])
        value = int.from_bytes(packed[cursor + 21 : cursor + 53], "big")
        data_len = int.from_bytes(packed[cursor + 53 : cursor + 85], "big")
        start = cursor + ENTRY_HEADER_SIZE
        end = start + data_len
        if end > len(packed):
            raise ValueError("truncated multiSend entry data")
        if operation != OPERATION_CALL:
            raise ValueError(f"unsupported multiSend operation {operation}")
        ops.append(BundleOperation(to=to, value=value, data=packed[start:end]))
        cursor = end
    return ops


def decode_multisend(calldata: bytes | str) -> list[BundleOperation]:
    if isinstance(calldata, str):
        calldata = bytes.fromhex(calldata.removeprefix("0x"))
    if calldata[:4] != MULTISEND_SELECTOR:
        raise ValueError("calldata is not a multiSend(bytes) call")
    (packed,) = decode(["bytes"], calldata[4:])
    return decode_transactions(packed)
