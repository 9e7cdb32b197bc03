from __future__ import annotations

from eth_account import Account
from eth_utils import to_hex
from hexbytes import HexBytes


def _coerce_hash32(value: bytes | str) -> bytes:
    raw = bytes(HexBytes(value))
    if len(raw) != 32:
        raise ValueError(f"expected a 32-byte hash, got {len(raw)} bytes")
    return raw


def sign_hash(private_key: str | bytes, message_hash: bytes | str) -> str:
    """Sign the bare 32-byte hash (no personal-message prefix).

    Returns the 65-byte ``r || s || v`` signature as 0x-hex, which is the form
    the Safe transaction service expects for owner signatures.
    """
    signed = Account.unsafe_sign_hash(_coerce_hash32(message_hash), private_key)
    return to_hex(signed.signature)


def recover_signer(message_hash: bytes | str, signature: bytes | str) -> str:
    return Account._recover_hash(_coerce_hash32(message_hash), signature=signature)
