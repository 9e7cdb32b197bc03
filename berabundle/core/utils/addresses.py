from __future__ import annotations

from typing import Any

from eth_utils import is_address, to_checksum_address


def require_address(value: Any, *, field: str = "address") -> str:
    """Return the checksummed form of ``value`` or raise ``ValueError``.

    Called at every boundary that accepts an address, before any network I/O.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{field} is required")
    candidate = value.strip()
    if not candidate.startswith(("0x", "0X")) or not is_address(candidate):
        raise ValueError(f"Invalid {field}: {value}")
    return to_checksum_address(candidate)


def is_valid_address(value: Any) -> bool:
    try:
        require_address(value)
    except ValueError:
        return False
    return True
