from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from berabundle.core.constants.base import DISPLAY_DECIMALS


def _to_decimal(value: str | int | float | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Decimal(value)
    return Decimal(str(value).strip())


def from_raw(amount_raw: int, decimals: int) -> Decimal:
    """Convert an on-chain integer amount to a full-precision ``Decimal``."""
    return Decimal(int(amount_raw)).scaleb(-int(decimals))


def round_display(
    value: str | int | float | Decimal, places: int = DISPLAY_DECIMALS
) -> Decimal:
    quantum = Decimal(1).scaleb(-places)
    return _to_decimal(value).quantize(quantum, rounding=ROUND_HALF_UP)


def format_display(
    value: str | int | float | Decimal, places: int = DISPLAY_DECIMALS
) -> str:
    return f"{round_display(value, places):,.{places}f}"


def to_decimal_string(amount_raw: int, decimals: int) -> str:
    """Plain (non-scientific) decimal string keeping every significant digit."""
    text = format(from_raw(amount_raw, decimals), "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text or "0"


def parse_int_value(value: str | int | None) -> int:
    """Accept ints, decimal strings and ``0x`` hex strings; ``None``/empty is zero."""
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ValueError(f"Invalid integer value: {value!r}")
    if isinstance(value, int):
        result = value
    else:
        text = str(value).strip()
        if not text:
            return 0
        try:
            result = int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError as exc:
            raise ValueError(f"Invalid integer value: {value!r}") from exc
    if result < 0:
        raise ValueError(f"Value must be non-negative: {value!r}")
    return result
