from __future__ import annotations

import functools
from abc import ABC
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from loguru import logger

from berabundle.core.utils.addresses import is_valid_address

T = TypeVar("T")


def require_wallet(fn: Callable) -> Callable:
    """Return ``(False, ...)`` early if ``self.wallet_address`` is missing or malformed."""

    @functools.wraps(fn)
    async def wrapper(self: BaseAdapter, *args: Any, **kwargs: Any) -> Any:
        wallet = getattr(self, "wallet_address", None)
        if not wallet:
            return False, "wallet address not configured"
        if not is_valid_address(wallet):
            return False, f"invalid wallet address: {wallet}"
        return await fn(self, *args, **kwargs)

    return wrapper


def status_tuple(
    fn: Callable[..., Coroutine[Any, Any, T]],
) -> Callable[..., Coroutine[Any, Any, tuple[bool, T | str]]]:
    """Wrap an async adapter method to return ``(True, result)`` or ``(False, error_str)``.

    Input errors (``ValueError``) log at warning, anything else at error.
    Cancellation is not an ``Exception`` and always propagates.
    """

    @functools.wraps(fn)
    async def wrapper(self: Any, *args: Any, **kwargs: Any) -> tuple[bool, T | str]:
        try:
            return (True, await fn(self, *args, **kwargs))
        except ValueError as exc:
            self.logger.warning(f"Rejected {fn.__name__}: {exc}")
            return (False, str(exc))
        except Exception as exc:
            self.logger.error(f"Error in {fn.__name__}: {exc}")
            return (False, str(exc))

    return wrapper  # type: ignore[return-value]


class BaseAdapter(ABC):
    adapter_type: str | None = None

    def __init__(self, name: str, config: dict[str, Any] | None = None):
        self.name = name
        self.config = config or {}
        self.logger = logger.bind(adapter=self.__class__.__name__)

    def config_value(self, key: str, default: Any = None) -> Any:
        """Explicit adapter config wins; ``None`` falls through to ``default``."""
        value = self.config.get(key)
        return default if value is None else value

    async def close(self) -> None:
        pass
