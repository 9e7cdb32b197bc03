import json
import os
from pathlib import Path
from typing import Any

from berabundle.core.constants.base import (
    DEFAULT_BASE_RETRY_DELAY_S,
    DEFAULT_BATCH_DELAY_S,
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_RETRIES,
)
from berabundle.core.constants.chains import CHAIN_ID_BERACHAIN

_CONFIG_ENV_KEYS = ("BERABUNDLE_CONFIG_PATH", "BERABUNDLE_CONFIG")
_DEFAULT_CONFIG_FILENAME = "config.json"

_DEFAULT_RPC_URLS: dict[str, str] = {
    str(CHAIN_ID_BERACHAIN): "https://rpc.berachain.com",
}
_DEFAULT_SAFE_SERVICE_URL = "https://safe-transaction-berachain.safe.global/api/v1"
_DEFAULT_SAFE_APP_URL = "https://app.safe.global"
_DEFAULT_PRICE_API_URL = "https://mainnet.api.oogabooga.io"
_DEFAULT_METADATA_BASE_URLS = (
    "https://raw.githubusercontent.com/berachain/metadata/refs/heads/main/src",
    "https://raw.githubusercontent.com/berachain/metadata/main/src",
    "https://raw.githubusercontent.com/berachain/metadata/master/src",
)


def _find_project_root(start: Path) -> Path | None:
    cur = start.resolve()
    for parent in [cur, *cur.parents]:
        if (parent / "pyproject.toml").exists():
            return parent
    return None


def _project_root() -> Path | None:
    return _find_project_root(Path.cwd()) or _find_project_root(Path(__file__).parent)


def resolve_config_path(path: str | Path | None = None) -> Path:
    if path is not None:
        return Path(path).expanduser()

    env_path = next(
        (os.getenv(k, "").strip() for k in _CONFIG_ENV_KEYS if os.getenv(k)), ""
    )
    if env_path:
        p = Path(env_path).expanduser()
        if p.is_absolute():
            return p
        root = _project_root()
        return (root / p) if root else p

    root = _project_root()
    return (root / _DEFAULT_CONFIG_FILENAME) if root else Path(_DEFAULT_CONFIG_FILENAME)


def load_config_json(
    path: str | Path | None = None, *, require_exists: bool = False
) -> dict[str, Any]:
    cfg_path = resolve_config_path(path)
    if not cfg_path.exists():
        if require_exists:
            raise FileNotFoundError(f"Config file not found: {cfg_path}")
        return {}
    try:
        parsed = json.loads(cfg_path.read_text())
    except (OSError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


CONFIG: dict[str, Any] = load_config_json()


def set_config(config: dict[str, Any]) -> None:
    """Replace the global CONFIG dict in-place.

    This allows code that imported CONFIG at module import time to see updates.
    """
    CONFIG.clear()
    CONFIG.update(config)


def load_config(
    path: str | Path | None = None, *, require_exists: bool = False
) -> None:
    """Load config from disk into the global CONFIG dict."""
    set_config(load_config_json(path, require_exists=require_exists))


def _section(name: str) -> dict[str, Any]:
    value = CONFIG.get(name)
    return value if isinstance(value, dict) else {}


def get_rpc_urls() -> dict[str, Any]:
    urls = dict(_DEFAULT_RPC_URLS)
    env_rpc = os.environ.get("RPC_URL", "").strip()
    if env_rpc:
        urls[str(CHAIN_ID_BERACHAIN)] = env_rpc
    configured = _section("network").get("rpc_urls")
    if isinstance(configured, dict):
        urls.update({str(k): v for k, v in configured.items()})
    return urls


def get_safe_service_url() -> str:
    url = _section("safe").get("service_url") or os.environ.get("SAFE_SERVICE_URL")
    return str(url or _DEFAULT_SAFE_SERVICE_URL).strip().rstrip("/")


def get_safe_app_url() -> str:
    url = _section("safe").get("app_url")
    return str(url or _DEFAULT_SAFE_APP_URL).strip().rstrip("/")


def get_price_api_url() -> str:
    url = _section("prices").get("api_url")
    return str(url or _DEFAULT_PRICE_API_URL).strip().rstrip("/")


def get_price_api_key() -> str | None:
    api_key = _section("prices").get("api_key")
    if api_key:
        return str(api_key).strip()
    return os.environ.get("OOGABOOGA_API_KEY")


def get_metadata_base_urls() -> list[str]:
    urls = _section("metadata").get("base_urls")
    if isinstance(urls, str):
        return [urls.rstrip("/")]
    if isinstance(urls, list) and urls:
        return [str(u).rstrip("/") for u in urls]
    return list(_DEFAULT_METADATA_BASE_URLS)


def get_performance_settings() -> dict[str, Any]:
    perf = _section("performance")
    return {
        "batch_size": int(perf.get("batch_size", DEFAULT_BATCH_SIZE)),
        "batch_delay_s": float(perf.get("batch_delay_s", DEFAULT_BATCH_DELAY_S)),
        "max_retries": int(perf.get("max_retries", DEFAULT_MAX_RETRIES)),
        "base_delay_s": float(perf.get("base_delay_s", DEFAULT_BASE_RETRY_DELAY_S)),
    }


def get_keystore_dir() -> Path:
    configured = _section("keystore").get("dir") or os.environ.get(
        "BERABUNDLE_KEYSTORE_DIR"
    )
    if configured:
        return Path(str(configured)).expanduser()
    root = _project_root() or Path.cwd()
    return root / "userprefs" / "keys"
