CHAIN_ID_BERACHAIN = 80094

CHAIN_EXPLORER_URLS: dict[int, str] = {
    CHAIN_ID_BERACHAIN: "https://berascan.com/",
}

# Short chain prefix used by the Safe web app in `safe=<prefix>:<address>` links.
SAFE_CHAIN_PREFIXES: dict[int, str] = {
    CHAIN_ID_BERACHAIN: "ber",
}


def get_explorer_tx_url(chain_id: int, txn_hash: str) -> str | None:
    base = CHAIN_EXPLORER_URLS.get(int(chain_id))
    if not base:
        return None
    return f"{base}tx/{txn_hash}"
