from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from eth_account import Account

from berabundle.core.config import get_keystore_dir
from berabundle.core.utils.addresses import require_address


class KeyNotFoundError(LookupError):
    def __init__(self, address: str):
        self.address = address
        super().__init__(f"No private key found for address {address}")


class KeyDecryptionError(RuntimeError):
    def __init__(self, address: str, message: str | None = None):
        self.address = address
        super().__init__(
            message
            or f"Failed to decrypt private key for {address}. "
            "Incorrect password or corrupted data."
        )


class KeyStore:
    """Encrypted eth-account keystore files, one per address.

    Files live at ``<dir>/<checksum address>.json``. Decrypted keys are only
    handed out through :meth:`unlocked_key` and never cached.
    """

    def __init__(
        self,
        directory: str | Path | None = None,
        *,
        kdf: str | None = None,
        iterations: int | None = None,
    ):
        self.directory = Path(directory) if directory is not None else get_keystore_dir()
        self.kdf = kdf
        self.iterations = iterations

    def path_for(self, address: str) -> Path:
        return self.directory / f"{require_address(address)}.json"

    def has_key(self, address: str) -> bool:
        return self.path_for(address).exists()

    def list_addresses(self) -> list[str]:
        if not self.directory.exists():
            return []
        return sorted(p.stem for p in self.directory.glob("0x*.json"))

    def save_key(self, address: str, private_key: str | bytes, password: str) -> Path:
        checksum = require_address(address)
        account = Account.from_key(private_key)
        if account.address != checksum:
            raise ValueError(
                f"Private key belongs to {account.address}, not {checksum}"
            )
        encrypted = Account.encrypt(
            account.key, password, kdf=self.kdf, iterations=self.iterations
        )
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path_for(checksum)
        path.write_text(json.dumps(encrypted, indent=2), encoding="utf-8")
        return path

    def decrypt(self, address: str, password: str) -> bytes:
        checksum = require_address(address)
        path = self.path_for(checksum)
        if not path.exists():
            raise KeyNotFoundError(checksum)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            return bytes(Account.decrypt(data, password))
        except Exception as exc:
            raise KeyDecryptionError(checksum) from exc

    @contextmanager
    def unlocked_key(self, address: str, password: str) -> Iterator[bytes]:
        """Yield the decrypted key for the duration of one signing operation."""
        key = bytearray(self.decrypt(address, password))
        try:
            yield bytes(key)
        finally:
            for i in range(len(key)):
                key[i] = 0
            del key
