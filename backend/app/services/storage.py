"""File access for shared documents.

Recipients never get a storage path. They get a short-lived signed URL
minted by a pluggable backend. The default backend signs URLs with the
application secret; deployments backed by an object store swap in their
own implementation.

This service only mints URLs. The file host that serves `/files/...` owns
the check, calling HmacSignedUrlBackend.verify with the same secret.
"""

import hashlib
import hmac
import time
from abc import ABC, abstractmethod
from urllib.parse import quote, urlencode

from app.config import settings

# Only objects under this prefix are real uploaded files
DOCUMENTS_PREFIX = "documents/"


class FileAccessBackend(ABC):
    """Abstract signed-URL issuer."""

    @abstractmethod
    async def create_signed_url(self, key: str, expires_in: int) -> str:
        """Return a URL granting read access to `key` for `expires_in` seconds."""
        ...

    def has_file(self, key: str | None) -> bool:
        return bool(key) and DOCUMENTS_PREFIX in key


class HmacSignedUrlBackend(FileAccessBackend):
    """Signs `{base_url}/files/{key}?expires=..&signature=..` with HMAC-SHA256."""

    def __init__(self, base_url: str | None = None, secret: str | None = None):
        self._base_url = (base_url or settings.frontend_url or "http://localhost:3000").rstrip("/")
        self._secret = (secret or settings.secret_key).encode("utf-8")

    def _signature(self, key: str, expires: int) -> str:
        message = f"{key}:{expires}".encode("utf-8")
        return hmac.new(self._secret, message, hashlib.sha256).hexdigest()

    async def create_signed_url(self, key: str, expires_in: int) -> str:
        expires = int(time.time()) + expires_in
        query = urlencode({"expires": expires, "signature": self._signature(key, expires)})
        return f"{self._base_url}/files/{quote(key)}?{query}"

    def verify(self, key: str, expires: int, signature: str) -> bool:
        """Check a URL minted by create_signed_url. Used by the file host."""
        if expires < int(time.time()):
            return False
        return hmac.compare_digest(self._signature(key, expires), signature)


class InMemoryFileAccessBackend(FileAccessBackend):
    """Records issued URLs. For tests."""

    def __init__(self):
        self.issued: list[tuple[str, int]] = []

    async def create_signed_url(self, key: str, expires_in: int) -> str:
        self.issued.append((key, expires_in))
        return f"memory://{key}?expires_in={expires_in}"


# Module-level singleton, replaced in tests
_file_access: FileAccessBackend | None = None


def get_file_access() -> FileAccessBackend:
    """Get the current file access backend."""
    global _file_access
    if _file_access is None:
        _file_access = HmacSignedUrlBackend()
    return _file_access


def set_file_access(backend: FileAccessBackend | None) -> None:
    """Set the file access backend (used for testing)."""
    global _file_access
    _file_access = backend
