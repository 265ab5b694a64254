"""
Process-local display handles for binary image data.

A display handle is an opaque string ("blob:medialib/<uuid>") standing for
image bytes held in memory, the way a browser blob URL stands for a Blob.
Handles are only meaningful inside the process that issued them, so they
are never persisted or exported: the cache derives a fresh handle from
the stored blob on every read.

Issuing a handle under a key revokes the handle previously issued under
the same key, which bounds memory to one live handle per track or artist.
"""

import threading
import uuid


HANDLE_PREFIX = "blob:medialib/"


class DisplayHandleRegistry:
    """Thread-safe registry of live display handles."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._blobs: dict[str, tuple[bytes, str | None]] = {}
        self._by_key: dict[str, str] = {}

    def create(self, data: bytes, mime: str | None = None, key: str | None = None) -> str:
        """
        Issue a handle for image bytes.

        Args:
            data: Image bytes.
            mime: MIME type, if known.
            key: Owner of the handle (e.g. a fingerprint). The handle
                 previously issued for the same key is revoked.
        """
        handle = f"{HANDLE_PREFIX}{uuid.uuid4()}"
        with self._lock:
            if key is not None:
                previous = self._by_key.pop(key, None)
                if previous is not None:
                    self._blobs.pop(previous, None)
                self._by_key[key] = handle
            self._blobs[handle] = (data, mime)
        return handle

    def resolve(self, handle: str) -> tuple[bytes, str | None] | None:
        """Bytes and MIME type behind a live handle, None once revoked."""
        with self._lock:
            return self._blobs.get(handle)

    def revoke(self, handle: str) -> None:
        with self._lock:
            self._blobs.pop(handle, None)
            for key, value in list(self._by_key.items()):
                if value == handle:
                    del self._by_key[key]

    def revoke_key(self, key: str) -> None:
        with self._lock:
            handle = self._by_key.pop(key, None)
            if handle is not None:
                self._blobs.pop(handle, None)

    def revoke_all(self) -> None:
        with self._lock:
            self._blobs.clear()
            self._by_key.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._blobs)
