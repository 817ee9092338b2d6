from __future__ import annotations


class StorageProvider:
    name = "unknown"

    def put_object(self, *, key: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``key`` and return its public URL."""
        raise NotImplementedError
