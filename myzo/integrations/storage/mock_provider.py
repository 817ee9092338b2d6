from __future__ import annotations

from myzo.integrations.storage.base import StorageProvider


class MockStorageProvider(StorageProvider):
    name = "mock"
    objects: dict[str, bytes] = {}

    def put_object(self, *, key: str, data: bytes, content_type: str) -> str:
        MockStorageProvider.objects[key] = data
        return f"https://storage.example.com/{key}"
