from __future__ import annotations

import os

from myzo.integrations.common import require_env
from myzo.integrations.storage.base import StorageProvider
from myzo.integrations.storage.mock_provider import MockStorageProvider
from myzo.integrations.storage.s3_provider import S3StorageProvider


def build_storage_provider() -> StorageProvider:
    name = (os.getenv("STORAGE_PROVIDER") or "mock").strip().lower()
    if name != "s3":
        return MockStorageProvider()
    env = require_env("AWS_REGION", "AWS_S3_BUCKET_NAME")
    return S3StorageProvider(
        bucket=env["AWS_S3_BUCKET_NAME"],
        region=env["AWS_REGION"],
        public_base_url=(os.getenv("AWS_S3_BUCKET_URL") or "").strip(),
    )
