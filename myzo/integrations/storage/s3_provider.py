from __future__ import annotations

import logging
import time

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from myzo.integrations.common import IntegrationCallError
from myzo.integrations.storage.base import StorageProvider

logger = logging.getLogger(__name__)


class S3StorageProvider(StorageProvider):
    name = "s3"

    def __init__(self, *, bucket: str, region: str, public_base_url: str = ""):
        self.bucket = bucket
        self.region = region
        self.public_base_url = public_base_url.rstrip("/")
        self.client = boto3.client("s3", region_name=region or None)

    def _url_for(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    def put_object(self, *, key: str, data: bytes, content_type: str) -> str:
        started = time.perf_counter()
        try:
            self.client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                CacheControl="public, max-age=31536000, immutable",
            )
        except (BotoCoreError, ClientError) as e:
            logger.exception("s3_put_object_failed bucket=%s key=%s", self.bucket, key)
            raise IntegrationCallError(f"S3_UPLOAD_FAILED:{type(e).__name__}") from e
        logger.info(
            "s3_put_object key=%s size=%d latency_ms=%.1f",
            key,
            len(data),
            (time.perf_counter() - started) * 1000.0,
        )
        return self._url_for(key)
