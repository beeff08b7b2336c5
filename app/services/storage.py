from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Any

import boto3

from app.core.config import Settings

# Lesson media never changes once published under a given key
CACHE_CONTROL = "public, max-age=31536000"


class ObjectStorage:
    """Thin wrapper over an S3-compatible bucket for publishing lesson media."""

    def __init__(self, client: Any, bucket: str, public_base_url: str | None = None) -> None:
        self._client = client
        self._bucket = bucket
        self._public_base_url = (public_base_url or f"https://{bucket}.s3.amazonaws.com").rstrip("/")

    @property
    def bucket(self) -> str:
        return self._bucket

    def upload_file(self, local_path: Path, key: str) -> None:
        content_type = mimetypes.guess_type(local_path.name)[0] or "application/octet-stream"
        # upload_file switches to multipart for large videos
        self._client.upload_file(
            str(local_path),
            self._bucket,
            key,
            ExtraArgs={
                "CacheControl": CACHE_CONTROL,
                "ContentType": content_type,
                "ACL": "public-read",
            },
        )

    def public_url(self, key: str) -> str:
        return f"{self._public_base_url}/{key.lstrip('/')}"


def build_object_storage(settings: Settings) -> ObjectStorage:
    client = boto3.client("s3", endpoint_url=settings.s3_endpoint_url, region_name=settings.s3_region)
    return ObjectStorage(client, settings.s3_bucket, settings.public_base_url)
