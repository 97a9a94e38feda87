"""
S3 object store.

Works against AWS S3 and S3-compatible services (MinIO, LocalStack) through
boto3. Every botocore error is mapped to StorageFailure, except a missing key
which becomes ObjectNotFound.
"""

import logging
from typing import Optional
from urllib.parse import quote, unquote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from keeper.core.errors import ObjectNotFound, StorageFailure
from keeper.storage.base import HASH_META_KEY, NAME_META_KEY, ObjectStore, StoredObject, StoredObjectInfo

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


def _is_missing(error: ClientError) -> bool:
    return error.response.get("Error", {}).get("Code") in _MISSING_CODES


class S3ObjectStore(ObjectStore):
    def __init__(self, bucket: str, client=None, region: Optional[str] = None, **client_kwargs):
        self.bucket = bucket
        self.region = region
        self._client = client if client is not None else self._make_client(region=region, **client_kwargs)

    @staticmethod
    def _make_client(
        endpoint_url: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        region: Optional[str] = None,
    ):
        kwargs = {
            "region_name": region,
            "config": Config(signature_version="s3v4"),
        }
        # fall back to the default credential chain when keys are not set
        if access_key_id and secret_access_key:
            kwargs["aws_access_key_id"] = access_key_id
            kwargs["aws_secret_access_key"] = secret_access_key
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
            logger.info(f"Using custom S3 endpoint: {endpoint_url}")
        return boto3.client("s3", **kwargs)

    def ensure_bucket(self) -> None:
        try:
            self._client.head_bucket(Bucket=self.bucket)
            return
        except ClientError as e:
            if not _is_missing(e):
                logger.exception(f"Cannot access bucket {self.bucket}")
                raise StorageFailure("Object store unavailable")
        except BotoCoreError:
            logger.exception(f"Cannot access bucket {self.bucket}")
            raise StorageFailure("Object store unavailable")

        kwargs = {"Bucket": self.bucket}
        # us-east-1 rejects an explicit LocationConstraint, every other region requires one
        if self.region and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {"LocationConstraint": self.region}
        try:
            self._client.create_bucket(**kwargs)
        except (BotoCoreError, ClientError):
            logger.exception(f"Failed to create bucket {self.bucket}")
            raise StorageFailure("Object store unavailable")
        logger.info(f"Created bucket: {self.bucket}")

    def put(self, key: str, data: bytes, content_type: str, metadata: Optional[dict] = None) -> StoredObjectInfo:
        # S3 user metadata must be ASCII
        s3_metadata = {k: quote(str(v)) for k, v in (metadata or {}).items()}
        try:
            result = self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=s3_metadata,
            )
        except (BotoCoreError, ClientError):
            logger.exception(f"Failed to upload object {key}")
            raise StorageFailure("Failed to upload file")

        return StoredObjectInfo(
            key=key,
            size=len(data),
            content_type=content_type,
            etag=result.get("ETag", "").strip('"') or None,
            content_hash=(metadata or {}).get(HASH_META_KEY),
            original_name=(metadata or {}).get(NAME_META_KEY),
        )

    def get(self, key: str) -> StoredObject:
        try:
            obj = self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_missing(e):
                raise ObjectNotFound(key)
            logger.exception(f"Failed to download object {key}")
            raise StorageFailure("Failed to download file")
        except BotoCoreError:
            logger.exception(f"Failed to download object {key}")
            raise StorageFailure("Failed to download file")

        return StoredObject(info=self._info(key, obj), body=obj["Body"].iter_chunks(CHUNK_SIZE))

    def delete(self, key: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError):
            logger.exception(f"Failed to delete object {key}")
            raise StorageFailure("Failed to delete file")

    def stat(self, key: str) -> StoredObjectInfo:
        try:
            head = self._client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if _is_missing(e):
                raise ObjectNotFound(key)
            logger.exception(f"Failed to stat object {key}")
            raise StorageFailure("Failed to get file info")
        except BotoCoreError:
            logger.exception(f"Failed to stat object {key}")
            raise StorageFailure("Failed to get file info")
        return self._info(key, head)

    def presign(self, key: str, expires_in: int = 3600) -> str:
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (BotoCoreError, ClientError):
            logger.exception(f"Failed to presign object {key}")
            raise StorageFailure("Failed to generate download URL")

    def usage(self, prefix: str = "") -> tuple[int, int]:
        total_size = 0
        count = 0
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
                for obj in page.get("Contents", []):
                    total_size += obj["Size"]
                    count += 1
        except (BotoCoreError, ClientError):
            logger.exception("Failed to list objects")
            raise StorageFailure("Failed to get storage usage")
        return total_size, count

    @staticmethod
    def _info(key: str, response: dict) -> StoredObjectInfo:
        metadata = response.get("Metadata") or {}
        return StoredObjectInfo(
            key=key,
            size=response.get("ContentLength", 0),
            content_type=response.get("ContentType") or "application/octet-stream",
            etag=response.get("ETag", "").strip('"') or None,
            last_modified=response.get("LastModified"),
            content_hash=unquote(metadata[HASH_META_KEY]) if HASH_META_KEY in metadata else None,
            original_name=unquote(metadata[NAME_META_KEY]) if NAME_META_KEY in metadata else None,
        )
