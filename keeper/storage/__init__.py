from functools import lru_cache

from keeper.core.config import get_settings
from keeper.storage.base import ObjectStore, StoredObject, StoredObjectInfo
from keeper.storage.local import LocalObjectStore
from keeper.storage.s3 import S3ObjectStore

__all__ = [
    "LocalObjectStore",
    "ObjectStore",
    "S3ObjectStore",
    "StoredObject",
    "StoredObjectInfo",
    "get_object_store",
]


@lru_cache
def get_object_store() -> ObjectStore:
    settings = get_settings()
    if settings.storage_backend == "local":
        return LocalObjectStore(settings.local_storage_dir)
    if settings.storage_backend == "s3":
        return S3ObjectStore(
            settings.s3_bucket_name,
            endpoint_url=settings.s3_endpoint_url,
            access_key_id=settings.aws_access_key_id,
            secret_access_key=settings.aws_secret_access_key,
            region=settings.aws_region,
        )
    raise ValueError(f"Unknown storage backend: {settings.storage_backend}")
