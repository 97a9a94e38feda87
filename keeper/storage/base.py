from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Optional

from keeper.core.errors import ObjectNotFound

HASH_META_KEY = "x-file-hash"
NAME_META_KEY = "x-original-name"


@dataclass
class StoredObjectInfo:
    key: str
    size: int
    content_type: str = "application/octet-stream"
    etag: Optional[str] = None
    last_modified: Optional[datetime] = None
    content_hash: Optional[str] = None
    original_name: Optional[str] = None


@dataclass
class StoredObject:
    """An object opened for reading. ``body`` yields the bytes in chunks."""

    info: StoredObjectInfo
    body: Iterator[bytes] = field(repr=False)

    def read(self) -> bytes:
        return b"".join(self.body)


class ObjectStore:
    """Blob backend used by the file service. Keys are opaque strings."""

    def ensure_bucket(self) -> None:
        raise NotImplementedError

    def put(self, key: str, data: bytes, content_type: str, metadata: Optional[dict] = None) -> StoredObjectInfo:
        raise NotImplementedError

    def get(self, key: str) -> StoredObject:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def stat(self, key: str) -> StoredObjectInfo:
        raise NotImplementedError

    def presign(self, key: str, expires_in: int = 3600) -> str:
        raise NotImplementedError

    def usage(self, prefix: str = "") -> tuple[int, int]:
        """Return (total_size, object_count) for keys under prefix."""
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        try:
            self.stat(key)
        except ObjectNotFound:
            return False
        return True
