"""
Local disk object store.

Objects live under a root directory at their key path; content type and
custom metadata go to a ``<key>.meta.json`` sidecar next to the bytes.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from keeper.core.errors import ObjectNotFound, StorageFailure
from keeper.storage.base import HASH_META_KEY, NAME_META_KEY, ObjectStore, StoredObject, StoredObjectInfo

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024
META_SUFFIX = ".meta.json"


class LocalObjectStore(ObjectStore):
    def __init__(self, root):
        self.root = Path(root).resolve()

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise StorageFailure("Invalid storage key")
        return path

    @staticmethod
    def _meta_path(path: Path) -> Path:
        return path.with_name(path.name + META_SUFFIX)

    def ensure_bucket(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def put(self, key: str, data: bytes, content_type: str, metadata: Optional[dict] = None) -> StoredObjectInfo:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
            self._meta_path(path).write_text(
                json.dumps({"content_type": content_type, "metadata": metadata or {}})
            )
        except OSError:
            logger.exception(f"Failed to write object {key}")
            raise StorageFailure("Failed to upload file")
        return self.stat(key)

    def get(self, key: str) -> StoredObject:
        info = self.stat(key)
        return StoredObject(info=info, body=self._iter_file(self._path(key)))

    @staticmethod
    def _iter_file(path: Path) -> Iterator[bytes]:
        with open(path, "rb") as fh:
            while True:
                chunk = fh.read(CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk

    def delete(self, key: str) -> None:
        path = self._path(key)
        try:
            path.unlink(missing_ok=True)
            self._meta_path(path).unlink(missing_ok=True)
        except OSError:
            logger.exception(f"Failed to delete object {key}")
            raise StorageFailure("Failed to delete file")

    def stat(self, key: str) -> StoredObjectInfo:
        path = self._path(key)
        if not path.is_file():
            raise ObjectNotFound(key)

        content_type = "application/octet-stream"
        metadata = {}
        meta_path = self._meta_path(path)
        if meta_path.is_file():
            sidecar = json.loads(meta_path.read_text())
            content_type = sidecar.get("content_type") or content_type
            metadata = sidecar.get("metadata") or {}

        st = path.stat()
        return StoredObjectInfo(
            key=key,
            size=st.st_size,
            content_type=content_type,
            last_modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            content_hash=metadata.get(HASH_META_KEY),
            original_name=metadata.get(NAME_META_KEY),
        )

    def presign(self, key: str, expires_in: int = 3600) -> str:
        raise StorageFailure("Presigned URLs are not supported by local storage")

    def usage(self, prefix: str = "") -> tuple[int, int]:
        base = self.root / prefix if prefix else self.root
        if not base.exists():
            return 0, 0
        total_size = 0
        count = 0
        for path in base.rglob("*"):
            if path.is_file() and not path.name.endswith(META_SUFFIX):
                total_size += path.stat().st_size
                count += 1
        return total_size, count
