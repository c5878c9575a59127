"""Bucket-per-directory object storage for report images."""
import logging
import os
from typing import Iterable, Protocol
from urllib.parse import quote

from werkzeug.utils import secure_filename

from utils.errors import StorageError

logger = logging.getLogger(__name__)


class ObjectStorage(Protocol):
    def put(self, bucket: str, name: str, data: bytes) -> str: ...

    def delete(self, bucket: str, names: Iterable[str]) -> None: ...

    def public_url(self, bucket: str, name: str) -> str: ...


class LocalObjectStorage:
    """Stores objects under ``root/<bucket>/<name>`` and serves them from ``base_url``.

    Objects are never overwritten; a name collision is a StorageError.
    """

    def __init__(self, root: str, base_url: str = "/media") -> None:
        self.root = os.path.abspath(root)
        self.base_url = base_url.rstrip("/")
        os.makedirs(self.root, exist_ok=True)

    def _bucket_dir(self, bucket: str) -> str:
        safe_bucket = secure_filename(bucket)
        if not safe_bucket:
            raise StorageError("Invalid bucket name")
        return os.path.join(self.root, safe_bucket)

    def path_for(self, bucket: str, name: str) -> str:
        bucket_dir = self._bucket_dir(bucket)
        path = os.path.abspath(os.path.join(bucket_dir, name))
        if os.path.dirname(path) != bucket_dir:
            raise StorageError("Object path rejected: outside bucket", object_name=name)
        return path

    def put(self, bucket: str, name: str, data: bytes) -> str:
        path = self.path_for(bucket, name)
        try:
            os.makedirs(os.path.dirname(path), exist_ok=True)
            with open(path, "xb") as fh:
                fh.write(data)
        except FileExistsError as exc:
            raise StorageError("Object already exists", object_name=name) from exc
        except OSError as exc:
            raise StorageError(f"Upload failed: {exc.strerror or exc}", object_name=name) from exc
        return self.public_url(bucket, name)

    def delete(self, bucket: str, names: Iterable[str]) -> None:
        failed: list[str] = []
        for name in names:
            try:
                os.remove(self.path_for(bucket, name))
            except FileNotFoundError:
                continue
            except (OSError, StorageError):
                logger.warning("Object delete failed", extra={"bucket": bucket, "object": name}, exc_info=True)
                failed.append(name)
        if failed:
            raise StorageError(f"Could not remove {len(failed)} object(s)", object_name=", ".join(failed))

    def public_url(self, bucket: str, name: str) -> str:
        return f"{self.base_url}/{quote(bucket)}/{quote(name)}"
