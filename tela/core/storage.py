"""
File storage abstraction. S3 OR local filesystem. Controlled by FF_USE_S3 flag.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import get_settings
from .flags import get_flags

logger = logging.getLogger(__name__)


@dataclass
class StoredObject:
    filename: str   # generated name, unique per user
    path: str       # backend key / filesystem path
    url: str        # how clients fetch it


class StorageBackend(ABC):
    @abstractmethod
    async def upload(self, file_bytes: bytes, original_name: str, user_id: str, content_type: str) -> StoredObject:
        """Store bytes under the user's prefix."""
        ...

    @abstractmethod
    async def delete(self, path: str) -> None:
        ...

    async def read(self, path: str) -> Optional[bytes]:
        """Read stored bytes back. Only meaningful for local storage."""
        return None


def _unique_name(original_name: str) -> str:
    return f"{uuid.uuid4().hex[:12]}{Path(original_name).suffix.lower()}"


class S3Storage(StorageBackend):
    def __init__(self):
        self._client = None

    def _get_client(self):
        if self._client is None:
            import boto3

            settings = get_settings()
            kwargs = {"region_name": settings.aws_region}
            if settings.aws_access_key_id:
                kwargs["aws_access_key_id"] = settings.aws_access_key_id
                kwargs["aws_secret_access_key"] = settings.aws_secret_access_key
            self._client = boto3.client("s3", **kwargs)
        return self._client

    async def upload(self, file_bytes: bytes, original_name: str, user_id: str, content_type: str) -> StoredObject:
        settings = get_settings()
        name = _unique_name(original_name)
        key = f"{user_id}/files/{name}"

        self._get_client().put_object(
            Bucket=settings.s3_bucket_name,
            Key=key,
            Body=file_bytes,
            ContentType=content_type,
        )

        url = f"https://{settings.s3_bucket_name}.s3.{settings.aws_region}.amazonaws.com/{key}"
        logger.info("Uploaded to S3: %s", key)
        return StoredObject(filename=name, path=key, url=url)

    async def delete(self, path: str) -> None:
        settings = get_settings()
        self._get_client().delete_object(Bucket=settings.s3_bucket_name, Key=path)
        logger.info("Deleted from S3: %s", path)


class LocalStorage(StorageBackend):
    def __init__(self, base_path: Optional[str] = None):
        self.base_path = Path(base_path or get_settings().local_storage_path)

    async def upload(self, file_bytes: bytes, original_name: str, user_id: str, content_type: str) -> StoredObject:
        name = _unique_name(original_name)

        dir_path = self.base_path / user_id / "files"
        dir_path.mkdir(parents=True, exist_ok=True)

        file_path = dir_path / name
        file_path.write_bytes(file_bytes)

        logger.info("Saved locally: %s", file_path)
        return StoredObject(filename=name, path=str(file_path), url="")

    async def delete(self, path: str) -> None:
        Path(path).unlink(missing_ok=True)

    async def read(self, path: str) -> Optional[bytes]:
        file_path = Path(path)
        if not file_path.is_file():
            return None
        return file_path.read_bytes()


def get_storage() -> StorageBackend:
    """Return the active storage backend based on feature flags."""
    flags = get_flags()
    if flags.use_s3:
        return S3Storage()
    return LocalStorage()
