"""
Blob storage for uploaded compliance documents.

Objects live on the local filesystem under STORAGE_ROOT/<bucket>/<path>.
Read access goes through time-boxed signed URLs: a JWT carrying the bucket,
object path and expiry, served by the /api/files/{token} endpoint.
"""
import os
import time
import logging
from datetime import datetime, timedelta
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional, Tuple

from jose import jwt, JWTError

from sitemanager.config import get_settings

logger = logging.getLogger(__name__)

SIGNED_URL_PREFIX = "/api/files"


class StorageError(Exception):
    """Raised for any failed blob store operation"""

    def __init__(self, message: str, bucket: Optional[str] = None, path: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.bucket = bucket
        self.path = path


class StorageErrorKind(str, Enum):
    BUCKET_NOT_FOUND = "bucket_not_found"
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    GENERIC = "generic"


def classify_storage_error(error: Exception) -> Tuple[StorageErrorKind, str]:
    """Map a storage failure to a kind and a message the user can act on"""
    message = str(error)
    lowered = message.lower()

    if "bucket" in lowered and "not found" in lowered:
        bucket = getattr(error, "bucket", None) or "the storage bucket"
        return (
            StorageErrorKind.BUCKET_NOT_FOUND,
            f"Storage bucket '{bucket}' does not exist. Ask an administrator to create it.",
        )
    if any(word in lowered for word in ("permission", "policy", "denied", "unauthorized")):
        return (
            StorageErrorKind.PERMISSION_DENIED,
            "Storage permission denied. Check the storage access policy for uploads.",
        )
    if "not found" in lowered:
        return StorageErrorKind.NOT_FOUND, "File not found in storage"
    return StorageErrorKind.GENERIC, f"Storage error: {message}"


STATUS_BY_KIND = {
    StorageErrorKind.BUCKET_NOT_FOUND: 503,
    StorageErrorKind.PERMISSION_DENIED: 403,
    StorageErrorKind.NOT_FOUND: 404,
    StorageErrorKind.GENERIC: 502,
}


def storage_error_status(error: Exception) -> Tuple[int, str]:
    kind, detail = classify_storage_error(error)
    return STATUS_BY_KIND[kind], detail


def build_object_path(owner_id, document_type: str, filename: str) -> str:
    """<owner_id>/<document_type>_<timestamp>.<ext>"""
    ext = os.path.splitext(filename or "")[1].lower()
    timestamp = int(time.time() * 1000)
    return f"{owner_id}/{document_type}_{timestamp}{ext}"


class BlobStore:
    def __init__(
        self,
        root: str,
        secret_key: str,
        algorithm: str = "HS256",
        auto_create_buckets: bool = True,
        default_expiry: int = 3600,
    ):
        self.root = Path(root)
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.auto_create_buckets = auto_create_buckets
        self.default_expiry = default_expiry

    # --- Paths ---

    def _bucket_dir(self, bucket: str, create: bool = False) -> Path:
        if not bucket or "/" in bucket or bucket in (".", ".."):
            raise StorageError(f"Invalid bucket name: {bucket}", bucket=bucket)
        bucket_dir = self.root / bucket
        if not bucket_dir.is_dir():
            if create and self.auto_create_buckets:
                bucket_dir.mkdir(parents=True, exist_ok=True)
                logger.info(f"Created storage bucket {bucket}")
            else:
                raise StorageError(f"Bucket not found: {bucket}", bucket=bucket)
        return bucket_dir

    def _object_path(self, bucket: str, path: str, create_bucket: bool = False) -> Path:
        bucket_dir = self._bucket_dir(bucket, create=create_bucket)
        target = os.path.realpath(os.path.join(bucket_dir, path))
        base = os.path.realpath(bucket_dir)
        if not path or not target.startswith(base + os.sep):
            raise StorageError(f"Access denied for object path: {path}", bucket=bucket, path=path)
        return Path(target)

    # --- Operations ---

    def upload(self, bucket: str, path: str, data: bytes, upsert: bool = False) -> str:
        target = self._object_path(bucket, path, create_bucket=True)
        if target.exists() and not upsert:
            raise StorageError(f"Object already exists: {path}", bucket=bucket, path=path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except PermissionError as e:
            raise StorageError(f"Permission denied writing {path}: {e}", bucket=bucket, path=path)
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}", bucket=bucket, path=path)
        logger.info(f"Stored {bucket}/{path} ({len(data)} bytes)")
        return path

    def exists(self, bucket: str, path: str) -> bool:
        try:
            return self._object_path(bucket, path).is_file()
        except StorageError:
            return False

    def open_path(self, bucket: str, path: str) -> Path:
        target = self._object_path(bucket, path)
        if not target.is_file():
            raise StorageError(f"Object not found: {path}", bucket=bucket, path=path)
        return target

    def delete(self, bucket: str, path: str) -> bool:
        """Remove an object; returns False when it was already gone"""
        target = self._object_path(bucket, path)
        try:
            target.unlink()
        except FileNotFoundError:
            logger.warning(f"File already deleted: {bucket}/{path}")
            return False
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}", bucket=bucket, path=path)
        logger.info(f"Deleted {bucket}/{path}")
        return True

    # --- Signed URLs ---

    def create_signed_url(self, bucket: str, path: str, expires_in: Optional[int] = None) -> Dict:
        self.open_path(bucket, path)
        expires_in = expires_in or self.default_expiry
        expires_at = datetime.utcnow() + timedelta(seconds=expires_in)
        token = jwt.encode(
            {"bucket": bucket, "path": path, "exp": expires_at, "scope": "file"},
            self.secret_key,
            algorithm=self.algorithm,
        )
        return {
            "signed_url": f"{SIGNED_URL_PREFIX}/{token}",
            "expires_in": expires_in,
            "expires_at": expires_at,
        }

    def resolve_signed_token(self, token: str) -> Tuple[str, str]:
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
        except JWTError as e:
            raise StorageError(f"Unauthorized: invalid or expired signed URL ({e})")
        if payload.get("scope") != "file" or not payload.get("bucket") or not payload.get("path"):
            raise StorageError("Unauthorized: malformed signed URL")
        return payload["bucket"], payload["path"]


@lru_cache()
def get_blob_store() -> BlobStore:
    settings = get_settings()
    return BlobStore(
        root=settings.STORAGE_ROOT,
        secret_key=settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
        auto_create_buckets=settings.STORAGE_AUTO_CREATE_BUCKETS,
        default_expiry=settings.SIGNED_URL_EXPIRY_SECONDS,
    )
