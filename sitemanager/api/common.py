"""
Shared router helpers: lookups, degraded fetches, uploads and storage errors
"""
import os
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import HTTPException, UploadFile
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sitemanager.config import get_settings
from sitemanager.services.storage import BlobStore, StorageError, build_object_path, storage_error_status

logger = logging.getLogger(__name__)
settings = get_settings()

ALLOWED_EXTENSIONS = {
    ".pdf", ".jpg", ".jpeg", ".png", ".webp",
    ".xlsx", ".xls", ".docx", ".doc",
}


async def get_or_404(db: AsyncSession, model, obj_id: int, label: str, *options):
    query = select(model).where(model.id == obj_id)
    if options:
        # Reload eager collections that may already sit in the identity map
        query = query.options(*options).execution_options(populate_existing=True)
    result = await db.execute(query)
    obj = result.scalar_one_or_none()
    if not obj:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    return obj


async def fetch_optional(db: AsyncSession, query, what: str) -> List:
    """Fetch rows for an optional relation; a failed query degrades to no rows"""
    try:
        result = await db.execute(query)
        return list(result.scalars().all())
    except SQLAlchemyError as e:
        logger.warning(f"Could not load {what}, continuing without it: {e}")
        return []


async def read_upload(file: UploadFile, allowed: Optional[set] = None) -> bytes:
    ext = os.path.splitext(file.filename or "")[1].lower()
    if ext not in (allowed or ALLOWED_EXTENSIONS):
        raise HTTPException(400, f"File type '{ext}' not allowed.")

    content = await file.read()
    max_bytes = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
    if len(content) > max_bytes:
        raise HTTPException(413, f"File too large. Maximum size: {settings.MAX_UPLOAD_SIZE_MB}MB")
    if not content:
        raise HTTPException(400, "Uploaded file is empty")
    return content


def raise_storage_error(error: StorageError):
    status_code, detail = storage_error_status(error)
    logger.error(f"Storage operation failed: {error}")
    raise HTTPException(status_code=status_code, detail=detail)


def remove_stored_file(store: BlobStore, bucket: str, path: Optional[str]) -> None:
    """Best-effort delete, called once the metadata change is committed"""
    if not path:
        return
    try:
        store.delete(bucket, path)
    except StorageError as e:
        logger.error(f"Failed to delete file {bucket}/{path}: {e}")


def signed_url_or_error(store: BlobStore, bucket: str, path: Optional[str]) -> dict:
    if not path:
        raise HTTPException(status_code=404, detail="No file uploaded")
    try:
        return store.create_signed_url(bucket, path, settings.SIGNED_URL_EXPIRY_SECONDS)
    except StorageError as e:
        raise_storage_error(e)


def clear_document_file(doc) -> Optional[str]:
    """Detach the file from the document; returns the path to remove once committed"""
    old_path = doc.file_path
    doc.file_path = None
    doc.file_name = None
    doc.is_uploaded = False
    doc.uploaded_at = None
    return old_path


def set_document_applicability(doc, is_applicable: bool) -> Optional[str]:
    """Not applicable means no file: any stored one is discarded after commit"""
    stale = clear_document_file(doc) if not is_applicable else None
    doc.is_applicable = is_applicable
    return stale


async def store_document_file(doc, file: UploadFile, store: BlobStore, bucket: str, owner_prefix) -> Optional[str]:
    """Upload the file and point the document at it; returns the superseded path, if any"""
    if not doc.is_applicable:
        raise HTTPException(status_code=400, detail="Document is marked not applicable")

    content = await read_upload(file)
    doc_type = getattr(doc, "document_type", None)
    path = build_object_path(owner_prefix, getattr(doc_type, "value", doc_type) or "dc", file.filename)
    try:
        store.upload(bucket, path, content, upsert=True)
    except StorageError as e:
        raise_storage_error(e)

    old_path = doc.file_path
    doc.file_path = path
    doc.file_name = file.filename
    doc.is_uploaded = True
    doc.uploaded_at = datetime.utcnow()
    logger.info(f"Stored {bucket}/{path} for {doc.__class__.__name__} {doc.id} ({len(content)} bytes)")
    return old_path if old_path != path else None
