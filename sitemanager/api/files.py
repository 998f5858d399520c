"""
Signed URL downloads. The token itself is the credential, so no login is needed.
"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from sitemanager.services.storage import BlobStore, StorageError, get_blob_store

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{token}")
async def download_signed_file(token: str, store: BlobStore = Depends(get_blob_store)):
    try:
        bucket, path = store.resolve_signed_token(token)
    except StorageError as e:
        logger.warning(f"Rejected signed URL: {e}")
        raise HTTPException(status_code=401, detail="Signed URL is invalid or has expired")

    try:
        file_path = store.open_path(bucket, path)
    except StorageError:
        raise HTTPException(status_code=404, detail="File not found in storage")

    return FileResponse(path=str(file_path), filename=file_path.name)
