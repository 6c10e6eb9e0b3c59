"""
Object download routes backing the signed and public URLs handed out by the
edge functions.
"""

import logging
from typing import Optional
from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse
from starlette.concurrency import run_in_threadpool

from diamante_crm.core.exceptions import NotFoundError
from diamante_crm.services.storage import LocalStorage, SignedUrlService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/storage/v1/object", tags=["storage"])


def get_storage() -> LocalStorage:
    """Storage backend dependency; tests override it with a temporary root."""

    return LocalStorage()


async def _file_response(target) -> FileResponse:
    if not await run_in_threadpool(target.is_file):
        raise NotFoundError("Arquivo não encontrado.")
    return FileResponse(target)


@router.get("/sign/{bucket}/{path:path}")
async def download_signed(
    bucket: str,
    path: str,
    token: Optional[str] = Query(default=None),
    storage: LocalStorage = Depends(get_storage),
) -> FileResponse:
    target = SignedUrlService(storage).resolve_signed(bucket, path, token)
    return await _file_response(target)


@router.get("/public/{bucket}/{path:path}")
async def download_public(
    bucket: str,
    path: str,
    storage: LocalStorage = Depends(get_storage),
) -> FileResponse:
    target = SignedUrlService(storage).resolve_public(bucket, path)
    return await _file_response(target)
