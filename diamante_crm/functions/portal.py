"""
Edge functions of the client portal.

Each function answers ``POST /functions/v1/<name>`` with a JSON body and
reports failures as ``{"error": message}`` with the matching status.
"""

import logging
from typing import Any, Dict
from fastapi import APIRouter, Body, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.api.storage import get_storage
from diamante_crm.core.tenant import get_current_user
from diamante_crm.db.models import AuthUser
from diamante_crm.db.session import get_db
from diamante_crm.schemas.portal import (
    ClientLoginRequest,
    ContractSelectRequest,
    GlobalSearchRequest,
    SignedUrlRequest,
)
from diamante_crm.services.client_login import INVALID_INPUT, ClientLoginService
from diamante_crm.services.portal import ContractAccessService, GlobalSearchService
from diamante_crm.services.storage import LocalStorage, SignedUrlService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/functions/v1", tags=["functions"])


@router.post("/client-login")
async def client_login(
    body: Any = Body(default=None),
    session: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Portal login with CPF and the 6-digit access code.

    Repeated failures lock the CPF for a while (423 with
    ``locked_until``/``remaining_seconds``).
    """

    payload = ClientLoginRequest.from_body(body)
    return await ClientLoginService().login(session, payload.cpf, payload.pass6)


@router.post("/contract-select")
async def contract_select(
    body: Any = Body(default=None),
    session: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> Dict[str, Any]:
    payload = ContractSelectRequest.from_body(body)
    return await ContractAccessService().select_contract(session, user, payload.contract_number)


@router.post("/global-search")
async def global_search(
    body: Any = Body(default=None),
    session: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
) -> Dict[str, Any]:
    payload = GlobalSearchRequest.from_body(body)
    return await GlobalSearchService().search(session, user, payload.q, payload.contract_number)


@router.post("/signed-url")
async def signed_url(
    body: Any = Body(default=None),
    session: AsyncSession = Depends(get_db),
    user: AuthUser = Depends(get_current_user),
    storage: LocalStorage = Depends(get_storage),
) -> Dict[str, Any]:
    payload = SignedUrlRequest.from_body(body)
    return await SignedUrlService(storage).create_signed_url(
        session, user, payload.bucket, payload.path, payload.expires_in
    )


def invalid_body_response(path: str) -> JSONResponse:
    """400 for a request body that is not parseable JSON."""

    if path.rstrip("/").endswith("/client-login"):
        return JSONResponse(status_code=400, content={"error": INVALID_INPUT})
    if path.rstrip("/").endswith("/portal-chat"):
        return JSONResponse(status_code=400, content={"ok": False, "error": "Acao obrigatoria."})
    return JSONResponse(status_code=400, content={"error": "Corpo da requisição inválido."})
