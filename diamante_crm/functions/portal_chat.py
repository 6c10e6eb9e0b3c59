import logging
from typing import Any, Optional
from fastapi import APIRouter, Body, Depends, Header
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.api.storage import get_storage
from diamante_crm.core.exceptions import BusinessLogicError
from diamante_crm.core.tenant import resolve_bearer_user
from diamante_crm.db.session import get_db
from diamante_crm.services.portal_chat import PortalChatService
from diamante_crm.services.storage import LocalStorage

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/functions/v1", tags=["functions"])


@router.post("/portal-chat")
async def portal_chat(
    body: Any = Body(default=None),
    session: AsyncSession = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
    authorization: Optional[str] = Header(default=None),
) -> JSONResponse:
    """Client/support chat, dispatched on ``body["action"]``.

    Answers ``{"ok": true, "data": ...}`` or ``{"ok": false, "error": ...}``.
    The bearer token is only needed by ``support_send_message``.
    """

    if not isinstance(body, dict):
        body = {}
    try:
        user = None
        if body.get("action") == "support_send_message":
            user = await resolve_bearer_user(session, authorization)
        data = await PortalChatService(storage).handle(session, body, user)
    except BusinessLogicError as exc:
        await session.rollback()
        logger.info("Portal chat request refused", extra={"action": body.get("action"), "error": exc.message})
        return JSONResponse(status_code=exc.status_code, content={"ok": False, "error": exc.message})
    return JSONResponse(content={"ok": True, "data": data})
