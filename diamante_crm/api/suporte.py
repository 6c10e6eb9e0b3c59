"""Support inbox over the portal chat threads."""

from typing import Any, Dict, List
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.api.storage import get_storage
from diamante_crm.core.access_control import AccessPermission
from diamante_crm.core.authorization import AuthorizationContext, require_permission
from diamante_crm.db.session import get_db
from diamante_crm.services.portal_chat import PortalChatService
from diamante_crm.services.storage import LocalStorage

router = APIRouter(prefix="/api/suporte", tags=["suporte"])

require_suporte = require_permission(AccessPermission.SUPORTE)


@router.get("/threads")
async def list_threads(
    session: AsyncSession = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
    auth_context: AuthorizationContext = Depends(require_suporte),
) -> List[Dict[str, Any]]:
    return await PortalChatService(storage).list_threads(session)


@router.get("/threads/{thread_id}/messages")
async def thread_messages(
    thread_id: str,
    session: AsyncSession = Depends(get_db),
    storage: LocalStorage = Depends(get_storage),
    auth_context: AuthorizationContext = Depends(require_suporte),
) -> Dict[str, Any]:
    """Messages of a thread; client messages are marked as read by support."""

    return await PortalChatService(storage).thread_messages_for_support(session, thread_id)
