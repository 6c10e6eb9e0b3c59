from typing import Any, Dict
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.core.access_control import AccessPermission
from diamante_crm.core.authorization import AuthorizationContext, require_permission
from diamante_crm.db.session import get_db
from diamante_crm.services.dashboard import DashboardService

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("")
async def dashboard(
    session: AsyncSession = Depends(get_db),
    auth_context: AuthorizationContext = Depends(require_permission(AccessPermission.DASHBOARD)),
) -> Dict[str, Any]:
    return await DashboardService().summary(session, auth_context.agency_id)
