import logging
from typing import Any, Dict, List
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.core.access_control import AccessPermission
from diamante_crm.core.authorization import AuthorizationContext, require_permission
from diamante_crm.db.session import get_db
from diamante_crm.schemas.sales import CommissionSettingsUpdate, SaleCommunicationCreate
from diamante_crm.services.sales import SalesService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/vendas", tags=["vendas"])

require_funil = require_permission(AccessPermission.FUNIL)


@router.get("/comissao")
async def get_commission(
    session: AsyncSession = Depends(get_db),
    auth_context: AuthorizationContext = Depends(require_funil),
) -> Dict[str, Any]:
    return await SalesService().get_commission(session, auth_context.agency_id)


@router.put("/comissao")
async def set_commission(
    payload: CommissionSettingsUpdate,
    session: AsyncSession = Depends(get_db),
    auth_context: AuthorizationContext = Depends(require_funil),
) -> Dict[str, Any]:
    return await SalesService().set_commission(
        session, auth_context.agency_id, payload.percentual, updated_by=auth_context.user.id
    )


@router.get("/comunicacoes")
async def list_communications(
    session: AsyncSession = Depends(get_db),
    auth_context: AuthorizationContext = Depends(require_funil),
) -> List[Dict[str, Any]]:
    return await SalesService().list_communications(session, auth_context.agency_id)


@router.post("/comunicacoes", status_code=status.HTTP_201_CREATED)
async def register_sale(
    payload: SaleCommunicationCreate,
    session: AsyncSession = Depends(get_db),
    auth_context: AuthorizationContext = Depends(require_funil),
) -> Dict[str, Any]:
    """Register a sale communicated by a broker and compute its commission."""

    return await SalesService().register_sale(
        session, auth_context.agency_id, payload, registered_by=auth_context.user.id
    )
