from typing import Any, Dict, List
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.core.access_control import AccessPermission
from diamante_crm.core.authorization import AuthorizationContext, require_permission
from diamante_crm.db.session import get_db
from diamante_crm.schemas.sales import BrokerRegistration, BrokerValidationRequest
from diamante_crm.services.crm import to_dict
from diamante_crm.services.sales import BrokerRegistryService

router = APIRouter(prefix="/api/corretores", tags=["corretores"])

require_funil = require_permission(AccessPermission.FUNIL)


@router.get("")
async def list_brokers(
    session: AsyncSession = Depends(get_db),
    auth_context: AuthorizationContext = Depends(require_funil),
) -> List[Dict[str, Any]]:
    return await BrokerRegistryService().list_brokers(session, auth_context.agency_id)


@router.post("")
async def register_broker(
    payload: BrokerRegistration,
    session: AsyncSession = Depends(get_db),
    auth_context: AuthorizationContext = Depends(require_funil),
) -> Dict[str, Any]:
    """Create or update a broker; a code is generated when none is given."""

    return await BrokerRegistryService().register(session, auth_context.agency_id, payload)


@router.post("/validar")
async def validate_broker(
    payload: BrokerValidationRequest,
    session: AsyncSession = Depends(get_db),
    auth_context: AuthorizationContext = Depends(require_funil),
) -> Dict[str, Any]:
    broker = await BrokerRegistryService().validate(
        session, auth_context.agency_id, payload.broker_code, payload.broker_cpf, payload.broker_creci
    )
    return {"ok": True, "broker": to_dict(broker)}
