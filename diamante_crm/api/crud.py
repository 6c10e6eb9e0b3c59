"""
CRUD routes for the CRM resources.

One router per resource is built from the registry in
:mod:`diamante_crm.services.crm`; every route is gated by the permission of
its resource and scoped to the caller's agency.
"""

import logging
from typing import Any, Dict, List
from fastapi import APIRouter, Body, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.core.access_control import AccessPermission
from diamante_crm.core.authorization import AuthorizationContext, require_permission
from diamante_crm.db.session import get_db
from diamante_crm.schemas.forms import LeadStageUpdate
from diamante_crm.services.crm import RESOURCES, CrmResource, CrmService, LeadService

logger = logging.getLogger(__name__)


def build_crud_router(resource: CrmResource) -> APIRouter:
    """Build the list/get/create/update/delete routes of ``resource``."""

    router = APIRouter(prefix=f"/api/{resource.name}", tags=[resource.name])
    guard = require_permission(resource.permission)
    form = resource.form

    @router.get("")
    async def list_records(
        session: AsyncSession = Depends(get_db),
        auth_context: AuthorizationContext = Depends(guard),
    ) -> List[Dict[str, Any]]:
        return await CrmService(resource).list_records(session, auth_context.agency_id)

    @router.get("/{record_id}")
    async def get_record(
        record_id: str,
        session: AsyncSession = Depends(get_db),
        auth_context: AuthorizationContext = Depends(guard),
    ) -> Dict[str, Any]:
        return await CrmService(resource).get_record(session, auth_context.agency_id, record_id)

    @router.post("", status_code=status.HTTP_201_CREATED)
    async def create_record(
        payload: form,  # type: ignore[valid-type]
        session: AsyncSession = Depends(get_db),
        auth_context: AuthorizationContext = Depends(guard),
    ) -> Dict[str, Any]:
        return await CrmService(resource).create_record(
            session, auth_context.agency_id, payload, user_id=auth_context.user.id
        )

    @router.patch("/{record_id}")
    async def update_record(
        record_id: str,
        payload: Dict[str, Any] = Body(...),
        session: AsyncSession = Depends(get_db),
        auth_context: AuthorizationContext = Depends(guard),
    ) -> Dict[str, Any]:
        return await CrmService(resource).update_record(
            session, auth_context.agency_id, record_id, payload, user_id=auth_context.user.id
        )

    @router.delete("/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_record(
        record_id: str,
        session: AsyncSession = Depends(get_db),
        auth_context: AuthorizationContext = Depends(guard),
    ) -> Response:
        await CrmService(resource).delete_record(
            session, auth_context.agency_id, record_id, user_id=auth_context.user.id
        )
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    return router


leads_router = APIRouter(prefix="/api/leads", tags=["leads"])


@leads_router.patch("/{lead_id}/etapa")
async def move_lead(
    lead_id: str,
    payload: LeadStageUpdate,
    session: AsyncSession = Depends(get_db),
    auth_context: AuthorizationContext = Depends(require_permission(AccessPermission.FUNIL)),
) -> Dict[str, Any]:
    return await LeadService().move_stage(session, auth_context.agency_id, lead_id, payload.etapa)


routers: List[APIRouter] = [leads_router] + [build_crud_router(resource) for resource in RESOURCES]
