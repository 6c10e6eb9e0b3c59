"""
Acessos screen: role catalogue, agency members and role assignment.
"""

import logging
from typing import Any, Dict, List
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.core.access_control import (
    AccessPermission,
    ROLE_OPTIONS,
    get_navigation_for_role,
    get_role_description,
    get_role_label,
)
from diamante_crm.core.authorization import AuthorizationContext, require_permission
from diamante_crm.db.models import StaffMember
from diamante_crm.db.session import get_db
from diamante_crm.repositories.user_auth import StaffRepository
from diamante_crm.schemas.auth import RoleUpdateRequest, StaffCreateRequest, StaffResponse
from diamante_crm.services.auth import AuthService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/access", tags=["access"])


def _staff_response(staff: StaffMember) -> StaffResponse:
    return StaffResponse(
        user_id=staff.user_id,
        nome=staff.nome,
        email=staff.user.email if staff.user else None,
        role=staff.nivel_acesso,
        role_label=get_role_label(staff.nivel_acesso),
        cargo=staff.cargo,
    )


@router.get("/roles")
async def list_roles() -> List[Dict[str, Any]]:
    """Selectable roles with their description and navigation."""

    return [
        {
            **option,
            "description": get_role_description(option["value"]),
            "navigation": get_navigation_for_role(option["value"]),
        }
        for option in ROLE_OPTIONS
    ]


@router.get("/users", response_model=List[StaffResponse])
async def list_users(
    session: AsyncSession = Depends(get_db),
    auth_context: AuthorizationContext = Depends(require_permission(AccessPermission.ACESSOS)),
) -> List[StaffResponse]:
    members = await StaffRepository().list_by_agency(session, auth_context.agency_id)
    return [_staff_response(staff) for staff in members]


@router.post("/users", response_model=StaffResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: StaffCreateRequest,
    session: AsyncSession = Depends(get_db),
    auth_context: AuthorizationContext = Depends(require_permission(AccessPermission.ACESSOS)),
) -> StaffResponse:
    staff = await AuthService().create_staff_member(
        session,
        agency_id=auth_context.agency_id,
        nome=payload.nome,
        email=payload.email,
        password=payload.password,
        role=payload.role,
        created_by=auth_context.user.id,
        telefone=payload.telefone,
        cpf=payload.cpf,
        cargo=payload.cargo,
    )
    return _staff_response(staff)


@router.put("/users/{user_id}/role", response_model=StaffResponse)
async def change_role(
    user_id: str,
    payload: RoleUpdateRequest,
    session: AsyncSession = Depends(get_db),
    auth_context: AuthorizationContext = Depends(require_permission(AccessPermission.ACESSOS)),
) -> StaffResponse:
    staff = await AuthService().change_role(
        session,
        agency_id=auth_context.agency_id,
        user_id=user_id,
        role=payload.role,
        changed_by=auth_context.user.id,
    )
    return _staff_response(staff)
