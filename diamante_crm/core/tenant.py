from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional
from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.db.session import get_db
from diamante_crm.db.models import AuthUser, StaffMember
from diamante_crm.core.exceptions import AuthenticationError, PermissionDeniedError
from diamante_crm.core.security import extract_bearer_token, verify_jwt_token
from diamante_crm.repositories.user_auth import AuthUserRepository, StaffRepository

logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "Não autenticado."


async def resolve_bearer_user(session: AsyncSession, authorization: Optional[str]) -> Optional[AuthUser]:
    """Return the active user behind an ``Authorization: Bearer`` access token.

    Refresh and storage tokens carry a ``type`` claim and are not accepted.
    """

    token = extract_bearer_token(authorization)
    if not token:
        return None
    payload = verify_jwt_token(token)
    if not payload or not payload.get("sub"):
        return None
    user = await AuthUserRepository().get_by_id(session, str(payload["sub"]))
    if user is None or not user.ativo:
        return None
    return user


async def get_current_user(
    session: AsyncSession = Depends(get_db),
    authorization: Optional[str] = Header(default=None),
) -> AuthUser:
    user = await resolve_bearer_user(session, authorization)
    if user is None:
        raise AuthenticationError(NOT_AUTHENTICATED)
    return user


@dataclass
class TenantContext:
    agency_id: int
    user_id: str
    staff: StaffMember


async def get_tenant_context(
    session: AsyncSession = Depends(get_db),
    current_user: AuthUser = Depends(get_current_user),
) -> TenantContext:
    """Resolve the agency of the authenticated staff member.

    Portal clients authenticate against the same backend but have no CRM
    profile, so they are refused here.
    """

    staff = await StaffRepository().get_by_user_id(session, current_user.id)
    if staff is None:
        logger.info("Authenticated user without CRM profile", extra={"user_id": current_user.id})
        raise PermissionDeniedError("Usuário sem perfil no CRM.")

    return TenantContext(agency_id=int(staff.agency_id), user_id=current_user.id, staff=staff)
