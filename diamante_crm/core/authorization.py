"""
Role-based authorization for the CRM API.
Resolves the caller's role from its staff profile and exposes dependencies
that gate routes by :class:`AccessPermission`.
"""

import logging
from typing import List
from fastapi import Depends

from diamante_crm.core.access_control import (
    AccessPermission,
    AppRole,
    ROLE_PERMISSIONS,
    normalize_role,
)
from diamante_crm.core.exceptions import PermissionDeniedError
from diamante_crm.core.tenant import TenantContext, get_current_user, get_tenant_context
from diamante_crm.db.models import AuthUser

logger = logging.getLogger(__name__)


class AuthorizationContext:
    """Authorization context containing user, tenant and role information."""

    def __init__(
        self,
        user: AuthUser,
        tenant: TenantContext,
        role: AppRole,
        permissions: List[AccessPermission]
    ):
        self.user = user
        self.tenant = tenant
        self.role = role
        self.permissions = permissions

    @property
    def agency_id(self) -> int:
        return self.tenant.agency_id

    def has_permission(self, permission: AccessPermission) -> bool:
        """Check if the user has a specific permission."""
        return permission in self.permissions

    def has_any_permission(self, permissions: List[AccessPermission]) -> bool:
        """Check if the user has any of the specified permissions."""
        return any(perm in self.permissions for perm in permissions)


def resolve_role(nivel_acesso: str) -> AppRole:
    """Role stored on the staff profile; unknown values fall back to colaborador."""

    role = normalize_role(nivel_acesso)
    if role is None:
        logger.warning("Unknown access level %r, using colaborador", nivel_acesso)
        return AppRole.COLABORADOR
    return role


async def get_authorization_context(
    user: AuthUser = Depends(get_current_user),
    tenant: TenantContext = Depends(get_tenant_context),
) -> AuthorizationContext:
    """Get the complete authorization context for the current user."""
    role = resolve_role(tenant.staff.nivel_acesso)
    return AuthorizationContext(
        user=user,
        tenant=tenant,
        role=role,
        permissions=list(ROLE_PERMISSIONS[role]),
    )


def require_permission(permission: AccessPermission):
    """Dependency factory requiring ``permission`` for an endpoint."""

    async def dependency(
        auth_context: AuthorizationContext = Depends(get_authorization_context),
    ) -> AuthorizationContext:
        if not auth_context.has_permission(permission):
            logger.warning(
                "Permission denied",
                extra={"user_id": auth_context.user.id, "role": auth_context.role.value, "required": permission.value},
            )
            raise PermissionDeniedError(
                "Você não tem permissão para acessar este recurso.",
                {"required": permission.value},
            )
        return auth_context

    return dependency


def require_any_permission(permissions: List[AccessPermission]):
    """Dependency factory requiring any of ``permissions``."""

    async def dependency(
        auth_context: AuthorizationContext = Depends(get_authorization_context),
    ) -> AuthorizationContext:
        if not auth_context.has_any_permission(permissions):
            logger.warning(
                "Permission denied",
                extra={"user_id": auth_context.user.id, "role": auth_context.role.value},
            )
            raise PermissionDeniedError(
                "Você não tem permissão para acessar este recurso.",
                {"required": [perm.value for perm in permissions]},
            )
        return auth_context

    return dependency
