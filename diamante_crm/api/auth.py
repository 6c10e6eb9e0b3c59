import logging
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.core.access_control import get_home_path_for_role, get_navigation_for_role, get_role_label
from diamante_crm.core.authorization import AuthorizationContext, get_authorization_context
from diamante_crm.db.session import get_db
from diamante_crm.schemas.auth import LoginRequest, MeResponse, RefreshRequest, RegisterRequest, TokenResponse
from diamante_crm.services.auth import AuthService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/register", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, session: AsyncSession = Depends(get_db)) -> TokenResponse:
    """Create an agency with its first member (CEO) and log the member in."""

    svc = AuthService()
    await svc.register(
        session,
        nome=payload.nome,
        email=payload.email,
        password=payload.password,
        agency_nome=payload.agency_nome,
    )
    tokens, _ = await svc.authenticate(session, payload.email, payload.password)
    return TokenResponse(**tokens.as_dict())


@router.post("/login", response_model=TokenResponse)
async def login(payload: LoginRequest, session: AsyncSession = Depends(get_db)) -> TokenResponse:
    tokens, staff = await AuthService().authenticate(session, payload.email, payload.password)
    logger.info("Staff login", extra={"user_id": staff.user_id, "agency_id": staff.agency_id})
    return TokenResponse(**tokens.as_dict())


@router.post("/refresh", response_model=TokenResponse)
async def refresh(payload: RefreshRequest, session: AsyncSession = Depends(get_db)) -> TokenResponse:
    tokens = await AuthService().refresh(session, payload.refresh_token)
    return TokenResponse(**tokens.as_dict())


@router.get("/me", response_model=MeResponse)
async def me(auth_context: AuthorizationContext = Depends(get_authorization_context)) -> MeResponse:
    """Profile, role and navigation of the logged-in staff member."""

    staff = auth_context.tenant.staff
    role = auth_context.role
    return MeResponse(
        user_id=auth_context.user.id,
        nome=staff.nome,
        email=auth_context.user.email,
        agency_id=auth_context.agency_id,
        role=role.value,
        role_label=get_role_label(role),
        navigation=get_navigation_for_role(role),
        home_path=get_home_path_for_role(role),
    )
