import logging
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from diamante_crm.core.access_control import AppRole, normalize_role
from diamante_crm.core.config import get_settings
from diamante_crm.core.exceptions import AuthenticationError, ConflictError, NotFoundError, ValidationError
from diamante_crm.core.security import hash_password, verify_password, create_jwt_token, verify_jwt_token
from diamante_crm.repositories.user_auth import AuthUserRepository, StaffRepository
from diamante_crm.db.models import Agency, AuditLog, AuthUser, StaffMember

logger = logging.getLogger(__name__)
settings = get_settings()
REFRESH_TOKEN_TYPE = "refresh"


class TokenPair:
    """Access/refresh token pair issued by :class:`AuthService`."""

    def __init__(self, access_token: str, refresh_token: str, expires_in: int) -> None:
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.expires_in = expires_in
        self.token_type = "bearer"

    def as_dict(self) -> dict:
        return {
            "access_token": self.access_token,
            "refresh_token": self.refresh_token,
            "expires_in": self.expires_in,
            "token_type": self.token_type,
        }


class AuthService:
    """Authentication backend shared by CRM staff and portal clients."""

    def __init__(self) -> None:
        self.user_repo = AuthUserRepository()
        self.staff_repo = StaffRepository()

    def issue_tokens(self, user: AuthUser, claims: Optional[dict] = None) -> TokenPair:
        access_expires = settings.ACCESS_EXPIRES_MIN * 60
        refresh_expires = settings.REFRESH_EXPIRES_DAYS * 24 * 60 * 60
        access = create_jwt_token(subject=str(user.id), expires_in=access_expires, claims=claims)
        refresh = create_jwt_token(
            subject=str(user.id),
            expires_in=refresh_expires,
            claims=claims,
            token_type=REFRESH_TOKEN_TYPE,
        )
        return TokenPair(access, refresh, access_expires)

    async def register(
        self,
        session: AsyncSession,
        nome: str,
        email: str,
        password: str,
        agency_nome: str,
    ) -> StaffMember:
        """Register a new agency together with its first staff member (CEO).

        Args:
            session: Async database session.
            nome: Staff member name.
            email: Login email.
            password: Plain password.
            agency_nome: Name of the agency being created.

        Returns:
            StaffMember: Created CRM profile.
        """

        if await self.user_repo.get_by_email(session, email):
            raise ConflictError("E-mail já cadastrado.")

        agency = Agency(nome=agency_nome.strip())
        session.add(agency)
        await session.flush()

        user = await self.user_repo.create(session, email=email, hashed_password=hash_password(password))
        staff = await self.staff_repo.create(
            session, user=user, agency_id=agency.id, nome=nome.strip(), nivel_acesso=AppRole.CEO.value
        )

        session.add(AuditLog(
            user_id=user.id,
            acao="REGISTER",
            tabela_afetada="staff_members",
            registro_afetado=staff.id,
            dados_novos={"agency_id": agency.id, "email": user.email},
            detalhes_adicionais="Agency registration",
        ))
        await session.commit()
        await session.refresh(staff)
        logger.info("Agency registered", extra={"agency_id": agency.id, "user_id": user.id})
        return staff

    async def create_staff_member(
        self,
        session: AsyncSession,
        agency_id: int,
        nome: str,
        email: str,
        password: str,
        role: str,
        created_by: Optional[str] = None,
        telefone: Optional[str] = None,
        cpf: Optional[str] = None,
        cargo: Optional[str] = None,
    ) -> StaffMember:
        """Add a staff member to an existing agency (Acessos screen)."""

        normalized = normalize_role(role)
        if normalized is None:
            raise ValidationError("Perfil de acesso inválido.", {"role": role})
        if await self.user_repo.get_by_email(session, email):
            raise ConflictError("E-mail já cadastrado.")

        user = await self.user_repo.create(session, email=email, hashed_password=hash_password(password))
        staff = await self.staff_repo.create(
            session,
            user=user,
            agency_id=agency_id,
            nome=nome.strip(),
            nivel_acesso=normalized.value,
            telefone=telefone,
            cpf=cpf,
            cargo=cargo,
        )
        session.add(AuditLog(
            user_id=created_by,
            acao="CREATE",
            tabela_afetada="staff_members",
            registro_afetado=staff.id,
            dados_novos={"email": user.email, "nivel_acesso": normalized.value},
            detalhes_adicionais="Staff member created",
        ))
        await session.commit()
        await session.refresh(staff)
        return staff

    async def sign_in_with_password(self, session: AsyncSession, email: str, password: str) -> tuple[TokenPair, AuthUser]:
        """Check credentials and issue a token pair.

        Raises:
            AuthenticationError: Unknown email, wrong password or inactive user.
        """

        user = await self.user_repo.get_by_email(session, email)
        if not user or not verify_password(password, user.hashed_password):
            raise AuthenticationError("Credenciais inválidas.")
        if not user.ativo:
            raise AuthenticationError("Usuário inativo.")
        return self.issue_tokens(user), user

    async def authenticate(self, session: AsyncSession, email: str, password: str) -> tuple[TokenPair, StaffMember]:
        """Staff login: credentials must belong to a CRM profile."""

        tokens, user = await self.sign_in_with_password(session, email, password)
        staff = await self.staff_repo.get_by_user_id(session, user.id)
        if staff is None:
            raise AuthenticationError("Usuário sem perfil no CRM.")

        session.add(AuditLog(
            user_id=user.id,
            acao="LOGIN",
            tabela_afetada="auth_users",
            registro_afetado=user.id,
            detalhes_adicionais="Staff login",
        ))
        await session.commit()
        return tokens, staff

    async def refresh(self, session: AsyncSession, refresh_token: str) -> TokenPair:
        """Exchange a refresh token for a new token pair."""

        payload = verify_jwt_token(refresh_token, REFRESH_TOKEN_TYPE)
        if not payload:
            raise AuthenticationError("Token de atualização inválido.")
        user = await self.user_repo.get_by_id(session, str(payload.get("sub")))
        if not user or not user.ativo:
            raise AuthenticationError("Token de atualização inválido.")
        return self.issue_tokens(user)

    async def change_role(self, session: AsyncSession, agency_id: int, user_id: str, role: str, changed_by: str) -> StaffMember:
        normalized = normalize_role(role)
        if normalized is None:
            raise ValidationError("Perfil de acesso inválido.", {"role": role})
        staff = await self.staff_repo.get_by_user_id(session, user_id)
        if staff is None or staff.agency_id != agency_id:
            raise NotFoundError("Usuário não encontrado.")

        previous = staff.nivel_acesso
        staff.nivel_acesso = normalized.value
        session.add(AuditLog(
            user_id=changed_by,
            acao="UPDATE_ROLE",
            tabela_afetada="staff_members",
            registro_afetado=staff.id,
            dados_novos={"de": previous, "para": normalized.value},
        ))
        await session.commit()
        await session.refresh(staff)
        logger.info("Role changed", extra={"user_id": user_id, "role": normalized.value})
        return staff
