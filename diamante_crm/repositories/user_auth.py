from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.db.models import AuthUser, StaffMember


class AuthUserRepository:
    """Repository for `AuthUser` operations."""

    async def get_by_email(self, session: AsyncSession, email: str) -> Optional[AuthUser]:
        """Fetch an auth record by its login email.

            Args:
                session: Async database session.
                email: Email to search (compared lower-case).

            Returns:
                Optional[AuthUser]: Found auth record or None.
        """

        stmt = select(AuthUser).where(AuthUser.email == email.strip().lower())
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def get_by_id(self, session: AsyncSession, user_id: str) -> Optional[AuthUser]:
        return await session.get(AuthUser, user_id)

    async def create(self, session: AsyncSession, email: str, hashed_password: str) -> AuthUser:
        """Create a new `AuthUser`.

        Args:
            session: Async database session.
            email: Login email.
            hashed_password: Hashed password.

        Returns:
            AuthUser: Persisted entity.
        """

        entity = AuthUser(email=email.strip().lower(), hashed_password=hashed_password, ativo=True)
        session.add(entity)
        await session.flush()
        return entity


class StaffRepository:
    """Repository for CRM staff profiles."""

    async def get_by_user_id(self, session: AsyncSession, user_id: str) -> Optional[StaffMember]:
        stmt = select(StaffMember).where(StaffMember.user_id == user_id)
        res = await session.execute(stmt)
        return res.scalar_one_or_none()

    async def list_by_agency(self, session: AsyncSession, agency_id: int) -> List[StaffMember]:
        stmt = select(StaffMember).where(StaffMember.agency_id == agency_id).order_by(StaffMember.nome)
        res = await session.execute(stmt)
        return list(res.scalars().all())

    async def create(
        self,
        session: AsyncSession,
        user: AuthUser,
        agency_id: int,
        nome: str,
        nivel_acesso: str,
        telefone: Optional[str] = None,
        cpf: Optional[str] = None,
        cargo: Optional[str] = None,
    ) -> StaffMember:
        entity = StaffMember(
            user_id=user.id,
            agency_id=agency_id,
            nome=nome,
            nivel_acesso=nivel_acesso,
            telefone=telefone,
            cpf=cpf,
            cargo=cargo,
        )
        session.add(entity)
        await session.flush()
        return entity
