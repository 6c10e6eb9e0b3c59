from __future__ import annotations
from datetime import datetime
from typing import List, Optional
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.db.models import Agent, Contract, LoginAttempt, Profile
from diamante_crm.repositories.base import tolerate_missing_schema


class ProfileRepository:
    """Portal client profiles, looked up by CPF or auth user."""

    async def get_by_cpf(self, session: AsyncSession, cpf: str) -> Optional[Profile]:
        res = await session.execute(select(Profile).where(Profile.cpf == cpf))
        return res.scalar_one_or_none()

    async def get_by_user_id(self, session: AsyncSession, user_id: str) -> Optional[Profile]:
        res = await session.execute(select(Profile).where(Profile.user_id == user_id))
        return res.scalar_one_or_none()


class LoginAttemptRepository:
    """Lockout counters of the CPF login; the table is optional."""

    @tolerate_missing_schema(lambda: None)
    async def get(self, session: AsyncSession, cpf: str) -> Optional[LoginAttempt]:
        return await session.get(LoginAttempt, cpf)

    @tolerate_missing_schema(lambda: None)
    async def save(
        self,
        session: AsyncSession,
        cpf: str,
        attempts: int,
        last_failed_at: datetime,
        locked_until: Optional[datetime],
    ) -> Optional[LoginAttempt]:
        entity = await session.get(LoginAttempt, cpf)
        if entity is None:
            entity = LoginAttempt(cpf=cpf)
            session.add(entity)
        entity.attempts = attempts
        entity.last_failed_at = last_failed_at
        entity.locked_until = locked_until
        await session.commit()
        return entity

    @tolerate_missing_schema(lambda: False)
    async def clear(self, session: AsyncSession, cpf: str) -> bool:
        await session.execute(delete(LoginAttempt).where(LoginAttempt.cpf == cpf))
        await session.commit()
        return True


class ContractRepository:
    async def get(self, session: AsyncSession, contract_number: str) -> Optional[Contract]:
        return await session.get(Contract, contract_number)

    @tolerate_missing_schema(list)
    async def list_by_user(self, session: AsyncSession, user_id: str) -> List[Contract]:
        stmt = select(Contract).where(Contract.user_id == user_id).order_by(Contract.created_at.asc())
        res = await session.execute(stmt)
        return list(res.scalars().all())


class AgentRepository:
    @tolerate_missing_schema(lambda: False)
    async def is_active_agent(self, session: AsyncSession, user_id: str) -> bool:
        stmt = select(Agent.user_id).where(Agent.user_id == user_id, Agent.is_active.is_(True))
        res = await session.execute(stmt)
        return res.scalar_one_or_none() is not None
