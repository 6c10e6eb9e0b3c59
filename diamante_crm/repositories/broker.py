from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.db.models import Broker, CommissionSetting, SaleCommunication


class BrokerRepository:
    """Broker registry scoped by agency."""

    async def list_by_agency(self, session: AsyncSession, agency_id: int) -> List[Broker]:
        stmt = select(Broker).where(Broker.agency_id == agency_id).order_by(Broker.nome)
        res = await session.execute(stmt)
        return list(res.scalars().all())

    async def get_by_code(self, session: AsyncSession, agency_id: int, broker_code: str) -> Optional[Broker]:
        stmt = select(Broker).where(Broker.agency_id == agency_id, Broker.broker_code == broker_code)
        res = await session.execute(stmt)
        return res.scalar_one_or_none()

    async def get_by_user_id(self, session: AsyncSession, agency_id: int, user_id: str) -> Optional[Broker]:
        stmt = select(Broker).where(Broker.agency_id == agency_id, Broker.user_id == user_id)
        res = await session.execute(stmt)
        return res.scalars().first()

    async def get_by_cpf(self, session: AsyncSession, agency_id: int, cpf: str) -> Optional[Broker]:
        stmt = select(Broker).where(Broker.agency_id == agency_id, Broker.cpf == cpf)
        res = await session.execute(stmt)
        return res.scalars().first()

    async def code_exists(self, session: AsyncSession, agency_id: int, broker_code: str) -> bool:
        stmt = select(Broker.id).where(Broker.agency_id == agency_id, Broker.broker_code == broker_code)
        res = await session.execute(stmt)
        return res.scalar_one_or_none() is not None


class SalesRepository:
    """Commission settings and sale communications."""

    async def get_commission(self, session: AsyncSession, agency_id: int) -> Optional[CommissionSetting]:
        stmt = select(CommissionSetting).where(CommissionSetting.agency_id == agency_id)
        res = await session.execute(stmt)
        return res.scalar_one_or_none()

    async def list_communications(self, session: AsyncSession, agency_id: int) -> List[SaleCommunication]:
        stmt = (
            select(SaleCommunication)
            .where(SaleCommunication.agency_id == agency_id)
            .order_by(SaleCommunication.criado_em.desc())
        )
        res = await session.execute(stmt)
        return list(res.scalars().all())
