from __future__ import annotations
import logging
from functools import wraps
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.core.exceptions import is_missing_schema_error
from diamante_crm.db.base import Base

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=Base)


def tolerate_missing_schema(default_factory: Callable[[], Any]):
    """Decorator for repository reads over tables that may not be provisioned.

    A missing table/column rolls the session back and yields
    ``default_factory()``; any other database error propagates.
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(self, session: AsyncSession, *args, **kwargs):
            try:
                return await func(self, session, *args, **kwargs)
            except SQLAlchemyError as exc:
                if not is_missing_schema_error(exc):
                    raise
                logger.warning(
                    "Missing schema object, returning empty result",
                    extra={"operation": f"{type(self).__name__}.{func.__name__}", "error": str(exc)},
                )
                await session.rollback()
                return default_factory()
        return wrapper
    return decorator


class AgencyScopedRepository(Generic[ModelT]):
    """CRUD for CRM tables carrying an ``agency_id`` column."""

    def __init__(self, model: Type[ModelT]) -> None:
        self.model = model

    async def list_by_agency(self, session: AsyncSession, agency_id: int, limit: int = 500) -> List[ModelT]:
        stmt = (
            select(self.model)
            .where(self.model.agency_id == agency_id)
            .order_by(self.model.criado_em.desc())
            .limit(limit)
        )
        res = await session.execute(stmt)
        return list(res.scalars().all())

    async def get_by_id(self, session: AsyncSession, agency_id: int, entity_id: str) -> Optional[ModelT]:
        stmt = select(self.model).where(self.model.id == entity_id, self.model.agency_id == agency_id)
        res = await session.execute(stmt)
        return res.scalar_one_or_none()

    async def create(self, session: AsyncSession, agency_id: int, data: Dict[str, Any]) -> ModelT:
        entity = self.model(agency_id=agency_id, **data)
        session.add(entity)
        await session.flush()
        return entity

    async def update(self, session: AsyncSession, entity: ModelT, data: Dict[str, Any]) -> ModelT:
        for key, value in data.items():
            setattr(entity, key, value)
        await session.flush()
        return entity

    async def delete(self, session: AsyncSession, agency_id: int, entity_id: str) -> bool:
        entity = await self.get_by_id(session, agency_id, entity_id)
        if not entity:
            return False
        await session.delete(entity)
        await session.flush()
        return True
