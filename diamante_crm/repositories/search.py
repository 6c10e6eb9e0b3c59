from __future__ import annotations
from typing import List
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.db.models import DocumentItem, FaqItem, FinancialBill, Message, NewsItem, PortalTicket
from diamante_crm.repositories.base import tolerate_missing_schema


def like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class PortalContentRepository:
    """Contract-scoped, case-insensitive substring lookups over portal content.

    Every table is optional: a missing one yields an empty list.
    """

    @tolerate_missing_schema(list)
    async def search_news(self, session: AsyncSession, contract_number: str, term: str, limit: int) -> List[NewsItem]:
        pattern = like_pattern(term)
        stmt = (
            select(NewsItem)
            .where(
                NewsItem.contract_number == contract_number,
                or_(NewsItem.title.ilike(pattern, escape="\\"), NewsItem.body.ilike(pattern, escape="\\")),
            )
            .order_by(NewsItem.published_at.desc())
            .limit(limit)
        )
        res = await session.execute(stmt)
        return list(res.scalars().all())

    @tolerate_missing_schema(list)
    async def search_documents(
        self, session: AsyncSession, contract_number: str, term: str, limit: int
    ) -> List[DocumentItem]:
        pattern = like_pattern(term)
        stmt = (
            select(DocumentItem)
            .where(
                DocumentItem.contract_number == contract_number,
                or_(DocumentItem.title.ilike(pattern, escape="\\"), DocumentItem.type.ilike(pattern, escape="\\")),
            )
            .order_by(DocumentItem.published_at.desc())
            .limit(limit)
        )
        res = await session.execute(stmt)
        return list(res.scalars().all())

    @tolerate_missing_schema(list)
    async def search_faq(self, session: AsyncSession, contract_number: str, term: str, limit: int) -> List[FaqItem]:
        pattern = like_pattern(term)
        stmt = (
            select(FaqItem)
            .where(
                or_(FaqItem.contract_number == contract_number, FaqItem.contract_number.is_(None)),
                or_(FaqItem.question.ilike(pattern, escape="\\"), FaqItem.answer.ilike(pattern, escape="\\")),
            )
            .order_by(FaqItem.created_at.desc())
            .limit(limit)
        )
        res = await session.execute(stmt)
        return list(res.scalars().all())

    @tolerate_missing_schema(list)
    async def search_tickets(
        self, session: AsyncSession, contract_number: str, term: str, limit: int
    ) -> List[PortalTicket]:
        pattern = like_pattern(term)
        stmt = (
            select(PortalTicket)
            .where(
                PortalTicket.contract_number == contract_number,
                or_(
                    PortalTicket.subject.ilike(pattern, escape="\\"),
                    PortalTicket.message.ilike(pattern, escape="\\"),
                    PortalTicket.protocol.ilike(pattern, escape="\\"),
                ),
            )
            .order_by(PortalTicket.created_at.desc())
            .limit(limit)
        )
        res = await session.execute(stmt)
        return list(res.scalars().all())

    @tolerate_missing_schema(list)
    async def search_bills(
        self, session: AsyncSession, contract_number: str, term: str, limit: int
    ) -> List[FinancialBill]:
        pattern = like_pattern(term)
        stmt = (
            select(FinancialBill)
            .where(
                FinancialBill.contract_number == contract_number,
                or_(
                    FinancialBill.competence.ilike(pattern, escape="\\"),
                    FinancialBill.status.ilike(pattern, escape="\\"),
                    FinancialBill.barcode_line.ilike(pattern, escape="\\"),
                ),
            )
            .order_by(FinancialBill.due_date.desc())
            .limit(limit)
        )
        res = await session.execute(stmt)
        return list(res.scalars().all())

    @tolerate_missing_schema(list)
    async def search_messages(
        self, session: AsyncSession, contract_number: str, term: str, limit: int
    ) -> List[Message]:
        pattern = like_pattern(term)
        stmt = (
            select(Message)
            .where(Message.contract_number == contract_number, Message.body_text.ilike(pattern, escape="\\"))
            .order_by(Message.created_at.desc())
            .limit(limit)
        )
        res = await session.execute(stmt)
        return list(res.scalars().all())
