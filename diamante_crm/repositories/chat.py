from __future__ import annotations
from datetime import datetime
from typing import Dict, List, Optional
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.db.models import ChatAccessKey, ChatMessage, ChatThread


class ChatRepository:
    """Repository for portal chat threads, messages and access keys."""

    async def get_thread(self, session: AsyncSession, thread_id: str) -> Optional[ChatThread]:
        return await session.get(ChatThread, thread_id)

    async def get_thread_by_protocol(self, session: AsyncSession, protocol: str) -> Optional[ChatThread]:
        res = await session.execute(select(ChatThread).where(ChatThread.protocol == protocol))
        return res.scalar_one_or_none()

    async def protocol_exists(self, session: AsyncSession, protocol: str) -> bool:
        res = await session.execute(select(ChatThread.id).where(ChatThread.protocol == protocol))
        return res.scalar_one_or_none() is not None

    async def list_threads(self, session: AsyncSession, limit: int = 200) -> List[ChatThread]:
        stmt = select(ChatThread).order_by(ChatThread.last_message_at.desc()).limit(limit)
        res = await session.execute(stmt)
        return list(res.scalars().all())

    async def unread_by_support_counts(self, session: AsyncSession) -> Dict[str, int]:
        stmt = (
            select(ChatMessage.thread_id, func.count(ChatMessage.id))
            .where(ChatMessage.sender_type == "cliente", ChatMessage.read_by_support.is_(False))
            .group_by(ChatMessage.thread_id)
        )
        res = await session.execute(stmt)
        return {thread_id: count for thread_id, count in res.all()}

    async def create_thread(self, session: AsyncSession, **fields) -> ChatThread:
        entity = ChatThread(**fields)
        session.add(entity)
        await session.flush()
        return entity

    async def list_messages(
        self, session: AsyncSession, thread_id: str, since: Optional[datetime] = None
    ) -> List[ChatMessage]:
        stmt = select(ChatMessage).where(ChatMessage.thread_id == thread_id)
        if since is not None:
            stmt = stmt.where(ChatMessage.created_at > since)
        stmt = stmt.order_by(ChatMessage.created_at.asc())
        res = await session.execute(stmt)
        return list(res.scalars().all())

    async def add_message(self, session: AsyncSession, thread: ChatThread, **fields) -> ChatMessage:
        entity = ChatMessage(thread_id=thread.id, **fields)
        session.add(entity)
        await session.flush()
        thread.last_message_at = entity.created_at
        await session.flush()
        return entity

    async def mark_read(self, session: AsyncSession, thread_id: str, reader: str) -> None:
        """Mark the other party's messages as read by ``reader`` (cliente|suporte)."""

        if reader == "cliente":
            stmt = (
                update(ChatMessage)
                .where(ChatMessage.thread_id == thread_id, ChatMessage.sender_type != "cliente")
                .values(read_by_client=True)
            )
        else:
            stmt = (
                update(ChatMessage)
                .where(ChatMessage.thread_id == thread_id, ChatMessage.sender_type == "cliente")
                .values(read_by_support=True)
            )
        await session.execute(stmt)

    async def get_access_key(self, session: AsyncSession, thread_id: str) -> Optional[ChatAccessKey]:
        return await session.get(ChatAccessKey, thread_id)

    async def save_access_key(
        self, session: AsyncSession, thread_id: str, access_key_hash: str, expires_at: Optional[datetime] = None
    ) -> ChatAccessKey:
        entity = ChatAccessKey(thread_id=thread_id, access_key_hash=access_key_hash, expires_at=expires_at)
        session.add(entity)
        await session.flush()
        return entity
