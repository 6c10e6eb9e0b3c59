"""
Support chat of the public portal.

A client opens a thread without an account and receives a protocol plus an
access key; only the SHA-256 of the key is stored. Support staff answer
through the same endpoint with a CRM bearer token.
"""

from __future__ import annotations

import base64
import binascii
import logging
import random
import re
import secrets
import time
import unicodedata
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.core.access_control import AccessPermission, can_access_permission
from diamante_crm.core.config import get_settings
from diamante_crm.core.documents import normalize_email, normalize_phone, normalize_protocol, only_digits
from diamante_crm.core.exceptions import (
    AuthenticationError,
    BusinessLogicError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)
from diamante_crm.core.security import sha256_hex, utcnow
from diamante_crm.db.models import AuthUser, ChatMessage, ChatThread
from diamante_crm.repositories.chat import ChatRepository
from diamante_crm.repositories.user_auth import StaffRepository
from diamante_crm.services.storage import LocalStorage

logger = logging.getLogger(__name__)
settings = get_settings()

MAX_ATTACHMENTS = 5
MAX_ATTACHMENT_BYTES = 20 * 1024 * 1024
PROTOCOL_ATTEMPTS = 8
ACCESS_KEY_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

ACTIONS = (
    "create_ticket",
    "open_ticket",
    "list_messages",
    "send_message",
    "support_send_message",
    "close_ticket",
)


class ProtocolGenerationError(BusinessLogicError):
    """Raised when no free protocol could be drawn."""


def make_protocol(now: Optional[datetime] = None) -> str:
    now = now or utcnow()
    return f"DIA-{now:%y%m%d}-{random.randint(1000, 9999)}"


def make_access_key(length: int = 8) -> str:
    return "".join(secrets.choice(ACCESS_KEY_ALPHABET) for _ in range(length))


def sanitize_filename(name: str) -> str:
    decomposed = unicodedata.normalize("NFD", name)
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    clean = re.sub(r"-+", "-", re.sub(r"[^a-zA-Z0-9._-]", "-", ascii_only))[:120]
    return clean or "arquivo"


def attachment_kind(content_type: str) -> str:
    for prefix in ("image", "video", "audio"):
        if content_type.startswith(f"{prefix}/"):
            return prefix
    return "file"


def parse_since(raw: Any) -> Optional[datetime]:
    value = str(raw or "").strip()
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        raise ValidationError("Parametro since invalido.")
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def thread_to_dict(thread: ChatThread) -> Dict[str, Any]:
    return {
        "id": thread.id,
        "protocol": thread.protocol,
        "clientName": thread.client_name,
        "clientEmail": thread.client_email,
        "clientPhone": thread.client_phone,
        "clientDocument": thread.client_document,
        "subject": thread.subject,
        "status": thread.status,
        "createdAt": _iso(thread.created_at),
        "updatedAt": _iso(thread.updated_at),
        "lastMessageAt": _iso(thread.last_message_at),
    }


def message_to_dict(message: ChatMessage) -> Dict[str, Any]:
    return {
        "id": message.id,
        "threadId": message.thread_id,
        "senderType": message.sender_type,
        "senderName": message.sender_name,
        "channel": message.channel,
        "message": message.message,
        "attachments": message.attachments if isinstance(message.attachments, list) else [],
        "readBySupport": bool(message.read_by_support),
        "readByClient": bool(message.read_by_client),
        "createdAt": _iso(message.created_at),
    }


class PortalChatService:
    def __init__(self, storage: Optional[LocalStorage] = None) -> None:
        self.repo = ChatRepository()
        self.staff_repo = StaffRepository()
        self.storage = storage or LocalStorage()

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    def _parse_attachments(self, raw: Any) -> List[Dict[str, Any]]:
        """Decode and check every attachment before anything is written.

        Entries without content are dropped.
        """

        if not isinstance(raw, list):
            return []
        if len(raw) > MAX_ATTACHMENTS:
            raise ValidationError(f"Envie no maximo {MAX_ATTACHMENTS} anexos por mensagem.")
        parsed = []
        for item in raw:
            value = item if isinstance(item, dict) else {}
            name = str(value.get("name") or "arquivo")
            encoded = str(value.get("contentBase64") or "")
            if not encoded:
                continue
            if "," in encoded:
                encoded = encoded.split(",", 1)[1]
            try:
                data = base64.b64decode(encoded, validate=True)
            except (binascii.Error, ValueError):
                raise ValidationError(f"Anexo {name} invalido.")
            try:
                size = int(float(value.get("size") or 0))
            except (TypeError, ValueError):
                size = 0
            if len(data) > MAX_ATTACHMENT_BYTES or size > MAX_ATTACHMENT_BYTES:
                raise ValidationError(f"Arquivo {name} excede 20MB.")
            parsed.append({
                "name": name,
                "type": str(value.get("type") or "application/octet-stream"),
                "size": size or len(data),
                "data": data,
            })
        return parsed

    async def _upload_attachments(
        self, thread_id: str, sender_type: str, attachments: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        bucket = settings.PORTAL_CHAT_BUCKET
        stored: List[Dict[str, Any]] = []
        for attachment in attachments:
            filename = sanitize_filename(attachment["name"])
            path = f"{thread_id}/{sender_type}/{int(time.time() * 1000)}-{uuid.uuid4()}-{filename}"
            try:
                await self.storage.upload(bucket, path, attachment["data"])
            except StorageError:
                await self._discard_attachments(stored)
                raise
            stored.append({
                "name": attachment["name"],
                "type": attachment["type"],
                "size": attachment["size"],
                "path": path,
                "url": self.storage.public_url(bucket, path),
                "kind": attachment_kind(attachment["type"]),
            })
        return stored

    async def _discard_attachments(self, stored: List[Dict[str, Any]]) -> None:
        if stored:
            await self.storage.remove(settings.PORTAL_CHAT_BUCKET, [item["path"] for item in stored])

    async def _post_message(
        self,
        session: AsyncSession,
        thread: ChatThread,
        sender_type: str,
        attachments: List[Dict[str, Any]],
        **fields: Any,
    ) -> ChatMessage:
        """Upload the attachments, then store and commit the message.

        Files already written are removed when the message cannot be saved.
        """

        stored = await self._upload_attachments(thread.id, sender_type, attachments)
        try:
            inserted = await self.repo.add_message(
                session, thread, sender_type=sender_type, attachments=stored, **fields
            )
            await session.commit()
        except Exception:
            await self._discard_attachments(stored)
            raise
        return inserted

    async def _validate_portal_access(self, session: AsyncSession, protocol_raw: Any, key_raw: Any) -> ChatThread:
        protocol = normalize_protocol(protocol_raw)
        access_key = str(key_raw or "").strip().upper()
        if not protocol or not access_key:
            raise ValidationError("Protocolo e chave de acesso sao obrigatorios.")

        thread = await self.repo.get_thread_by_protocol(session, protocol)
        if thread is None:
            raise NotFoundError("Protocolo nao encontrado.")

        access = await self.repo.get_access_key(session, thread.id)
        if access is None or sha256_hex(access_key) != access.access_key_hash:
            logger.info("Invalid portal chat access key", extra={"protocol": protocol})
            raise AuthenticationError("Chave de acesso invalida.")
        if access.expires_at is not None and access.expires_at < utcnow():
            raise AuthenticationError("Chave de acesso expirada.")

        access.last_used_at = utcnow()
        await session.flush()
        return thread

    async def _validate_support_access(self, session: AsyncSession, user: Optional[AuthUser]) -> AuthUser:
        if user is None:
            raise AuthenticationError("Sessao invalida.")
        staff = await self.staff_repo.get_by_user_id(session, user.id)
        if staff is None or not can_access_permission(staff.nivel_acesso, AccessPermission.SUPORTE):
            raise PermissionDeniedError("Sem permissao para responder atendimentos.")
        return user

    # ------------------------------------------------------------------
    # actions
    # ------------------------------------------------------------------

    async def handle(self, session: AsyncSession, body: Dict[str, Any], user: Optional[AuthUser] = None) -> Dict[str, Any]:
        """Dispatch a portal chat action and return its ``data`` payload."""

        action = str(body.get("action") or "")
        if not action:
            raise ValidationError("Acao obrigatoria.")
        if action not in ACTIONS:
            raise ValidationError("Acao invalida.")
        handler = getattr(self, action)
        if action == "support_send_message":
            return await handler(session, body, user)
        return await handler(session, body)

    async def create_ticket(self, session: AsyncSession, body: Dict[str, Any]) -> Dict[str, Any]:
        client_name = str(body.get("clientName") or "").strip()
        subject = str(body.get("subject") or "").strip()
        message = str(body.get("message") or "").strip()
        attachments = self._parse_attachments(body.get("attachments"))

        if not client_name or not subject or (not message and not attachments):
            raise ValidationError("Nome, assunto e texto/anexo inicial sao obrigatorios.")

        protocol = None
        for _ in range(PROTOCOL_ATTEMPTS):
            candidate = make_protocol()
            if not await self.repo.protocol_exists(session, candidate):
                protocol = candidate
                break
        if protocol is None:
            raise ProtocolGenerationError("Nao foi possivel gerar protocolo unico.")

        thread = await self.repo.create_thread(
            session,
            protocol=protocol,
            client_name=client_name,
            client_email=normalize_email(body.get("clientEmail")),
            client_phone=normalize_phone(body.get("clientPhone")),
            client_document=only_digits(body.get("clientDocument")) or None,
            subject=subject,
            status="aberto",
            origin="portal",
        )
        access_key = make_access_key(8)
        await self.repo.save_access_key(session, thread.id, sha256_hex(access_key))

        await self._post_message(
            session,
            thread,
            "cliente",
            attachments,
            sender_name=client_name,
            channel="portal",
            message=message,
            read_by_client=True,
            read_by_support=False,
        )

        messages = await self.repo.list_messages(session, thread.id)
        logger.info("Portal chat thread created", extra={"protocol": protocol, "thread_id": thread.id})
        return {
            "protocol": thread.protocol,
            "accessKey": access_key,
            "thread": thread_to_dict(thread),
            "messages": [message_to_dict(item) for item in messages],
        }

    async def open_ticket(self, session: AsyncSession, body: Dict[str, Any]) -> Dict[str, Any]:
        thread = await self._validate_portal_access(session, body.get("protocol"), body.get("accessKey"))
        await self.repo.mark_read(session, thread.id, reader="cliente")
        await session.commit()
        messages = await self.repo.list_messages(session, thread.id)
        return {"thread": thread_to_dict(thread), "messages": [message_to_dict(item) for item in messages]}

    async def list_messages(self, session: AsyncSession, body: Dict[str, Any]) -> Dict[str, Any]:
        thread = await self._validate_portal_access(session, body.get("protocol"), body.get("accessKey"))
        since = parse_since(body.get("since"))
        await self.repo.mark_read(session, thread.id, reader="cliente")
        await session.commit()
        messages = await self.repo.list_messages(session, thread.id, since)
        return {"thread": thread_to_dict(thread), "messages": [message_to_dict(item) for item in messages]}

    async def send_message(self, session: AsyncSession, body: Dict[str, Any]) -> Dict[str, Any]:
        thread = await self._validate_portal_access(session, body.get("protocol"), body.get("accessKey"))
        message = str(body.get("message") or "").strip()
        attachments = self._parse_attachments(body.get("attachments"))
        if not message and not attachments:
            raise ValidationError("Envie texto ou anexo.")

        sender_name = str(body.get("senderName") or "").strip() or thread.client_name
        inserted = await self._post_message(
            session,
            thread,
            "cliente",
            attachments,
            sender_name=sender_name,
            channel="portal",
            message=message,
            read_by_client=True,
            read_by_support=False,
        )
        return {"thread": thread_to_dict(thread), "message": message_to_dict(inserted)}

    async def support_send_message(
        self, session: AsyncSession, body: Dict[str, Any], user: Optional[AuthUser]
    ) -> Dict[str, Any]:
        user = await self._validate_support_access(session, user)
        thread_id = str(body.get("threadId") or "").strip()
        message = str(body.get("message") or "").strip()
        attachments = self._parse_attachments(body.get("attachments"))
        if not thread_id or (not message and not attachments):
            raise ValidationError("Thread e texto/anexo sao obrigatorios.")

        thread = await self.repo.get_thread(session, thread_id)
        if thread is None:
            raise NotFoundError("Atendimento nao encontrado.")

        staff = await self.staff_repo.get_by_user_id(session, user.id)
        sender_name = (
            str(body.get("senderName") or "").strip()
            or (staff.nome if staff else None)
            or user.email
            or "Suporte CRM DIAMANTE"
        )
        inserted = await self._post_message(
            session,
            thread,
            "suporte",
            attachments,
            sender_name=sender_name,
            sender_user_id=user.id,
            channel="portal",
            message=message,
            read_by_support=True,
            read_by_client=False,
        )
        return {"thread": thread_to_dict(thread), "message": message_to_dict(inserted)}

    async def close_ticket(self, session: AsyncSession, body: Dict[str, Any]) -> Dict[str, Any]:
        thread = await self._validate_portal_access(session, body.get("protocol"), body.get("accessKey"))
        thread.status = "fechado"
        await session.commit()
        await session.refresh(thread)
        return {"thread": thread_to_dict(thread)}

    # ------------------------------------------------------------------
    # support inbox
    # ------------------------------------------------------------------

    async def list_threads(self, session: AsyncSession) -> List[Dict[str, Any]]:
        threads = await self.repo.list_threads(session)
        unread = await self.repo.unread_by_support_counts(session)
        return [{**thread_to_dict(thread), "unreadBySupport": unread.get(thread.id, 0)} for thread in threads]

    async def thread_messages_for_support(self, session: AsyncSession, thread_id: str) -> Dict[str, Any]:
        thread = await self.repo.get_thread(session, thread_id)
        if thread is None:
            raise NotFoundError("Atendimento nao encontrado.")
        await self.repo.mark_read(session, thread.id, reader="suporte")
        await session.commit()
        messages = await self.repo.list_messages(session, thread.id)
        return {"thread": thread_to_dict(thread), "messages": [message_to_dict(item) for item in messages]}
