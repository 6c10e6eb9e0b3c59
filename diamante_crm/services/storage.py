"""
Bucket/path object storage on the local filesystem plus short-lived
signed download URLs.
"""

import logging
import math
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from diamante_crm.core.config import get_settings
from diamante_crm.core.exceptions import (
    AuthenticationError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)
from diamante_crm.core.security import create_jwt_token, verify_jwt_token
from diamante_crm.db.models import AuthUser
from diamante_crm.services.portal import ContractAccessService

logger = logging.getLogger(__name__)
settings = get_settings()

STORAGE_TOKEN_TYPE = "storage"


def clamp_expires_in(raw: Any) -> int:
    """Expiry in seconds for a signed URL.

    Missing or null → default; non-numeric → default; otherwise rounded
    half-up and clamped into ``[SIGNED_URL_MIN_SECONDS, SIGNED_URL_MAX_SECONDS]``.
    A blank string counts as zero.
    """

    if raw is None:
        return settings.SIGNED_URL_DEFAULT_SECONDS
    if isinstance(raw, bool):
        value = float(raw)
    elif isinstance(raw, str) and not raw.strip():
        value = 0.0
    else:
        try:
            value = float(raw)
        except (TypeError, ValueError):
            return settings.SIGNED_URL_DEFAULT_SECONDS
    if not math.isfinite(value):
        return settings.SIGNED_URL_DEFAULT_SECONDS
    rounded = math.floor(value + 0.5)
    return max(settings.SIGNED_URL_MIN_SECONDS, min(settings.SIGNED_URL_MAX_SECONDS, rounded))


def contract_from_path(path: str) -> str:
    return path.strip("/").split("/", 1)[0]


class LocalStorage:
    """Objects stored as ``<STORAGE_ROOT>/<bucket>/<path>``."""

    def __init__(self, root: Optional[str] = None) -> None:
        self.root = Path(root or settings.STORAGE_ROOT)

    def resolve(self, bucket: str, path: str) -> Path:
        parts = [part for part in path.strip().strip("/").split("/") if part]
        if not bucket or not parts or any(part in (".", "..") for part in parts) or "/" in bucket:
            raise ValidationError("Caminho de arquivo inválido.")
        return self.root.joinpath(bucket, *parts)

    async def exists(self, bucket: str, path: str) -> bool:
        target = self.resolve(bucket, path)
        return await run_in_threadpool(target.is_file)

    async def upload(self, bucket: str, path: str, data: bytes) -> str:
        target = self.resolve(bucket, path)

        def _write() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)

        try:
            await run_in_threadpool(_write)
        except OSError as exc:
            logger.error("Storage upload failed", extra={"bucket": bucket, "path": path, "error": str(exc)})
            raise StorageError("Falha ao salvar arquivo.") from exc
        return path.strip("/")

    async def remove(self, bucket: str, paths: List[str]) -> None:
        targets = [self.resolve(bucket, path) for path in paths]

        def _unlink() -> None:
            for target in targets:
                target.unlink(missing_ok=True)

        try:
            await run_in_threadpool(_unlink)
        except OSError as exc:
            logger.error("Storage cleanup failed", extra={"bucket": bucket, "paths": paths, "error": str(exc)})

    def public_url(self, bucket: str, path: str) -> str:
        base = settings.PUBLIC_BASE_URL.rstrip("/")
        return f"{base}/storage/v1/object/public/{bucket}/{quote(path.strip('/'))}"


class SignedUrlService:
    def __init__(self, storage: Optional[LocalStorage] = None) -> None:
        self.storage = storage or LocalStorage()
        self.access = ContractAccessService()

    async def create_signed_url(
        self, session: AsyncSession, user: AuthUser, bucket: Any, path: Any, expires_in: Any = None
    ) -> Dict[str, Any]:
        bucket_name = str(bucket or "").strip()
        object_path = str(path or "").strip()
        expires = clamp_expires_in(expires_in)

        if bucket_name not in settings.ALLOWED_SIGNED_BUCKETS:
            raise ValidationError("Bucket não permitido.")
        if not object_path:
            raise ValidationError("path é obrigatório.")

        if not await self.access.can_access(session, user, contract_from_path(object_path)):
            raise PermissionDeniedError("Sem permissão para este arquivo.")

        if not await self.storage.exists(bucket_name, object_path):
            raise NotFoundError("Arquivo não encontrado.")

        token = create_jwt_token(
            subject=f"{bucket_name}/{object_path}",
            expires_in=expires,
            claims={"bucket": bucket_name, "path": object_path},
            token_type=STORAGE_TOKEN_TYPE,
        )
        base = settings.PUBLIC_BASE_URL.rstrip("/")
        signed_url = f"{base}/storage/v1/object/sign/{bucket_name}/{quote(object_path)}?token={token}"
        return {"signedUrl": signed_url, "expiresIn": expires}

    def resolve_signed(self, bucket: str, path: str, token: Optional[str]) -> Path:
        """Check a download token and return the file it grants."""

        payload = verify_jwt_token(token, STORAGE_TOKEN_TYPE) if token else None
        if (
            not payload
            or payload.get("bucket") != bucket
            or str(payload.get("path", "")).strip("/") != path.strip("/")
        ):
            raise AuthenticationError("Token de download inválido ou expirado.")
        return self.storage.resolve(bucket, path)

    def resolve_public(self, bucket: str, path: str) -> Path:
        if bucket not in settings.PUBLIC_BUCKETS:
            raise NotFoundError("Arquivo não encontrado.")
        return self.storage.resolve(bucket, path)
