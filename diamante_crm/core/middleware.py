"""Authentication middleware for the CRM API."""
import logging
from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from diamante_crm.core.security import extract_bearer_token, verify_jwt_token

logger = logging.getLogger(__name__)


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """
    Rejects unauthenticated requests to the CRM API early.

    - Paths under `api_prefixes` need a valid access token (401 JSON otherwise).
    - Paths under `public_paths` (login, register, refresh) pass through.
    - Edge functions and storage validate their own credentials.
    """

    def __init__(self, app, api_prefixes: list[str] | None = None, public_paths: list[str] | None = None):
        super().__init__(app)
        self.api_prefixes = api_prefixes or ["/api"]
        self.public_paths = public_paths or [
            "/api/auth/login", "/api/auth/register", "/api/auth/refresh",
        ]

    def _is_public(self, path: str) -> bool:
        return any(path.startswith(p) for p in self.public_paths)

    def _is_api(self, path: str) -> bool:
        return any(path.startswith(p) for p in self.api_prefixes)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path

        if request.method == "OPTIONS" or self._is_public(path) or not self._is_api(path):
            return await call_next(request)

        token = extract_bearer_token(request.headers.get("authorization"))
        payload = verify_jwt_token(token) if token else None
        if not payload:
            logger.info("Rejected unauthenticated API request", extra={"path": path})
            return JSONResponse(status_code=401, content={"error": "Não autenticado."})

        return await call_next(request)
