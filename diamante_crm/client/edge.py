"""
Async client for the portal edge functions.

Every call is a JSON ``POST <base>/<function>`` carrying the ``apikey``
header and a bearer token (the user's access token, or the anon key).
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp

logger = logging.getLogger(__name__)


class EdgeFunctionError(Exception):
    """Non-2xx answer of an edge function.

    Attributes:
        message: ``error`` field of the JSON body, or the raw body text.
        status: HTTP status code.
        data: Parsed JSON body when it was an object, else None.
    """

    def __init__(self, message: str, status: Optional[int] = None, data: Optional[Dict[str, Any]] = None):
        self.message = message
        self.status = status
        self.data = data
        super().__init__(message)


class EdgeClient:
    """Caller of the ``/functions/v1`` endpoints."""

    def __init__(
        self,
        supabase_url: Optional[str] = None,
        anon_key: str = "",
        access_token: Optional[str] = None,
        edge_base_url: Optional[str] = None,
        timeout: float = 30,
    ):
        if not edge_base_url and not supabase_url:
            raise ValueError("supabase_url or edge_base_url is required")
        base = edge_base_url or f"{supabase_url.rstrip('/')}/functions/v1"
        self.base_url = base.rstrip("/")
        self.anon_key = anon_key
        self.access_token = access_token
        self._session_timeout = aiohttp.ClientTimeout(total=timeout)

    def _headers(self) -> Dict[str, str]:
        bearer = self.access_token or self.anon_key
        return {
            "Content-Type": "application/json",
            "apikey": self.anon_key,
            "Authorization": f"Bearer {bearer}",
        }

    async def call(self, fn: str, payload: Dict[str, Any]) -> Any:
        """POST ``payload`` to function ``fn`` and return the decoded JSON.

        Raises:
            EdgeFunctionError: On a non-2xx answer, a timeout or a connection failure.
        """

        url = f"{self.base_url}/{fn}"
        try:
            async with aiohttp.ClientSession(timeout=self._session_timeout) as client_session:
                async with client_session.post(url, json=payload, headers=self._headers()) as response:
                    text = await response.text()
                    status = response.status
        except asyncio.TimeoutError:
            logger.warning("Edge function timeout", extra={"function": fn})
            raise EdgeFunctionError(f"Edge function {fn} timed out")
        except aiohttp.ClientError as exc:
            logger.warning("Edge function unreachable", extra={"function": fn, "error": str(exc)})
            raise EdgeFunctionError(f"Edge function {fn} unreachable: {exc}") from exc

        try:
            parsed = json.loads(text) if text else None
        except ValueError:
            parsed = None

        if not 200 <= status < 300:
            data = parsed if isinstance(parsed, dict) else None
            if data is not None and "error" in data:
                message = str(data["error"])
            else:
                message = text or f"Edge function {fn} failed"
            logger.info("Edge function error", extra={"function": fn, "status": status})
            raise EdgeFunctionError(message, status=status, data=data)

        return parsed

    async def client_login(self, cpf: str, pass6: str) -> Dict[str, Any]:
        return await self.call("client-login", {"cpf": cpf, "pass6": pass6})

    async def contract_select(self, contract_number: str) -> Dict[str, Any]:
        return await self.call("contract-select", {"contract_number": contract_number})

    async def get_signed_url(self, bucket: str, path: str, expires_in: Optional[int] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"bucket": bucket, "path": path}
        if expires_in is not None:
            payload["expiresIn"] = expires_in
        return await self.call("signed-url", payload)

    async def global_search(self, q: str, contract_number: str) -> Dict[str, Any]:
        return await self.call("global-search", {"q": q, "contract_number": contract_number})

    async def portal_chat(self, action: str, **fields: Any) -> Dict[str, Any]:
        """Run a portal chat action and return its ``data`` payload."""

        body = await self.call("portal-chat", {"action": action, **fields})
        if isinstance(body, dict) and body.get("ok") is False:
            raise EdgeFunctionError(str(body.get("error") or "Falha no atendimento."), data=body)
        return body.get("data") if isinstance(body, dict) else body
