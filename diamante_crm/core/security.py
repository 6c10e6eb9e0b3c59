import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from diamante_crm.core.config import get_settings

settings = get_settings()


logger = logging.getLogger(__name__)
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

JWT_ALGORITHM = "HS256"


def utcnow() -> datetime:
    """Current time as naive UTC, the format stored in the database."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


def hash_password(password: str) -> str:
    """Hash a plain password using bcrypt.

    Args:
        password: Plain text password.

    Returns:
        Hashed password string.
    """

    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Check a password; malformed stored hashes count as a mismatch."""

    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # Malformed hash stored for the user
        logger.warning("Password hash could not be verified")
        return False


def create_jwt_token(
    subject: str,
    expires_in: int,
    claims: Optional[Dict[str, Any]] = None,
    token_type: Optional[str] = None,
) -> str:
    """Create a signed HS256 token.

    Access tokens carry no ``type`` claim; refresh and storage tokens are
    created with ``token_type`` so they can never pass as access tokens.
    """

    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {"sub": subject, "iat": now, "exp": now + timedelta(seconds=expires_in)}
    if claims:
        payload.update(claims)
    if token_type:
        payload["type"] = token_type
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=JWT_ALGORITHM)


def verify_jwt_token(token: str, token_type: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Decoded payload of a valid token of the given type, else None."""

    try:
        payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except JWTError as exc:
        logger.info("JWT verification failed: %s", exc)
        return None
    if payload.get("type") != token_type:
        logger.info("Rejected token of type %r, expected %r", payload.get("type"), token_type)
        return None
    return payload


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token of an ``Authorization: Bearer ...`` header, if any."""

    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()
