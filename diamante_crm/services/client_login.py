"""
CPF + 6-digit code login of the client portal.

Linear guard chain with early exits; lockout state is a counter row per CPF
whose ``locked_until`` timestamp is compared against the wall clock.
"""

import logging
import math
from datetime import timedelta
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.core.config import get_settings
from diamante_crm.core.documents import is_valid_cpf, normalize_cpf, normalize_pass6, only_digits
from diamante_crm.core.exceptions import (
    AuthenticationError,
    BusinessLogicError,
    LockedError,
    PermissionDeniedError,
    ValidationError,
)
from diamante_crm.core.security import utcnow
from diamante_crm.db.models import Contract, Profile
from diamante_crm.repositories.portal import ContractRepository, LoginAttemptRepository, ProfileRepository
from diamante_crm.services.auth import AuthService

logger = logging.getLogger(__name__)
settings = get_settings()

INVALID_INPUT = "Credenciais inválidas."
INVALID_CREDENTIALS = "CPF ou senha invalidos."


def portal_email(cpf: str) -> str:
    return f"{cpf}@{settings.PORTAL_EMAIL_DOMAIN}"


def expected_access_code(profile: Profile) -> str:
    """``phone_last6`` when filled, otherwise the last six digits of the phone."""

    stored = (profile.phone_last6 or "").strip()
    if stored:
        return stored
    return only_digits(profile.phone_e164)[-6:]


def contract_to_dict(contract: Contract) -> Dict[str, Any]:
    development_name = contract.development_name or "Empreendimento"
    unit_label = contract.unit_label or "Unidade"
    return {
        "contract_number": contract.contract_number,
        "user_id": contract.user_id,
        "development_id": contract.development_id or development_name.lower().replace(" ", "-"),
        "development_name": development_name,
        "unit_id": contract.unit_id or unit_label.lower().replace(" ", "-"),
        "unit_label": unit_label,
        "created_at": contract.created_at.isoformat(),
    }


def placeholder_contract(cpf: str, user_id: str) -> Dict[str, Any]:
    return {
        "contract_number": f"CTR-{cpf[-6:]}",
        "user_id": user_id,
        "development_id": "sem-empreendimento",
        "development_name": "Empreendimento nao informado",
        "unit_id": "sem-unidade",
        "unit_label": "Unidade nao informada",
        "created_at": utcnow().isoformat(),
    }


class ProfileMissingUserError(BusinessLogicError):
    """Raised when a portal profile is not linked to an auth user."""


class ClientLoginService:
    def __init__(self) -> None:
        self.attempts_repo = LoginAttemptRepository()
        self.profile_repo = ProfileRepository()
        self.contract_repo = ContractRepository()
        self.auth = AuthService()

    async def _register_failure(self, session: AsyncSession, cpf: str, baseline: int) -> None:
        attempts = baseline + 1
        now = utcnow()
        locked_until = None
        if attempts >= settings.LOGIN_MAX_ATTEMPTS:
            locked_until = now + timedelta(minutes=settings.LOGIN_LOCK_MINUTES)
            logger.warning("Portal login locked", extra={"cpf_suffix": cpf[-4:], "attempts": attempts})
        await self.attempts_repo.save(session, cpf, attempts, now, locked_until)

    async def login(self, session: AsyncSession, cpf_input: Any, pass6_input: Any) -> Dict[str, Any]:
        """Authenticate a portal client.

        Args:
            session: Async database session.
            cpf_input: CPF as typed (punctuation allowed).
            pass6_input: Access code as typed.

        Returns:
            Dict with ``session``, ``profile``, ``contracts``, ``locked_until``
            and ``remaining_seconds``.

        Raises:
            ValidationError: Malformed CPF or code (400).
            LockedError: CPF locked after repeated failures (423).
            AuthenticationError: Wrong CPF/code (401).
            PermissionDeniedError: Portal access disabled (403).
            ProfileMissingUserError: Profile not linked to an auth user (500).
        """

        cpf = normalize_cpf(cpf_input)
        pass6 = normalize_pass6(pass6_input)
        if not is_valid_cpf(cpf) or len(pass6) != 6:
            raise ValidationError(INVALID_INPUT)

        now = utcnow()
        record = await self.attempts_repo.get(session, cpf)
        locked_until = record.locked_until if record else None
        lock_expired = locked_until is not None and locked_until <= now
        baseline = 0 if (record is None or lock_expired) else int(record.attempts or 0)

        if locked_until is not None and locked_until > now:
            remaining = max(1, math.ceil((locked_until - now).total_seconds()))
            raise LockedError(
                "Conta temporariamente bloqueada.",
                {"locked_until": locked_until.isoformat(), "remaining_seconds": remaining},
            )

        profile = await self.profile_repo.get_by_cpf(session, cpf)
        if profile is None:
            await self._register_failure(session, cpf, baseline)
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not profile.portal_access_enabled:
            raise PermissionDeniedError("Acesso do portal desativado para este cliente.")

        expected = expected_access_code(profile)
        if not expected or expected != pass6:
            await self._register_failure(session, cpf, baseline)
            raise AuthenticationError(INVALID_CREDENTIALS)

        if not profile.user_id:
            logger.error("Portal profile without user_id", extra={"profile_id": profile.id})
            raise ProfileMissingUserError("Perfil sem user_id vinculado. Atualize o cadastro do cliente.")

        # the attempts table may be rolled back below, which expires the ORM row
        profile_data = {
            "user_id": profile.user_id,
            "cpf": cpf,
            "full_name": profile.full_name or "Cliente",
            "phone_e164": profile.phone_e164 or "",
            "phone_last6": expected,
            "client_external_id": profile.client_external_id or profile.id,
            "portal_access_enabled": True,
            "email_contact": profile.email_contact,
            "address_line": profile.address_line,
            "created_at": profile.created_at.isoformat(),
        }
        user_id = profile.user_id

        try:
            tokens, _ = await self.auth.sign_in_with_password(session, portal_email(cpf), pass6)
        except AuthenticationError:
            await self._register_failure(session, cpf, baseline)
            raise AuthenticationError(INVALID_CREDENTIALS)

        await self.attempts_repo.clear(session, cpf)

        contracts: List[Dict[str, Any]] = [
            contract_to_dict(row) for row in await self.contract_repo.list_by_user(session, user_id)
        ]
        if not contracts:
            contracts = [placeholder_contract(cpf, user_id)]

        logger.info("Portal login succeeded", extra={"user_id": user_id, "contracts": len(contracts)})
        return {
            "session": tokens.as_dict(),
            "profile": profile_data,
            "contracts": contracts,
            "locked_until": None,
            "remaining_seconds": 0,
        }
