from __future__ import annotations
import logging
from typing import Any, Dict, List

from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.core.config import get_settings
from diamante_crm.core.exceptions import NotFoundError, PermissionDeniedError, ValidationError
from diamante_crm.db.models import AuthUser
from diamante_crm.repositories.portal import AgentRepository, ContractRepository
from diamante_crm.repositories.search import PortalContentRepository

logger = logging.getLogger(__name__)
settings = get_settings()

SEARCH_GROUPS = ("news", "documents", "faq", "tickets", "bills", "messages")


class ContractAccessService:
    """Access rule of the portal: active agents see every contract, clients their own."""

    def __init__(self) -> None:
        self.agent_repo = AgentRepository()
        self.contract_repo = ContractRepository()

    async def can_access(self, session: AsyncSession, user: AuthUser, contract_number: str) -> bool:
        user_id = user.id
        if await self.agent_repo.is_active_agent(session, user_id):
            return True
        contract = await self.contract_repo.get(session, contract_number)
        return contract is not None and contract.user_id == user_id

    async def select_contract(self, session: AsyncSession, user: AuthUser, contract_number: Any) -> Dict[str, Any]:
        number = str(contract_number or "").strip()
        if not number:
            raise ValidationError("contract_number é obrigatório.")

        user_id = user.id
        is_agent = await self.agent_repo.is_active_agent(session, user_id)
        contract = await self.contract_repo.get(session, number)
        if contract is None:
            raise NotFoundError("Contrato não encontrado.")
        if not is_agent and contract.user_id != user_id:
            logger.info("Contract access denied", extra={"user_id": user_id, "contract_number": number})
            raise PermissionDeniedError("Sem permissão para acessar este contrato.")

        return {
            "contract_number": contract.contract_number,
            "development_name": contract.development_name,
            "unit_label": contract.unit_label,
        }


class GlobalSearchService:
    """Contract-scoped search over the portal content, grouped by kind."""

    def __init__(self) -> None:
        self.access = ContractAccessService()
        self.content = PortalContentRepository()

    async def search(self, session: AsyncSession, user: AuthUser, q: Any, contract_number: Any) -> Dict[str, Any]:
        term = str(q or "").strip()
        number = str(contract_number or "").strip()
        if not term or not number:
            raise ValidationError("q e contract_number são obrigatórios.")

        if not await self.access.can_access(session, user, number):
            raise PermissionDeniedError("Sem permissão para este contrato.")

        limit = settings.SEARCH_GROUP_LIMIT
        groups: Dict[str, List[Dict[str, str]]] = {}

        # each group is materialised right away: a missing table rolls the
        # session back and expires rows loaded before it
        groups["news"] = [
            _hit("news", item.id, item.title, item.category, "/novidades")
            for item in await self.content.search_news(session, number, term, limit)
        ]
        groups["documents"] = [
            _hit("documents", item.id, item.title, item.type, "/informacoes")
            for item in await self.content.search_documents(session, number, term, limit)
        ]
        groups["faq"] = [
            _hit("faq", item.id, item.question, item.category, "/atendimento")
            for item in await self.content.search_faq(session, number, term, limit)
        ]
        groups["tickets"] = [
            _hit("tickets", item.id, item.subject or item.protocol, item.status, "/atendimento")
            for item in await self.content.search_tickets(session, number, term, limit)
        ]
        groups["bills"] = [
            _hit("bills", item.id, f"Boleto {item.due_date.isoformat()}", item.status, "/financeiro")
            for item in await self.content.search_bills(session, number, term, limit)
        ]
        groups["messages"] = [
            _hit("messages", item.id, "Mensagem", item.body_text, "/atendimento")
            for item in await self.content.search_messages(session, number, term, limit)
        ]

        return {
            "contract_number": number,
            "query": term,
            "groups": groups,
            "total": sum(len(groups[name]) for name in SEARCH_GROUPS),
        }


def _hit(kind: str, item_id: Any, title: Any, snippet: Any, link_target: str) -> Dict[str, str]:
    return {
        "type": kind,
        "id": str(item_id or ""),
        "title": str(title or ""),
        "snippet": str(snippet or ""),
        "link_target": link_target,
    }
