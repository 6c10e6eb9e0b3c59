from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Type

from pydantic.alias_generators import to_snake
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.core.access_control import AccessPermission
from diamante_crm.core.exceptions import NotFoundError
from diamante_crm.db.base import Base
from diamante_crm.db.models import (
    AssistTicket, AuditLog, Client, Lead, Project, RdoEntry, Rfi, Supplier, Unit,
)
from diamante_crm.repositories.base import AgencyScopedRepository
from diamante_crm.schemas.forms import (
    AssistTicketForm, ClientForm, FormModel, LeadForm, ProjectForm, RdoForm, RfiForm, SupplierForm, UnitForm,
)

logger = logging.getLogger(__name__)

NOT_FOUND = "Registro não encontrado."
PROJECT_NOT_FOUND = "Obra não encontrada."


@dataclass(frozen=True)
class CrmResource:
    """A CRUD area of the CRM: URL segment, table, form and required permission."""

    name: str
    model: Type[Base]
    form: Type[FormModel]
    permission: AccessPermission
    requires_project: bool = False


RESOURCES: List[CrmResource] = [
    CrmResource("clientes", Client, ClientForm, AccessPermission.CLIENTES),
    CrmResource("fornecedores", Supplier, SupplierForm, AccessPermission.FORNECEDORES),
    CrmResource("obras", Project, ProjectForm, AccessPermission.OBRAS),
    CrmResource("unidades", Unit, UnitForm, AccessPermission.OBRAS, requires_project=True),
    CrmResource("assistencia", AssistTicket, AssistTicketForm, AccessPermission.ASSISTENCIA),
    CrmResource("rfis", Rfi, RfiForm, AccessPermission.RFIS, requires_project=True),
    CrmResource("rdo", RdoEntry, RdoForm, AccessPermission.RDO, requires_project=True),
    CrmResource("leads", Lead, LeadForm, AccessPermission.FUNIL),
]

# Tables removed together with their project
PROJECT_CHILDREN = (Unit, Rfi, RdoEntry)


def get_resource(name: str) -> CrmResource:
    for resource in RESOURCES:
        if resource.name == name:
            return resource
    raise NotFoundError(f"Recurso desconhecido: {name}")


def to_dict(instance: Base) -> Dict[str, Any]:
    """Serialize an ORM instance to a dictionary of its columns."""

    result: Dict[str, Any] = {}
    for column in instance.__table__.columns:
        value = getattr(instance, column.key)
        # Convert date/datetime objects to ISO format strings for JSON serialization
        if isinstance(value, (datetime, date)):
            value = value.isoformat()
        result[column.key] = value
    return result


class CrmService:
    """Agency-scoped CRUD shared by every CRM resource."""

    def __init__(self, resource: CrmResource) -> None:
        self.resource = resource
        self.repo = AgencyScopedRepository(resource.model)
        self.project_repo = AgencyScopedRepository(Project)

    @property
    def table(self) -> str:
        return self.resource.model.__tablename__

    async def _ensure_project(self, session: AsyncSession, agency_id: int, project_id: str) -> None:
        if await self.project_repo.get_by_id(session, agency_id, project_id) is None:
            raise NotFoundError(PROJECT_NOT_FOUND, {"project_id": project_id})

    async def list_records(self, session: AsyncSession, agency_id: int) -> List[Dict[str, Any]]:
        rows = await self.repo.list_by_agency(session, agency_id)
        return [to_dict(row) for row in rows]

    async def get_entity(self, session: AsyncSession, agency_id: int, entity_id: str) -> Base:
        """Fetch a row of the caller's agency; rows of other agencies are 404."""

        entity = await self.repo.get_by_id(session, agency_id, entity_id)
        if entity is None:
            raise NotFoundError(NOT_FOUND, {"id": entity_id})
        return entity

    async def get_record(self, session: AsyncSession, agency_id: int, entity_id: str) -> Dict[str, Any]:
        return to_dict(await self.get_entity(session, agency_id, entity_id))

    async def create_record(
        self,
        session: AsyncSession,
        agency_id: int,
        form: FormModel,
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        data = form.model_dump()
        if self.resource.requires_project:
            await self._ensure_project(session, agency_id, data["project_id"])

        entity = await self.repo.create(session, agency_id, data)
        entity_id = entity.id
        session.add(AuditLog(
            user_id=user_id,
            acao="CREATE",
            tabela_afetada=self.table,
            registro_afetado=entity_id,
        ))
        await session.commit()
        await session.refresh(entity)
        logger.info("CRM record created", extra={"resource": self.resource.name, "record_id": entity_id})
        return to_dict(entity)

    async def update_record(
        self,
        session: AsyncSession,
        agency_id: int,
        entity_id: str,
        payload: Dict[str, Any],
        user_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Partial update.

        The payload (snake_case or camelCase keys) is merged over the stored
        row and the complete form is validated again, so the row can never
        leave the form bounds.
        """

        entity = await self.get_entity(session, agency_id, entity_id)
        current = to_dict(entity)
        changes = {to_snake(key): value for key, value in payload.items()}
        form = self.resource.form.model_validate({**current, **changes})
        data = form.model_dump()
        if self.resource.requires_project and data["project_id"] != current.get("project_id"):
            await self._ensure_project(session, agency_id, data["project_id"])

        await self.repo.update(session, entity, data)
        session.add(AuditLog(
            user_id=user_id,
            acao="UPDATE",
            tabela_afetada=self.table,
            registro_afetado=entity_id,
            dados_novos=changes,
        ))
        await session.commit()
        await session.refresh(entity)
        return to_dict(entity)

    async def delete_record(
        self,
        session: AsyncSession,
        agency_id: int,
        entity_id: str,
        user_id: Optional[str] = None,
    ) -> None:
        entity = await self.get_entity(session, agency_id, entity_id)
        if isinstance(entity, Project):
            for child in PROJECT_CHILDREN:
                await session.execute(
                    delete(child).where(child.project_id == entity_id, child.agency_id == agency_id)
                )
        await session.delete(entity)
        session.add(AuditLog(
            user_id=user_id,
            acao="DELETE",
            tabela_afetada=self.table,
            registro_afetado=entity_id,
        ))
        await session.commit()
        logger.info("CRM record deleted", extra={"resource": self.resource.name, "record_id": entity_id})


class LeadService(CrmService):
    """Sales pipeline (funil) on top of the generic CRUD."""

    def __init__(self) -> None:
        super().__init__(get_resource("leads"))

    async def move_stage(self, session: AsyncSession, agency_id: int, lead_id: str, etapa: str) -> Dict[str, Any]:
        lead = await self.get_entity(session, agency_id, lead_id)
        previous = lead.etapa
        lead.etapa = etapa
        await session.commit()
        await session.refresh(lead)
        logger.info("Lead moved", extra={"lead_id": lead_id, "from": previous, "to": etapa})
        return to_dict(lead)
