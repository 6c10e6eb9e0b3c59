import logging
import random
import string
import time
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from diamante_crm.core.config import get_settings
from diamante_crm.core.documents import normalize_broker_code, normalize_cpf, normalize_creci
from diamante_crm.core.exceptions import ConflictError, NotFoundError, ValidationError
from diamante_crm.core.security import utcnow
from diamante_crm.db.models import AuditLog, Broker, CommissionSetting, Lead, SaleCommunication
from diamante_crm.repositories.base import AgencyScopedRepository
from diamante_crm.repositories.broker import BrokerRepository, SalesRepository
from diamante_crm.schemas.sales import BrokerRegistration, SaleCommunicationCreate
from diamante_crm.services.crm import to_dict

logger = logging.getLogger(__name__)
settings = get_settings()

BROKER_CODE_ATTEMPTS = 30
_CODE_ALPHABET = string.ascii_uppercase + string.digits


def make_broker_code(cpf: str) -> str:
    suffix = normalize_cpf(cpf)[-3:].rjust(3, "0")
    token = "".join(random.choice(_CODE_ALPHABET) for _ in range(4))
    return normalize_broker_code(f"COR-{suffix}{token}")


class BrokerRegistryService:
    """Registry of partner brokers and their sale codes."""

    def __init__(self) -> None:
        self.repo = BrokerRepository()

    async def generate_code(self, session: AsyncSession, agency_id: int, cpf: str) -> str:
        for _ in range(BROKER_CODE_ATTEMPTS):
            code = make_broker_code(cpf)
            if not await self.repo.code_exists(session, agency_id, code):
                return code
        suffix = normalize_cpf(cpf)[-3:].rjust(3, "0")
        return normalize_broker_code(f"COR-{suffix}{str(int(time.time() * 1000))[-4:]}")

    async def list_brokers(self, session: AsyncSession, agency_id: int) -> List[Dict[str, Any]]:
        return [to_dict(broker) for broker in await self.repo.list_by_agency(session, agency_id)]

    async def register(self, session: AsyncSession, agency_id: int, data: BrokerRegistration) -> Dict[str, Any]:
        """Create or update a broker.

        An existing record is matched by ``user_id`` first and then by CPF;
        its code is kept unless a new one is given.
        """

        broker: Optional[Broker] = None
        if data.user_id:
            broker = await self.repo.get_by_user_id(session, agency_id, data.user_id)
        if broker is None:
            broker = await self.repo.get_by_cpf(session, agency_id, data.cpf)

        code = data.broker_code
        if code:
            owner = await self.repo.get_by_code(session, agency_id, code)
            if owner is not None and (broker is None or owner.id != broker.id):
                raise ConflictError("Codigo de corretor ja utilizado.", {"broker_code": code})
        else:
            code = broker.broker_code if broker else await self.generate_code(session, agency_id, data.cpf)

        if broker is None:
            broker = Broker(agency_id=agency_id)
            session.add(broker)
        broker.user_id = data.user_id
        broker.nome = data.nome
        broker.email = data.email
        broker.cpf = data.cpf
        broker.creci = data.creci
        broker.broker_code = code
        await session.commit()
        await session.refresh(broker)
        logger.info("Broker registered", extra={"agency_id": agency_id, "broker_code": code})
        return to_dict(broker)

    async def validate(
        self,
        session: AsyncSession,
        agency_id: int,
        broker_code: Any,
        cpf: Any,
        creci: Any = None,
    ) -> Broker:
        """Check a broker code against the CPF (and CRECI when registered).

        Raises:
            ValidationError: With the message shown to the seller.
        """

        code = normalize_broker_code(broker_code)
        cpf = normalize_cpf(cpf)[:11]
        creci = normalize_creci(creci)

        if not code:
            raise ValidationError("Informe o codigo do corretor.")
        if not cpf:
            raise ValidationError("Informe o CPF do corretor.")

        broker = await self.repo.get_by_code(session, agency_id, code)
        if broker is None:
            raise ValidationError("Codigo de corretor nao encontrado.")
        if broker.cpf != cpf:
            raise ValidationError("Codigo informado nao corresponde ao CPF.")
        if broker.creci:
            if not creci:
                raise ValidationError("Este corretor possui CRECI cadastrado. Informe o CRECI para validar.")
            if broker.creci != creci:
                raise ValidationError("CRECI informado nao confere com o codigo.")
        return broker


class SalesService:
    """Commission settings and sale communications."""

    def __init__(self) -> None:
        self.repo = SalesRepository()
        self.brokers = BrokerRegistryService()
        self.leads = AgencyScopedRepository(Lead)

    async def get_commission(self, session: AsyncSession, agency_id: int) -> Dict[str, Any]:
        setting = await self.repo.get_commission(session, agency_id)
        if setting is None:
            return {"percentual": settings.DEFAULT_COMMISSION_PERCENT, "updated_at": None, "updated_by": None}
        return {
            "percentual": setting.percentual,
            "updated_at": setting.updated_at.isoformat(),
            "updated_by": setting.updated_by,
        }

    async def set_commission(self, session: AsyncSession, agency_id: int, percentual: float, updated_by: str) -> Dict[str, Any]:
        percentual = round(min(100.0, max(0.0, float(percentual))), 2)
        setting = await self.repo.get_commission(session, agency_id)
        if setting is None:
            setting = CommissionSetting(agency_id=agency_id, percentual=percentual)
            session.add(setting)
        setting.percentual = percentual
        setting.updated_by = updated_by
        setting.updated_at = utcnow()
        await session.commit()
        return await self.get_commission(session, agency_id)

    async def list_communications(self, session: AsyncSession, agency_id: int) -> List[Dict[str, Any]]:
        return [to_dict(row) for row in await self.repo.list_communications(session, agency_id)]

    async def register_sale(
        self,
        session: AsyncSession,
        agency_id: int,
        data: SaleCommunicationCreate,
        registered_by: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Record a sale communicated by a broker.

        The broker must validate against the registry. The commission uses
        the agency percentage at the moment of the sale and the linked lead,
        if any, moves to the ``contrato`` stage.
        """

        broker = await self.brokers.validate(
            session, agency_id, data.broker_code, data.broker_cpf, data.broker_creci
        )
        broker_nome = data.broker_nome or broker.nome

        lead = None
        if data.lead_id:
            lead = await self.leads.get_by_id(session, agency_id, data.lead_id)
            if lead is None:
                raise NotFoundError("Lead não encontrado.", {"lead_id": data.lead_id})

        percentual = float((await self.get_commission(session, agency_id))["percentual"])
        valor_comissao = round(data.valor_venda * percentual / 100, 2)

        communication = SaleCommunication(
            agency_id=agency_id,
            lead_id=data.lead_id,
            lead_nome_cliente=data.lead_nome_cliente,
            unidade=data.unidade,
            valor_venda=data.valor_venda,
            percentual_comissao=percentual,
            valor_comissao=valor_comissao,
            broker_nome=broker_nome,
            broker_cpf=broker.cpf,
            broker_creci=broker.creci,
            broker_code=broker.broker_code,
            registrado_por=registered_by,
        )
        session.add(communication)
        if lead is not None:
            lead.etapa = "contrato"
        await session.flush()

        session.add(AuditLog(
            user_id=registered_by,
            acao="CREATE",
            tabela_afetada="sales_communications",
            registro_afetado=communication.id,
            dados_novos={"valor_venda": data.valor_venda, "valor_comissao": valor_comissao},
        ))
        await session.commit()
        await session.refresh(communication)
        logger.info(
            "Sale communicated",
            extra={"agency_id": agency_id, "broker_code": broker.broker_code, "valor_venda": data.valor_venda},
        )
        return to_dict(communication)
