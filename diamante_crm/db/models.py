# diamante_crm/db/models.py
import uuid
from datetime import date, datetime

from sqlalchemy import (
    JSON, Boolean, Date, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from diamante_crm.core.security import utcnow
from diamante_crm.db.base import Base

convention = {
    "ix": "ix__%(column_0_label)s",
    "uq": "uq__%(table_name)s__%(column_0_name)s",
    "ck": "ck__%(table_name)s__%(constraint_name)s",
    "fk": "fk__%(table_name)s__%(column_0_name)s__%(referred_table_name)s",
    "pk": "pk__%(table_name)s",
}

Base.metadata.naming_convention = convention


def new_id() -> str:
    return str(uuid.uuid4())


class TimestampMixin:
    criado_em: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    atualizado_em: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class AgencyScopedMixin:
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    agency_id: Mapped[int] = mapped_column(ForeignKey("agency.id"), index=True, nullable=False)


# ---------------------------------------------------------------------------
# Tenant / identity
# ---------------------------------------------------------------------------

class Agency(Base):
    __tablename__ = "agency"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    nome: Mapped[str] = mapped_column(Text, nullable=False)
    criado_em: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    membros = relationship("StaffMember", back_populates="agency")


class AuthUser(Base):
    """Credentials shared by staff members and portal clients."""
    __tablename__ = "auth_users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    email: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    hashed_password: Mapped[str] = mapped_column(Text, nullable=False)
    ativo: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    staff = relationship("StaffMember", back_populates="user", uselist=False)


class StaffMember(Base, TimestampMixin):
    __tablename__ = "staff_members"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str] = mapped_column(ForeignKey("auth_users.id"), unique=True, nullable=False)
    agency_id: Mapped[int] = mapped_column(ForeignKey("agency.id"), index=True, nullable=False)
    nome: Mapped[str] = mapped_column(Text, nullable=False)
    telefone: Mapped[str | None] = mapped_column(Text)
    cpf: Mapped[str | None] = mapped_column(String(11))
    cargo: Mapped[str | None] = mapped_column(Text)
    nivel_acesso: Mapped[str] = mapped_column(String(32), default="colaborador", nullable=False)

    user = relationship("AuthUser", back_populates="staff", lazy="joined")
    agency = relationship("Agency", back_populates="membros")


class AuditLog(Base):
    __tablename__ = "logs"

    id_log: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str | None] = mapped_column(String(36))
    acao: Mapped[str] = mapped_column(Text, nullable=False)
    tabela_afetada: Mapped[str] = mapped_column(Text, nullable=False)
    registro_afetado: Mapped[str | None] = mapped_column(String(64))
    dados_novos: Mapped[dict | None] = mapped_column(JSON)
    data_hora: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    detalhes_adicionais: Mapped[str | None] = mapped_column(Text)


# ---------------------------------------------------------------------------
# CRM
# ---------------------------------------------------------------------------

class Client(AgencyScopedMixin, TimestampMixin, Base):
    __tablename__ = "clients"

    razao_social: Mapped[str] = mapped_column(Text, nullable=False)
    cnpj: Mapped[str] = mapped_column(String(14), nullable=False)
    cpf: Mapped[str | None] = mapped_column(String(11))
    endereco: Mapped[str] = mapped_column(Text, nullable=False)
    valor_pago: Mapped[float] = mapped_column(Float, nullable=False)
    recorrencia: Mapped[str] = mapped_column(String(32), nullable=False)
    responsavel: Mapped[str] = mapped_column(Text, nullable=False)
    contato_interno: Mapped[str] = mapped_column(Text, nullable=False)


class Supplier(AgencyScopedMixin, TimestampMixin, Base):
    __tablename__ = "suppliers"

    razao_social: Mapped[str] = mapped_column(Text, nullable=False)
    doc_tipo: Mapped[str] = mapped_column(String(4), nullable=False)
    documento: Mapped[str] = mapped_column(String(14), nullable=False)
    endereco: Mapped[str] = mapped_column(Text, nullable=False)
    responsavel: Mapped[str] = mapped_column(Text, nullable=False)
    contato: Mapped[str] = mapped_column(Text, nullable=False)


class Project(AgencyScopedMixin, TimestampMixin, Base):
    __tablename__ = "projects"

    nome: Mapped[str] = mapped_column(Text, nullable=False)
    cidade: Mapped[str] = mapped_column(Text, nullable=False)
    inicio_previsto: Mapped[date] = mapped_column(Date, nullable=False)
    entrega_prevista: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    progresso: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    orcamento: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    gasto: Mapped[float] = mapped_column(Float, default=0, nullable=False)

    unidades = relationship("Unit", back_populates="project", passive_deletes=True)


class Unit(AgencyScopedMixin, TimestampMixin, Base):
    __tablename__ = "units"

    project_id: Mapped[str] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), index=True, nullable=False)
    nome: Mapped[str] = mapped_column(Text, nullable=False)
    area: Mapped[float] = mapped_column(Float, nullable=False)
    preco: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)

    project = relationship("Project", back_populates="unidades")


class AssistTicket(AgencyScopedMixin, TimestampMixin, Base):
    """Chamado de assistência técnica pós-entrega."""
    __tablename__ = "assist_tickets"

    unidade: Mapped[str] = mapped_column(Text, nullable=False)
    cliente: Mapped[str] = mapped_column(Text, nullable=False)
    contato: Mapped[str] = mapped_column(Text, nullable=False)
    tipo: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    prazo: Mapped[date] = mapped_column(Date, nullable=False)
    descricao: Mapped[str] = mapped_column(Text, nullable=False)
    responsavel: Mapped[str | None] = mapped_column(Text)


class Rfi(AgencyScopedMixin, TimestampMixin, Base):
    __tablename__ = "rfis"

    project_id: Mapped[str] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), index=True, nullable=False)
    titulo: Mapped[str] = mapped_column(Text, nullable=False)
    pergunta: Mapped[str] = mapped_column(Text, nullable=False)
    solicitante: Mapped[str] = mapped_column(Text, nullable=False)
    responsavel: Mapped[str] = mapped_column(Text, nullable=False)
    prazo: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(32), nullable=False)
    resposta: Mapped[str | None] = mapped_column(Text)


class RdoEntry(AgencyScopedMixin, TimestampMixin, Base):
    """Relatório diário de obra."""
    __tablename__ = "rdo_entries"

    project_id: Mapped[str] = mapped_column(ForeignKey("projects.id", ondelete="CASCADE"), index=True, nullable=False)
    data: Mapped[date] = mapped_column(Date, nullable=False)
    clima: Mapped[str] = mapped_column(Text, nullable=False)
    equipe: Mapped[str] = mapped_column(Text, nullable=False)
    horas_trabalhadas: Mapped[float] = mapped_column(Float, nullable=False)
    atividades: Mapped[str] = mapped_column(Text, nullable=False)
    impedimentos: Mapped[str | None] = mapped_column(Text)
    observacoes: Mapped[str | None] = mapped_column(Text)
    fotos: Mapped[list | None] = mapped_column(JSON)


class Lead(AgencyScopedMixin, TimestampMixin, Base):
    __tablename__ = "leads"

    nome_cliente: Mapped[str] = mapped_column(Text, nullable=False)
    contato: Mapped[str] = mapped_column(Text, nullable=False)
    origem: Mapped[str] = mapped_column(Text, nullable=False)
    etapa: Mapped[str] = mapped_column(String(32), nullable=False)
    valor: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    unidade: Mapped[str | None] = mapped_column(Text)
    corretor: Mapped[str | None] = mapped_column(Text)
    observacoes: Mapped[str | None] = mapped_column(Text)


class CommissionSetting(Base):
    __tablename__ = "sales_commission_settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agency_id: Mapped[int] = mapped_column(ForeignKey("agency.id"), unique=True, nullable=False)
    percentual: Mapped[float] = mapped_column(Float, nullable=False)
    updated_by: Mapped[str | None] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class SaleCommunication(AgencyScopedMixin, Base):
    __tablename__ = "sales_communications"

    lead_id: Mapped[str | None] = mapped_column(ForeignKey("leads.id", ondelete="SET NULL"))
    lead_nome_cliente: Mapped[str] = mapped_column(Text, nullable=False)
    unidade: Mapped[str | None] = mapped_column(Text)
    valor_venda: Mapped[float] = mapped_column(Float, nullable=False)
    percentual_comissao: Mapped[float] = mapped_column(Float, nullable=False)
    valor_comissao: Mapped[float] = mapped_column(Float, nullable=False)
    broker_nome: Mapped[str] = mapped_column(Text, nullable=False)
    broker_cpf: Mapped[str] = mapped_column(String(11), nullable=False)
    broker_creci: Mapped[str | None] = mapped_column(Text)
    broker_code: Mapped[str] = mapped_column(String(32), nullable=False)
    registrado_por: Mapped[str | None] = mapped_column(Text)
    criado_em: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Broker(AgencyScopedMixin, TimestampMixin, Base):
    """Registro de corretores parceiros e seus códigos de venda."""
    __tablename__ = "brokers"
    __table_args__ = (
        UniqueConstraint("agency_id", "broker_code", name="uq_brokers_agency_code"),
    )

    user_id: Mapped[str | None] = mapped_column(String(36))
    nome: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, nullable=False)
    cpf: Mapped[str] = mapped_column(String(11), nullable=False)
    creci: Mapped[str | None] = mapped_column(Text)
    broker_code: Mapped[str] = mapped_column(String(32), nullable=False)


# ---------------------------------------------------------------------------
# Portal do cliente
# ---------------------------------------------------------------------------

class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    user_id: Mapped[str | None] = mapped_column(ForeignKey("auth_users.id"), unique=True)
    cpf: Mapped[str] = mapped_column(String(11), unique=True, index=True, nullable=False)
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    phone_e164: Mapped[str | None] = mapped_column(Text)
    phone_last6: Mapped[str | None] = mapped_column(String(6))
    client_external_id: Mapped[str | None] = mapped_column(Text)
    portal_access_enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    email_contact: Mapped[str | None] = mapped_column(Text)
    address_line: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Agent(Base):
    """Atendente com acesso a todos os contratos do portal."""
    __tablename__ = "agents"

    user_id: Mapped[str] = mapped_column(ForeignKey("auth_users.id"), primary_key=True)
    display_name: Mapped[str] = mapped_column(Text, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class Contract(Base):
    __tablename__ = "contracts"

    contract_number: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str | None] = mapped_column(ForeignKey("auth_users.id"), index=True)
    development_id: Mapped[str | None] = mapped_column(Text)
    development_name: Mapped[str | None] = mapped_column(Text)
    unit_id: Mapped[str | None] = mapped_column(Text)
    unit_label: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class LoginAttempt(Base):
    __tablename__ = "login_attempts"

    cpf: Mapped[str] = mapped_column(String(11), primary_key=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_failed_at: Mapped[datetime | None] = mapped_column(DateTime)
    locked_until: Mapped[datetime | None] = mapped_column(DateTime)


class NewsItem(Base):
    __tablename__ = "news"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    contract_number: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    body: Mapped[str] = mapped_column(Text, default="", nullable=False)
    image_url: Mapped[str | None] = mapped_column(Text)
    published_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class DocumentItem(Base):
    __tablename__ = "documents"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    contract_number: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    type: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    storage_path: Mapped[str] = mapped_column(Text, nullable=False)
    published_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class FaqItem(Base):
    __tablename__ = "faq"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    # NULL means the question applies to every contract
    contract_number: Mapped[str | None] = mapped_column(String(64), index=True)
    category: Mapped[str] = mapped_column(Text, nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False)
    answer: Mapped[str] = mapped_column(Text, default="", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class FinancialBill(Base):
    __tablename__ = "financial_bills"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    contract_number: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="open", nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    competence: Mapped[str | None] = mapped_column(Text)
    barcode_line: Mapped[str | None] = mapped_column(Text)
    bill_pdf_path: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class PortalTicket(Base):
    __tablename__ = "tickets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    contract_number: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    created_by_user: Mapped[str | None] = mapped_column(String(36))
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(Text, default="geral", nullable=False)
    message: Mapped[str] = mapped_column(Text, default="", nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="open", nullable=False)
    protocol: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)


class Conversation(Base):
    __tablename__ = "conversations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    contract_number: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    user_id: Mapped[str | None] = mapped_column(String(36))
    status: Mapped[str] = mapped_column(String(16), default="new", nullable=False)
    priority: Mapped[str] = mapped_column(String(16), default="normal", nullable=False)
    assigned_agent_id: Mapped[str | None] = mapped_column(String(36))
    last_message_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    messages = relationship("Message", back_populates="conversation", passive_deletes=True)


class Message(Base):
    __tablename__ = "messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    conversation_id: Mapped[str] = mapped_column(ForeignKey("conversations.id", ondelete="CASCADE"), index=True, nullable=False)
    contract_number: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    sender_type: Mapped[str] = mapped_column(String(16), nullable=False)
    sender_user_id: Mapped[str | None] = mapped_column(String(36))
    message_type: Mapped[str] = mapped_column(String(16), default="text", nullable=False)
    body_text: Mapped[str | None] = mapped_column(Text)
    attachment_id: Mapped[str | None] = mapped_column(String(36))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    read_at_client: Mapped[datetime | None] = mapped_column(DateTime)
    read_at_agent: Mapped[datetime | None] = mapped_column(DateTime)

    conversation = relationship("Conversation", back_populates="messages")


class ChatThread(Base):
    __tablename__ = "portal_chat_threads"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    protocol: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    client_name: Mapped[str] = mapped_column(Text, nullable=False)
    client_email: Mapped[str | None] = mapped_column(Text)
    client_phone: Mapped[str | None] = mapped_column(Text)
    client_document: Mapped[str | None] = mapped_column(Text)
    subject: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(32), default="aberto", nullable=False)
    origin: Mapped[str] = mapped_column(String(16), default="portal", nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    last_message_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class ChatMessage(Base):
    __tablename__ = "portal_chat_messages"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    thread_id: Mapped[str] = mapped_column(ForeignKey("portal_chat_threads.id", ondelete="CASCADE"), index=True, nullable=False)
    sender_type: Mapped[str] = mapped_column(String(16), nullable=False)
    sender_name: Mapped[str | None] = mapped_column(Text)
    sender_user_id: Mapped[str | None] = mapped_column(String(36))
    channel: Mapped[str] = mapped_column(String(16), default="portal", nullable=False)
    message: Mapped[str] = mapped_column(Text, default="", nullable=False)
    attachments: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    read_by_support: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_by_client: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)


class ChatAccessKey(Base):
    __tablename__ = "portal_chat_access_keys"

    thread_id: Mapped[str] = mapped_column(ForeignKey("portal_chat_threads.id", ondelete="CASCADE"), primary_key=True)
    access_key_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime)
    last_used_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
