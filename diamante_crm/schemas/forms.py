"""
Pydantic schemas for the CRM forms.
Field names are snake_case; the camelCase names sent by the front-end are
accepted as aliases. Blank optional strings become ``None``.
"""

from datetime import date
from typing import Annotated, Any, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StringConstraints, ValidationInfo, field_validator
from pydantic.alias_generators import to_camel

from diamante_crm.core.documents import is_valid_cnpj, is_valid_cpf, only_digits


def blank_to_none(value: Any) -> Any:
    if isinstance(value, str) and not value.strip():
        return None
    return value


def Text(min_length: int = 1, max_length: int = 500):
    return Annotated[str, StringConstraints(strip_whitespace=True, min_length=min_length, max_length=max_length)]


def OptionalText(max_length: int = 1000):
    return Annotated[
        Optional[Annotated[str, StringConstraints(strip_whitespace=True, max_length=max_length)]],
        BeforeValidator(blank_to_none),
    ]


Recorrencia = Literal[
    "a_vista", "parcelado", "boleto", "financiamento", "consorcio", "permuta",
    # registros antigos
    "mensal", "trimestral", "semestral", "anual",
]
ProjectStatus = Literal["planejamento", "em_obra", "entregue"]
UnitStatus = Literal["disponivel", "reservado", "vendido"]
LeadStage = Literal["lead", "proposta", "reserva", "contrato"]
AssistType = Literal["hidraulica", "eletrica", "acabamento", "estrutura", "outros"]
AssistStatus = Literal["aberto", "em_andamento", "concluido"]
RfiStatus = Literal["aberto", "respondido", "fechado"]


class FormModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class ClientForm(FormModel):
    razao_social: Text(3, 200)
    cnpj: str
    cpf: Annotated[Optional[str], BeforeValidator(blank_to_none)] = None
    endereco: Text(10, 300)
    valor_pago: float = Field(gt=0, le=10_000_000)
    recorrencia: Recorrencia
    responsavel: Text(3, 100)
    contato_interno: Text(8, 50)

    @field_validator("cnpj")
    @classmethod
    def check_cnpj(cls, value: str) -> str:
        if not is_valid_cnpj(value):
            raise ValueError("CNPJ inválido")
        return only_digits(value)

    @field_validator("cpf")
    @classmethod
    def check_cpf(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        if not is_valid_cpf(value):
            raise ValueError("CPF inválido")
        return only_digits(value)


class SupplierForm(FormModel):
    razao_social: Text(3, 200)
    doc_tipo: Literal["cpf", "cnpj"]
    documento: Text(11, 18)
    endereco: Text(5, 300)
    responsavel: Text(3, 100)
    contato: Text(8, 80)

    @field_validator("documento")
    @classmethod
    def check_documento(cls, value: str, info: ValidationInfo) -> str:
        doc_tipo = info.data.get("doc_tipo")
        if doc_tipo == "cpf":
            valid = is_valid_cpf(value)
        elif doc_tipo == "cnpj":
            valid = is_valid_cnpj(value)
        else:
            valid = False
        if not valid:
            raise ValueError("Documento inválido")
        return only_digits(value)


class ProjectForm(FormModel):
    nome: Text(3, 120)
    cidade: Text(2, 80)
    inicio_previsto: date
    entrega_prevista: date
    status: ProjectStatus
    progresso: float = Field(ge=0, le=100)
    orcamento: float = Field(ge=0)
    gasto: float = Field(ge=0)


class UnitForm(FormModel):
    project_id: Text(1, 36)
    nome: Text(1, 50)
    area: float = Field(ge=1)
    preco: float = Field(ge=0)
    status: UnitStatus


class LeadForm(FormModel):
    nome_cliente: Text(3, 120)
    contato: Text(6, 120)
    origem: Text(2, 80)
    etapa: LeadStage
    valor: float = Field(ge=0)
    unidade: OptionalText(120) = None
    corretor: OptionalText(120) = None
    observacoes: OptionalText(1000) = None


class LeadStageUpdate(FormModel):
    etapa: LeadStage


class AssistTicketForm(FormModel):
    unidade: Text(1, 80)
    cliente: Text(3, 120)
    contato: Text(6, 120)
    tipo: AssistType
    status: AssistStatus
    prazo: date
    descricao: Text(5, 500)
    responsavel: OptionalText(120) = None


class RdoForm(FormModel):
    project_id: Text(1, 36)
    data: date
    clima: Text(3, 50)
    equipe: Text(3, 200)
    horas_trabalhadas: float = Field(ge=0, le=24)
    atividades: Text(5, 1000)
    impedimentos: OptionalText(1000) = None
    observacoes: OptionalText(1000) = None


class RfiForm(FormModel):
    project_id: Text(1, 36)
    titulo: Text(3, 200)
    pergunta: Text(5, 1000)
    solicitante: Text(3, 120)
    responsavel: Text(3, 120)
    prazo: date
    status: RfiStatus
    resposta: OptionalText(2000) = None
