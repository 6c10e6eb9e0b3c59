from typing import Annotated, Any, Optional

from pydantic import BeforeValidator, Field, field_validator

from diamante_crm.core.documents import is_valid_cpf, normalize_broker_code, normalize_cpf, normalize_creci
from diamante_crm.schemas.forms import FormModel, OptionalText, Text, blank_to_none


class CommissionSettingsUpdate(FormModel):
    percentual: float = Field(ge=0, le=100)


class SaleCommunicationCreate(FormModel):
    """Venda comunicada pelo corretor.

    ``lead_id`` links the sale to a pipeline lead; when given the lead moves
    to the ``contrato`` stage.
    """

    lead_id: Annotated[Optional[str], BeforeValidator(blank_to_none)] = None
    lead_nome_cliente: Text(3, 120)
    unidade: OptionalText(120) = None
    valor_venda: float = Field(gt=0)
    broker_code: Text(3, 32)
    broker_cpf: str
    broker_creci: OptionalText(40) = None
    broker_nome: OptionalText(120) = None

    @field_validator("broker_code")
    @classmethod
    def clean_code(cls, value: str) -> str:
        return normalize_broker_code(value)

    @field_validator("broker_cpf")
    @classmethod
    def check_cpf(cls, value: str) -> str:
        if not is_valid_cpf(value):
            raise ValueError("CPF inválido")
        return normalize_cpf(value)

    @field_validator("broker_creci")
    @classmethod
    def clean_creci(cls, value: Optional[str]) -> Optional[str]:
        return normalize_creci(value)


class BrokerRegistration(FormModel):
    user_id: Annotated[Optional[str], BeforeValidator(blank_to_none)] = None
    nome: Text(3, 120)
    email: Text(5, 200)
    cpf: str
    creci: OptionalText(40) = None
    broker_code: Annotated[Optional[str], BeforeValidator(blank_to_none)] = None

    @field_validator("email")
    @classmethod
    def clean_email(cls, value: str) -> str:
        if "@" not in value:
            raise ValueError("E-mail inválido")
        return value.lower()

    @field_validator("cpf")
    @classmethod
    def check_cpf(cls, value: str) -> str:
        if not is_valid_cpf(value):
            raise ValueError("CPF inválido")
        return normalize_cpf(value)

    @field_validator("creci")
    @classmethod
    def clean_creci(cls, value: Optional[str]) -> Optional[str]:
        return normalize_creci(value)

    @field_validator("broker_code")
    @classmethod
    def clean_code(cls, value: Optional[str]) -> Optional[str]:
        return normalize_broker_code(value) or None


class BrokerValidationRequest(FormModel):
    broker_code: Any = None
    broker_cpf: Any = None
    broker_creci: Any = None
