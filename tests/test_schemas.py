import pytest
from pydantic import ValidationError

from diamante_crm.core.exceptions import validation_fields
from diamante_crm.schemas.forms import ClientForm, LeadForm, ProjectForm, SupplierForm
from diamante_crm.schemas.sales import BrokerRegistration, SaleCommunicationCreate


def _project(**overrides):
    data = {
        "nome": "Residencial Diamante",
        "cidade": "Campinas",
        "inicioPrevisto": "2026-01-10",
        "entregaPrevista": "2027-12-20",
        "status": "planejamento",
        "progresso": 0,
        "orcamento": 0,
        "gasto": 0,
    }
    data.update(overrides)
    return data


@pytest.mark.unit
class TestForms:
    @pytest.mark.parametrize("progresso", [0, 50.5, 100])
    def test_progresso_bounds_accepted(self, progresso):
        assert ProjectForm.model_validate(_project(progresso=progresso)).progresso == progresso

    @pytest.mark.parametrize("progresso", [-1, 100.1])
    def test_progresso_out_of_bounds(self, progresso):
        with pytest.raises(ValidationError) as exc_info:
            ProjectForm.model_validate(_project(progresso=progresso))
        assert "progresso" in validation_fields(exc_info.value.errors())

    def test_client_requires_positive_valor_pago(self, client_payload):
        with pytest.raises(ValidationError) as exc_info:
            ClientForm.model_validate({**client_payload, "valorPago": 0})
        fields = validation_fields(exc_info.value.errors())
        assert fields == {"valor_pago": "Deve ser maior que 0"}

    def test_client_documents_are_stored_as_digits(self, client_payload):
        form = ClientForm.model_validate({**client_payload, "cpf": "529.982.247-25"})
        assert form.cnpj == "11222333000181"
        assert form.cpf == "52998224725"

    def test_client_invalid_cnpj_message(self, client_payload):
        with pytest.raises(ValidationError) as exc_info:
            ClientForm.model_validate({**client_payload, "cnpj": "11.222.333/0001-82"})
        assert validation_fields(exc_info.value.errors()) == {"cnpj": "CNPJ inválido"}

    def test_blank_optional_becomes_none(self):
        form = LeadForm.model_validate({
            "nomeCliente": "Joana Silva",
            "contato": "11999990000",
            "origem": "site",
            "etapa": "lead",
            "valor": 0,
            "unidade": "   ",
            "observacoes": "",
        })
        assert form.unidade is None
        assert form.observacoes is None

    def test_supplier_document_follows_doc_tipo(self):
        base = {
            "razaoSocial": "Cimento Forte",
            "endereco": "Av. Brasil, 100",
            "responsavel": "Paulo",
            "contato": "1133334444",
        }
        assert SupplierForm.model_validate({**base, "docTipo": "cpf", "documento": "52998224725"}).documento
        with pytest.raises(ValidationError) as exc_info:
            SupplierForm.model_validate({**base, "docTipo": "cnpj", "documento": "52998224725"})
        assert validation_fields(exc_info.value.errors()) == {"documento": "Documento inválido"}

    def test_missing_field_message(self):
        with pytest.raises(ValidationError) as exc_info:
            ProjectForm.model_validate({k: v for k, v in _project().items() if k != "cidade"})
        assert validation_fields(exc_info.value.errors()) == {"cidade": "Campo obrigatório"}


@pytest.mark.unit
class TestSalesSchemas:
    def test_sale_normalises_broker_fields(self):
        sale = SaleCommunicationCreate.model_validate({
            "leadNomeCliente": "Joana Silva",
            "valorVenda": 350000,
            "brokerCode": " cor-725abcd ",
            "brokerCpf": "529.982.247-25",
            "brokerCreci": " sp-12345 ",
        })
        assert sale.broker_code == "COR-725ABCD"
        assert sale.broker_cpf == "52998224725"
        assert sale.broker_creci == "SP-12345"
        assert sale.lead_id is None

    def test_broker_registration_rejects_invalid_cpf(self):
        with pytest.raises(ValidationError) as exc_info:
            BrokerRegistration.model_validate({"nome": "Rita", "email": "rita@x.com", "cpf": "11111111111"})
        assert validation_fields(exc_info.value.errors()) == {"cpf": "CPF inválido"}
