import pytest

from diamante_crm.core.documents import (
    is_valid_cnpj,
    is_valid_cpf,
    normalize_broker_code,
    normalize_pass6,
    normalize_phone,
    normalize_protocol,
    only_digits,
)
from diamante_crm.core.security import create_jwt_token, extract_bearer_token, sha256_hex, verify_jwt_token


@pytest.mark.unit
class TestDocuments:
    def test_valid_cpf_with_punctuation(self):
        assert is_valid_cpf("529.982.247-25")
        assert is_valid_cpf("11144477735")

    @pytest.mark.parametrize("cpf", ["11111111111", "52998224724", "123", "", None])
    def test_invalid_cpf(self, cpf):
        assert not is_valid_cpf(cpf)

    def test_valid_cnpj(self):
        assert is_valid_cnpj("11.222.333/0001-81")

    @pytest.mark.parametrize("cnpj", ["00000000000000", "11222333000182", "1122233300018"])
    def test_invalid_cnpj(self, cnpj):
        assert not is_valid_cnpj(cnpj)

    def test_only_digits_and_pass6(self):
        assert only_digits("(11) 98765-4321") == "11987654321"
        assert normalize_pass6("65-43-21-99") == "654321"
        assert normalize_pass6(None) == ""

    def test_normalize_phone_adds_country_code(self):
        assert normalize_phone("(11) 98765-4321") == "5511987654321"
        assert normalize_phone("+55 11 98765-4321") == "5511987654321"
        assert normalize_phone("") is None

    def test_normalize_protocol_and_broker_code(self):
        assert normalize_protocol(" dia-260101-1234 ") == "DIA-260101-1234"
        assert normalize_broker_code(" cor-725 ab12 ") == "COR-725AB12"


@pytest.mark.unit
class TestTokens:
    def test_roundtrip_and_claims(self):
        token = create_jwt_token("user-1", 60, {"agency": 7}, token_type="refresh")
        payload = verify_jwt_token(token, "refresh")
        assert payload["sub"] == "user-1"
        assert payload["agency"] == 7

    def test_token_type_must_match(self):
        access = create_jwt_token("user-1", 60)
        refresh = create_jwt_token("user-1", 60, token_type="refresh")

        assert verify_jwt_token(access)["sub"] == "user-1"
        assert verify_jwt_token(refresh) is None
        assert verify_jwt_token(access, "refresh") is None

    def test_expired_token_is_rejected(self):
        token = create_jwt_token("user-1", -10)
        assert verify_jwt_token(token) is None

    def test_garbage_token_is_rejected(self):
        assert verify_jwt_token("not-a-token") is None

    def test_extract_bearer_token(self):
        assert extract_bearer_token("Bearer abc") == "abc"
        assert extract_bearer_token("Basic abc") is None
        assert extract_bearer_token(None) is None

    def test_sha256_hex(self):
        assert sha256_hex("abc") == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
