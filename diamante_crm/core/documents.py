"""
Normalisation and checksum validation for Brazilian documents (CPF/CNPJ)
and the other identifiers typed into CRM and portal forms.
"""

import re
from typing import Any, Optional

_NON_DIGITS = re.compile(r"\D")
_REPEATED = re.compile(r"^(\d)\1+$")

_CNPJ_WEIGHTS_1 = (5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)
_CNPJ_WEIGHTS_2 = (6, 5, 4, 3, 2, 9, 8, 7, 6, 5, 4, 3, 2)


def only_digits(value: Any) -> str:
    return _NON_DIGITS.sub("", str(value or ""))


def normalize_cpf(value: Any) -> str:
    return only_digits(value)


def normalize_pass6(value: Any) -> str:
    """Digits of the portal access code, truncated to six."""

    return only_digits(value)[:6]


def _cpf_digit(base: str, factor: int) -> int:
    total = 0
    for char in base:
        total += int(char) * factor
        factor -= 1
    result = (total * 10) % 11
    return 0 if result == 10 else result


def is_valid_cpf(value: Any) -> bool:
    cpf = normalize_cpf(value)
    if len(cpf) != 11 or _REPEATED.match(cpf):
        return False
    first = _cpf_digit(cpf[:9], 10)
    second = _cpf_digit(cpf[:10], 11)
    return first == int(cpf[9]) and second == int(cpf[10])


def _cnpj_digit(base: str, weights: tuple[int, ...]) -> int:
    total = sum(int(char) * weight for char, weight in zip(base, weights))
    rest = total % 11
    return 0 if rest < 2 else 11 - rest


def is_valid_cnpj(value: Any) -> bool:
    cnpj = only_digits(value)
    if len(cnpj) != 14 or _REPEATED.match(cnpj):
        return False
    first = _cnpj_digit(cnpj[:12], _CNPJ_WEIGHTS_1)
    second = _cnpj_digit(cnpj[:13], _CNPJ_WEIGHTS_2)
    return first == int(cnpj[12]) and second == int(cnpj[13])


def normalize_phone(value: Any) -> Optional[str]:
    """Digits of a phone number; national numbers get the 55 country code."""

    digits = only_digits(value)
    if not digits:
        return None
    if len(digits) in (10, 11):
        return f"55{digits}"
    return digits


def normalize_email(value: Any) -> Optional[str]:
    email = str(value or "").strip().lower()
    return email or None


def normalize_protocol(value: Any) -> str:
    return re.sub(r"[^A-Z0-9-]", "", str(value or "").strip().upper())


def normalize_creci(value: Any) -> Optional[str]:
    creci = str(value or "").strip().upper()
    return creci or None


def normalize_broker_code(value: Any) -> str:
    return re.sub(r"\s+", "", str(value or "").strip().upper())
