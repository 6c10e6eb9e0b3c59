"""
Custom exceptions for Diamante CRM.
Business errors carry a message plus optional details and map to a fixed HTTP
status. Every error response body has the shape ``{"error": message, ...}``.
"""

import re
from typing import Any, Dict, List, Optional
from fastapi import status
from fastapi.responses import JSONResponse
from pydantic.alias_generators import to_snake


class BusinessLogicError(Exception):
    """Base exception for business logic errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(BusinessLogicError):
    """Raised when input validation fails."""
    status_code = status.HTTP_400_BAD_REQUEST


class AuthenticationError(BusinessLogicError):
    """Raised when credentials or bearer tokens are missing or invalid."""
    status_code = status.HTTP_401_UNAUTHORIZED


class PermissionDeniedError(BusinessLogicError):
    """Raised when the caller is authenticated but not allowed."""
    status_code = status.HTTP_403_FORBIDDEN


class NotFoundError(BusinessLogicError):
    """Raised when a requested resource is not found."""
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(BusinessLogicError):
    """Raised when there's a conflict with existing data."""
    status_code = status.HTTP_409_CONFLICT


class LockedError(BusinessLogicError):
    """Raised when a login is temporarily locked after repeated failures."""
    status_code = status.HTTP_423_LOCKED


class StorageError(BusinessLogicError):
    """Raised when the file storage cannot complete an operation."""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def business_exception_to_response(exc: BusinessLogicError) -> JSONResponse:
    """Convert a business exception into the uniform error response."""

    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.message, **exc.details},
    )


_MISSING_SCHEMA_CODES = {"42P01", "42703", "PGRST205"}
_MISSING_SCHEMA_PATTERN = re.compile(r"does not exist|no such table|no such column", re.IGNORECASE)


def is_missing_schema_error(exc: BaseException) -> bool:
    """Tell whether a database error means a table/column is not provisioned.

    Partially provisioned environments answer these as empty results instead
    of failing the request.
    """

    orig = getattr(exc, "orig", None) or exc
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None) or getattr(exc, "code", None)
    if isinstance(code, str) and code in _MISSING_SCHEMA_CODES:
        return True
    return bool(_MISSING_SCHEMA_PATTERN.search(str(orig)))


VALIDATION_ERROR = "Dados inválidos."

_VALIDATION_MESSAGES = {
    "missing": "Campo obrigatório",
    "string_too_short": "Deve ter pelo menos {min_length} caracteres",
    "string_too_long": "Deve ter no máximo {max_length} caracteres",
    "greater_than": "Deve ser maior que {gt}",
    "greater_than_equal": "Deve ser maior ou igual a {ge}",
    "less_than": "Deve ser menor que {lt}",
    "less_than_equal": "Deve ser menor ou igual a {le}",
    "literal_error": "Valor inválido",
    "float_parsing": "Deve ser um número",
    "float_type": "Deve ser um número",
    "int_parsing": "Deve ser um número inteiro",
    "date_parsing": "Data inválida",
    "date_from_datetime_parsing": "Data inválida",
    "date_type": "Data inválida",
    "string_type": "Deve ser um texto",
}

# Location prefixes added by FastAPI in front of the field name
_REQUEST_LOCATIONS = {"body", "query", "path", "header", "cookie"}


def _field_message(error: Dict[str, Any]) -> str:
    template = _VALIDATION_MESSAGES.get(error.get("type", ""))
    if template:
        try:
            return template.format(**(error.get("ctx") or {}))
        except (KeyError, IndexError):
            return template
    message = str(error.get("msg", ""))
    for prefix in ("Value error, ", "Assertion failed, "):
        if message.startswith(prefix):
            return message[len(prefix):]
    return message


def validation_fields(errors: List[Dict[str, Any]]) -> Dict[str, str]:
    """Map pydantic errors to ``{snake_case_field: message}``; first error wins."""

    fields: Dict[str, str] = {}
    for error in errors:
        loc = [str(part) for part in error.get("loc", ())]
        if loc and loc[0] in _REQUEST_LOCATIONS:
            loc = loc[1:]
        key = ".".join(to_snake(part) for part in loc) or "__root__"
        fields.setdefault(key, _field_message(error))
    return fields


def validation_error_response(errors: List[Dict[str, Any]]) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": VALIDATION_ERROR, "fields": validation_fields(errors)},
    )
