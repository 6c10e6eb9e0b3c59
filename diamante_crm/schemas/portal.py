"""
Request bodies of the edge functions.

The functions coerce and validate fields themselves (``String(x || "")``
semantics), so every field accepts any JSON value and a body that is not a
JSON object reads as an empty one.
"""

from typing import Any
from pydantic import BaseModel, ConfigDict, Field


class EdgeRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    @classmethod
    def from_body(cls, body: Any):
        return cls.model_validate(body if isinstance(body, dict) else {})


class ClientLoginRequest(EdgeRequest):
    cpf: Any = None
    pass6: Any = None


class ContractSelectRequest(EdgeRequest):
    contract_number: Any = None


class GlobalSearchRequest(EdgeRequest):
    q: Any = None
    contract_number: Any = None


class SignedUrlRequest(EdgeRequest):
    bucket: Any = None
    path: Any = None
    expires_in: Any = Field(default=None, alias="expiresIn")
