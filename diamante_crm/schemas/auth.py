from typing import List, Optional
from pydantic import BaseModel, EmailStr, constr


class TokenResponse(BaseModel):
    """JWT token response payload.

    Attributes:
        access_token: Short-lived access token.
        refresh_token: Long-lived refresh token.
        expires_in: Access token lifetime in seconds.
        token_type: OAuth2 token type, defaults to 'bearer'.
    """

    access_token: str
    refresh_token: str
    expires_in: int
    token_type: str = "bearer"


class LoginRequest(BaseModel):
    """Login payload with email and password.

    Attributes:
        email: User email address.
        password: Plain password.
    """

    email: EmailStr
    password: constr(min_length=6)  # type: ignore[valid-type]


class RegisterRequest(BaseModel):
    """Registration payload creating an agency and its first member.

    Attributes:
        nome: Full name.
        email: User email address.
        password: Plain password.
        agency_nome: Name of the new agency.
    """

    nome: constr(strip_whitespace=True, min_length=2)  # type: ignore[valid-type]
    email: EmailStr
    password: constr(min_length=6)  # type: ignore[valid-type]
    agency_nome: constr(strip_whitespace=True, min_length=2)  # type: ignore[valid-type]


class RefreshRequest(BaseModel):
    refresh_token: str


class StaffCreateRequest(BaseModel):
    """New member of the caller's agency."""

    nome: constr(strip_whitespace=True, min_length=2)  # type: ignore[valid-type]
    email: EmailStr
    password: constr(min_length=6)  # type: ignore[valid-type]
    role: str
    telefone: Optional[str] = None
    cpf: Optional[str] = None
    cargo: Optional[str] = None


class RoleUpdateRequest(BaseModel):
    role: str


class MeResponse(BaseModel):
    """Authenticated staff profile with its navigation.

    Attributes:
        user_id: Auth record id.
        nome: Staff member name.
        email: Login email.
        agency_id: Tenant of the member.
        role: Normalised role.
        role_label: Display label of the role.
        navigation: Permissions held, in menu order.
        home_path: First front-end path the role may open.
    """

    user_id: str
    nome: str
    email: Optional[EmailStr]
    agency_id: int
    role: str
    role_label: str
    navigation: List[str]
    home_path: str


class StaffResponse(BaseModel):
    user_id: str
    nome: str
    email: Optional[str]
    role: str
    role_label: str
    cargo: Optional[str] = None
