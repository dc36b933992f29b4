"""Authentication request and response schemas."""

from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from trademart.core.security import MIN_PASSWORD_LENGTH
from trademart.models.lead_enums import normalize_role


class LoginRequest(BaseModel):
    """Login request with email and password.

    `role_hint` is sent by the vendor and buyer portals to enforce portal isolation.
    """

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)
    role_hint: Optional[str] = Field(None, alias="role")

    model_config = {"populate_by_name": True}

    @field_validator("role_hint")
    @classmethod
    def _normalize_hint(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return normalize_role(value) or None


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=128)
    full_name: Optional[str] = Field(None, max_length=200)
    phone: Optional[str] = Field(None, max_length=32)
    role: str = "USER"
    company_name: Optional[str] = Field(None, max_length=200)
    no_session: bool = False

    @field_validator("role")
    @classmethod
    def _normalize_role(cls, value: str) -> str:
        return normalize_role(value) or "USER"


class PasswordChangeRequest(BaseModel):
    current_password: Optional[str] = None
    new_password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=128)
