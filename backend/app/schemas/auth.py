# app/schemas/auth.py
"""
Pydantic schemas for authentication and password endpoints.
Field names follow the JSON bodies exchanged with the frontend (camelCase).
"""
import re
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

NAME_PATTERN = r"^[A-Za-z][A-Za-z\s'-]*$"

_PASSWORD_RULES = (
    (re.compile(r"[a-z]"), "a lowercase letter"),
    (re.compile(r"[A-Z]"), "an uppercase letter"),
    (re.compile(r"\d"), "a number"),
    (re.compile(r"[^A-Za-z\d]"), "a special character"),
)


def check_password_strength(value: str) -> str:
    """Passwords need a lowercase letter, an uppercase letter, a number and a special character."""
    missing = [label for pattern, label in _PASSWORD_RULES if not pattern.search(value)]
    if missing:
        raise ValueError("Password must contain " + ", ".join(missing))
    return value


class RegisterIn(BaseModel):
    """Request model for account registration."""
    firstName: str = Field(min_length=1, max_length=50, pattern=NAME_PATTERN)
    lastName: str = Field(default="", max_length=50)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return check_password_strength(value)


class LoginIn(BaseModel):
    """Request model for credential login."""
    email: EmailStr
    password: str = Field(min_length=1, max_length=128)


class LogoutIn(BaseModel):
    """
    Request model for logout.
    - refreshToken: revoke this session (falls back to the refreshToken cookie)
    - all: revoke every session of the caller
    """
    refreshToken: Optional[str] = None
    all: bool = False


class RefreshIn(BaseModel):
    refreshToken: Optional[str] = None  # Falls back to the refreshToken cookie


class EmailIn(BaseModel):
    email: EmailStr


class ChangePasswordIn(BaseModel):
    currentPassword: str = Field(min_length=1, max_length=128)
    newPassword: str = Field(min_length=8, max_length=128)

    @field_validator("newPassword")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return check_password_strength(value)


class ResetPasswordIn(BaseModel):
    password: str = Field(min_length=8, max_length=128)

    @field_validator("password")
    @classmethod
    def password_strength(cls, value: str) -> str:
        return check_password_strength(value)
