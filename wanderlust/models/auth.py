"""Pydantic models for authentication and registration."""

import re
from datetime import date
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

ALLOWED_AVATAR_TYPES = ("image/jpeg", "image/png", "image/jpg", "image/webp")


class LoginRequest(BaseModel):
    """Login request model."""

    email: EmailStr
    password: str = Field(min_length=8)


class RegistrationRequest(BaseModel):
    """Fields collected by the three registration steps."""

    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    display_name: str = Field(min_length=2, max_length=255)
    age: Optional[int] = Field(default=None, ge=0)
    gender: Optional[str] = None
    date_of_birth: Optional[date] = None
    country: Optional[str] = None
    city: Optional[str] = None

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Password must have lowercase, uppercase, number and special character."""
        if not re.search(r"[a-z]", v):
            raise ValueError("Must contain at least one lowercase letter")
        if not re.search(r"[A-Z]", v):
            raise ValueError("Must contain at least one uppercase letter")
        if not re.search(r"\d", v):
            raise ValueError("Must contain at least one number")
        if not re.search(r"[@$!%*?&]", v):
            raise ValueError(
                "Must contain at least one special character (@, $, !, %, *, ?, &)"
            )
        return v

    @field_validator("display_name")
    @classmethod
    def validate_display_name(cls, v: str) -> str:
        return v.strip()

    def to_form(self) -> dict[str, str]:
        """Multipart form fields expected by the registration function."""
        return {
            "email": self.email,
            "password": self.password,
            "displayName": self.display_name,
            "age": str(self.age) if self.age is not None else "",
            "gender": self.gender or "",
            "dateOfBirth": self.date_of_birth.isoformat() if self.date_of_birth else "",
            "country": self.country or "",
            "city": self.city or "",
        }


class AvatarUpload(BaseModel):
    """Profile photo picked during registration."""

    filename: str = Field(min_length=1)
    content_type: str
    content: bytes

    @field_validator("content_type")
    @classmethod
    def validate_content_type(cls, v: str) -> str:
        if v not in ALLOWED_AVATAR_TYPES:
            raise ValueError("Only JPG, PNG, or WEBP images are allowed")
        return v


class AuthUser(BaseModel):
    """User returned by the auth service."""

    id: str
    email: Optional[str] = None
    role: str = "authenticated"


class AuthSession(BaseModel):
    """Session returned by a password sign-in."""

    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: str = "bearer"
    user: AuthUser
