"""Pydantic models for complaints."""

from typing import Any

from pydantic import BaseModel, Field, field_validator


class Company(BaseModel):
    """Trip operator a complaint is addressed to."""

    id: str
    name: str
    email: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def stringify_id(cls, v: Any) -> str:
        return str(v)


class ComplaintForm(BaseModel):
    """User-entered complaint fields."""

    complaint_type: str = Field(min_length=1)
    subject: str = Field(min_length=3)
    message: str = Field(min_length=5)

    @field_validator("complaint_type", "subject", "message", mode="before")
    @classmethod
    def strip(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class Complaint(BaseModel):
    """Complaint row as stored."""

    user_id: str
    company_id: str
    complaint_type: str
    subject: str
    message: str
    email_to: str | None = None
    attachment_url: str | None = None


class Attachment(BaseModel):
    """File picked to go along with a complaint."""

    filename: str = Field(min_length=1)
    content: bytes
    content_type: str = "application/octet-stream"

    @property
    def extension(self) -> str:
        return self.filename.rsplit(".", 1)[-1] if "." in self.filename else "bin"
