from __future__ import annotations

import re
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

EMAIL_PATTERN = re.compile(r"^[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}$", re.IGNORECASE)
PHONE_PATTERN = re.compile(r"^[0-9+\-\s()]+$")

_TEXT_FIELDS = (
    "document",
    "name",
    "business_name",
    "contact_name",
    "email",
    "phone",
    "mobile",
    "address",
    "city",
    "payment_terms",
    "notes",
)


class CamelModel(BaseModel):
    """Base model speaking the backend's camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Provider(CamelModel):
    """A provider record as returned by the backend."""

    id: int
    document: str = ""
    name: str = ""
    business_name: str = ""
    contact_name: str = ""
    email: str = ""
    phone: str = ""
    mobile: str = ""
    address: str = ""
    city: str = ""
    payment_terms: str = ""
    payment_days: Optional[int] = Field(default=None, ge=0)
    notes: str = ""
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator(*_TEXT_FIELDS, mode="before")
    def _none_as_empty(cls, value):
        return "" if value is None else value


class ProviderInput(CamelModel):
    """Provider payload collected by the create/edit forms."""

    document: str = Field(..., min_length=3)
    name: str = Field(..., min_length=3)
    business_name: str = ""
    contact_name: str = ""
    email: str = ""
    phone: str = ""
    mobile: str = ""
    address: str = ""
    city: str = ""
    payment_terms: str = ""
    payment_days: Optional[int] = Field(default=None, ge=0)
    notes: str = ""
    is_active: Optional[bool] = None

    @field_validator(*_TEXT_FIELDS, mode="before")
    def _strip_text(cls, value):
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("payment_days", mode="before")
    def _blank_days(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("email")
    def _validate_email(cls, value: str) -> str:
        value = value.lower()
        if value and not EMAIL_PATTERN.match(value):
            raise ValueError("invalid email address")
        return value

    @field_validator("phone", "mobile")
    def _validate_phone(cls, value: str) -> str:
        if value and not PHONE_PATTERN.match(value):
            raise ValueError("invalid phone number format")
        return value

    def to_backend_payload(self) -> dict:
        payload = self.model_dump(by_alias=True, mode="json")
        if self.is_active is None:
            payload.pop("isActive")
        return payload


class ProviderFilters(CamelModel):
    """List view filters. ``status=None`` or ``"all"`` keeps every provider."""

    status: Optional[Literal["active", "inactive", "all"]] = "active"
    city: str = ""

    @field_validator("status", mode="before")
    def _blank_status(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("city", mode="before")
    def _none_city(cls, value):
        return "" if value is None else value
