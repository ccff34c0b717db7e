from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from provider_ledger.schemas.provider import CamelModel

InvoiceStatus = Literal["pending", "paid"]


class _FrozenCamelModel(CamelModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, frozen=True
    )


class LineItem(_FrozenCamelModel):
    description: str = ""
    quantity: Optional[float] = Field(default=None, allow_inf_nan=False)
    unit_price: Optional[float] = Field(default=None, allow_inf_nan=False)
    total: float = Field(..., ge=0, allow_inf_nan=False)


class Payment(_FrozenCamelModel):
    id: int
    amount: float
    date: datetime
    method: str = ""
    reference: str = ""
    notes: str = ""


class Invoice(_FrozenCamelModel):
    """Store-local invoice. Replaced wholesale on every payment."""

    id: int
    provider_id: int
    provider_name: str
    invoice_number: str = ""
    description: str = ""
    notes: str = ""
    items: List[LineItem] = Field(default_factory=list)
    total_cost: float
    paid_amount: float = 0.0
    balance: float
    status: InvoiceStatus = "pending"
    payments: List[Payment] = Field(default_factory=list)
    date: datetime
    due_date: Optional[datetime] = None
    created_at: datetime


class InvoiceInput(CamelModel):
    provider_id: int
    invoice_number: str = ""
    description: str = ""
    notes: str = ""
    items: List[LineItem] = Field(..., min_length=1)
    date: Optional[datetime] = None
    due_date: Optional[datetime] = None


class PaymentInput(CamelModel):
    amount: float = Field(..., gt=0, allow_inf_nan=False)
    date: Optional[datetime] = None
    method: str = ""
    reference: str = ""
    notes: str = ""

    @field_validator("date", mode="before")
    def _blank_date(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class InvoiceFilters(CamelModel):
    status: Literal["all", "pending", "paid"] = "all"
    provider_id: Optional[int] = None
    date_range: Literal["all", "month", "quarter", "year"] = "all"

    @field_validator("provider_id", mode="before")
    def _blank_provider(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value
