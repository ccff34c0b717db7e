from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import Field

from provider_ledger.schemas.billing import Invoice, Payment
from provider_ledger.schemas.provider import CamelModel, Provider


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    BACKEND = "backend"
    PRECONDITION = "precondition"


class LedgerResult(CamelModel):
    """Tagged outcome of a store mutation. Mutations never raise."""

    success: bool
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    provider: Optional[Provider] = None
    invoice: Optional[Invoice] = None
    payment: Optional[Payment] = None

    @classmethod
    def ok(cls, **payload) -> "LedgerResult":
        return cls(success=True, **payload)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str) -> "LedgerResult":
        return cls(success=False, error=message, error_kind=kind)


class ProviderTotals(CamelModel):
    id: int
    name: str
    total_amount: float = 0.0
    total_paid: float = 0.0
    balance: float = 0.0
    invoice_count: int = 0


class ProviderStats(CamelModel):
    total_providers: int = 0
    active_providers: int = 0
    inactive_providers: int = 0
    total_invoices: int = 0
    pending_invoices: int = 0
    paid_invoices: int = 0
    total_debt: float = 0.0
    total_paid: float = 0.0
    total_invoice_amount: float = 0.0
    top_providers: List[ProviderTotals] = Field(default_factory=list)
