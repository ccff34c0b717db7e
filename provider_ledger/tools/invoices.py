from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException

from provider_ledger.dependencies.services import get_ledger_store
from provider_ledger.schemas.billing import Invoice, InvoiceFilters, InvoiceInput, PaymentInput
from provider_ledger.schemas.ledger import LedgerResult
from provider_ledger.services.exceptions import ServiceError
from provider_ledger.services.ledger import LedgerStore
from provider_ledger.tools.responses import raise_for_result

router = APIRouter()


@router.get("", response_model=List[Invoice])
async def list_invoices(
    status: Literal["all", "pending", "paid"] = "all",
    provider_id: Optional[int] = None,
    date_range: Literal["all", "month", "quarter", "year"] = "all",
    store: LedgerStore = Depends(get_ledger_store),
):
    filters = InvoiceFilters(status=status, provider_id=provider_id, date_range=date_range)
    return store.get_filtered_invoices(filters)


@router.get("/{invoice_id}", response_model=Invoice)
async def get_invoice(
    invoice_id: int,
    store: LedgerStore = Depends(get_ledger_store),
):
    invoice = store.get_invoice_by_id(invoice_id)
    if invoice is None:
        raise HTTPException(status_code=404, detail="Invoice not found")
    return invoice


@router.post("", response_model=Invoice, status_code=201)
async def create_invoice(
    req: InvoiceInput,
    store: LedgerStore = Depends(get_ledger_store),
):
    if store.get_provider_by_id(req.provider_id) is None:
        try:
            await store.fetch_providers()
        except ServiceError as exc:
            raise HTTPException(status_code=502, detail=store.error or str(exc)) from exc
    result = raise_for_result(store.add_invoice(req))
    return result.invoice


@router.post("/{invoice_id}/payments", response_model=LedgerResult, status_code=201)
async def add_payment(
    invoice_id: int,
    req: PaymentInput,
    store: LedgerStore = Depends(get_ledger_store),
):
    return raise_for_result(store.add_payment_to_invoice(invoice_id, req))
