from __future__ import annotations

import calendar
import logging
from datetime import date, datetime, time, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from provider_ledger.schemas.billing import (
    Invoice,
    InvoiceFilters,
    InvoiceInput,
    InvoiceStatus,
    Payment,
    PaymentInput,
)
from provider_ledger.schemas.ledger import (
    ErrorKind,
    LedgerResult,
    ProviderStats,
    ProviderTotals,
)
from provider_ledger.schemas.provider import Provider, ProviderFilters, ProviderInput
from provider_ledger.services.exceptions import DownstreamServiceError, ServiceError
from provider_ledger.services.provider_api import ProviderApi

logger = logging.getLogger(__name__)

UNKNOWN_PROVIDER_NAME = "Unknown"
DEFAULT_TOP_PROVIDERS = 5

_DATE_RANGE_MONTHS = {"month": 1, "quarter": 3, "year": 12}
_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_id(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _normalize_dt(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _next_id(records: Iterable[Any]) -> int:
    return max((record.id for record in records), default=0) + 1


def _status_for(balance: float) -> InvoiceStatus:
    return "paid" if balance <= 0 else "pending"


def _months_before(day: date, months: int) -> date:
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def _error_message(exc: Exception) -> str:
    if isinstance(exc, DownstreamServiceError):
        return exc.user_message
    return str(exc)


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts) or "Invalid data"


def _matches_search(provider: Provider, term: str) -> bool:
    haystacks = (provider.name, provider.email, provider.city, provider.contact_name)
    return any(term in (value or "").lower() for value in haystacks)


def _created_sort_key(provider: Provider):
    if provider.created_at is None:
        return (0, _OLDEST)
    return (1, _normalize_dt(provider.created_at))


class LedgerStore:
    """Session-scoped mirror of providers plus store-local invoices and payments.

    Network operations await the provider backend and then apply their state
    change in a single synchronous step. There is no locking or versioning:
    whichever completion runs last wins. ``fetch_*`` operations record
    ``error`` and re-raise; mutations always return a :class:`LedgerResult`.
    """

    def __init__(
        self,
        api: ProviderApi,
        *,
        top_providers_limit: int = DEFAULT_TOP_PROVIDERS,
        reconcile_status_toggle: bool = False,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._api = api
        self._top_providers_limit = top_providers_limit
        self._reconcile_status_toggle = reconcile_status_toggle
        self._now = clock or _utc_now

        self.providers: List[Provider] = []
        self.invoices: List[Invoice] = []
        self.is_loading = False
        self.error: Optional[str] = None
        self.search_term = ""
        self.filters = ProviderFilters()
        self.invoice_filters = InvoiceFilters()

    # -- bookkeeping -------------------------------------------------------

    def _begin(self) -> None:
        self.is_loading = True
        self.error = None

    def _failed(self, kind: ErrorKind, message: str) -> LedgerResult:
        logger.warning("Ledger operation failed (%s): %s", kind.value, message)
        self.is_loading = False
        self.error = message
        return LedgerResult.fail(kind, message)

    def _backend_failure(self, exc: Exception) -> LedgerResult:
        if isinstance(exc, DownstreamServiceError) and exc.status_code == 404:
            return self._failed(ErrorKind.NOT_FOUND, _error_message(exc))
        return self._failed(ErrorKind.BACKEND, _error_message(exc))

    async def _fetch(self, description: str, call):
        self._begin()
        try:
            result = await call
        except Exception as exc:
            logger.error("Failed %s: %s", description, exc)
            self.is_loading = False
            self.error = _error_message(exc)
            raise
        self.is_loading = False
        return result

    def clear_error(self) -> None:
        self.error = None

    # -- providers ---------------------------------------------------------

    async def fetch_providers(self) -> List[Provider]:
        providers = await self._fetch("fetching providers", self._api.list_providers())
        self.providers = list(providers)
        logger.info("Loaded %d providers", len(self.providers))
        return list(self.providers)

    async def fetch_provider_by_id(self, provider_id: Any) -> Provider:
        key = _coerce_id(provider_id)
        if key is None:
            self.error = "Provider not found"
            raise ServiceError(f"Invalid provider id {provider_id!r}")
        return await self._fetch("fetching provider", self._api.get_provider(key))

    async def refresh_provider(self, provider_id: Any) -> Provider:
        """Re-read one provider from the backend and replace the local copy."""
        provider = await self.fetch_provider_by_id(provider_id)
        if any(existing.id == provider.id for existing in self.providers):
            self.providers = [
                provider if existing.id == provider.id else existing
                for existing in self.providers
            ]
        else:
            self.providers = [*self.providers, provider]
        return provider

    async def fetch_cities(self) -> List[str]:
        return await self._fetch("fetching cities", self._api.list_cities())

    async def fetch_countries(self) -> List[str]:
        return await self._fetch("fetching countries", self._api.list_countries())

    def get_provider_by_id(self, provider_id: Any) -> Optional[Provider]:
        key = _coerce_id(provider_id)
        if key is None:
            return None
        return next((provider for provider in self.providers if provider.id == key), None)

    async def add_provider(self, data: ProviderInput | Mapping[str, Any]) -> LedgerResult:
        self._begin()
        try:
            request = (
                data if isinstance(data, ProviderInput) else ProviderInput.model_validate(data)
            )
            provider = await self._api.create_provider(request)
        except ValidationError as exc:
            return self._failed(ErrorKind.VALIDATION, _validation_message(exc))
        except ServiceError as exc:
            return self._backend_failure(exc)
        except Exception as exc:  # pragma: no cover - defensive
            logger.exception("Unexpected error while creating provider")
            return self._failed(ErrorKind.BACKEND, str(exc))

        self.providers = [*self.providers, provider]
        self.is_loading = False
        logger.info("Provider %s created", provider.id)
        return LedgerResult.ok(provider=provider)

    async def update_provider(
        self, provider_id: Any, data: ProviderInput | Mapping[str, Any]
    ) -> LedgerResult:
        self._begin()
        key = _coerce_id(provider_id)
        if key is None:
            return self._failed(ErrorKind.NOT_FOUND, "Provider not found")
        try:
            request = (
                data if isinstance(data, ProviderInput) else ProviderInput.model_validate(data)
            )
            current = self.get_provider_by_id(key)
            if request.is_active is None and current is not None:
                request = request.model_copy(update={"is_active": current.is_active})
            updated = await self._api.update_provider(key, request)
        except ValidationError as exc:
            return self._failed(ErrorKind.VALIDATION, _validation_message(exc))
        except ServiceError as exc:
            return self._backend_failure(exc)
        except Exception as exc:  # pragma: no cover - defensive
            logger.exception("Unexpected error while updating provider")
            return self._failed(ErrorKind.BACKEND, str(exc))

        self.providers = [
            updated if provider.id == key else provider for provider in self.providers
        ]
        self.is_loading = False
        return LedgerResult.ok(provider=updated)

    async def toggle_provider_status(self, provider_id: Any) -> LedgerResult:
        """Activate or deactivate a provider, then flip the local flag optimistically."""
        self._begin()
        provider = self.get_provider_by_id(provider_id)
        if provider is None:
            return self._failed(ErrorKind.NOT_FOUND, "Provider not found")

        try:
            if provider.is_active:
                await self._api.deactivate_provider(provider.id)
            else:
                await self._api.activate_provider(provider.id)
        except ServiceError as exc:
            return self._backend_failure(exc)
        except Exception as exc:  # pragma: no cover - defensive
            logger.exception("Unexpected error while toggling provider status")
            return self._failed(ErrorKind.BACKEND, str(exc))

        # targeted field write on whatever record is current once the backend answers
        target = not provider.is_active
        self.providers = [
            existing.model_copy(update={"is_active": target})
            if existing.id == provider.id
            else existing
            for existing in self.providers
        ]
        self.is_loading = False
        toggled = self.get_provider_by_id(provider.id) or provider.model_copy(
            update={"is_active": target}
        )

        if self._reconcile_status_toggle:
            try:
                toggled = await self.refresh_provider(provider.id)
            except ServiceError:
                logger.warning(
                    "Could not reconcile provider %s after status change; keeping local flag",
                    provider.id,
                )
        return LedgerResult.ok(provider=toggled)

    def set_search_term(self, term: str) -> None:
        self.search_term = term or ""

    def set_filters(self, **changes: Any) -> ProviderFilters:
        self.filters = ProviderFilters.model_validate(
            {**self.filters.model_dump(), **changes}
        )
        return self.filters

    def clear_filters(self) -> None:
        self.search_term = ""
        self.filters = ProviderFilters()

    def get_filtered_providers(
        self,
        search_term: str | None = None,
        filters: ProviderFilters | None = None,
    ) -> List[Provider]:
        term = (self.search_term if search_term is None else search_term).lower()
        active_filters = self.filters if filters is None else filters

        filtered = list(self.providers)
        if term:
            filtered = [provider for provider in filtered if _matches_search(provider, term)]

        status = active_filters.status
        if status and status != "all":
            wanted = status == "active"
            filtered = [provider for provider in filtered if provider.is_active == wanted]

        if active_filters.city:
            filtered = [
                provider for provider in filtered if provider.city == active_filters.city
            ]

        # sorted() stays stable with reverse=True, so ties keep collection order
        return sorted(filtered, key=_created_sort_key, reverse=True)

    # -- invoices ----------------------------------------------------------

    def get_invoices(self) -> List[Invoice]:
        return list(self.invoices)

    def get_invoice_by_id(self, invoice_id: Any) -> Optional[Invoice]:
        key = _coerce_id(invoice_id)
        if key is None:
            return None
        return next((invoice for invoice in self.invoices if invoice.id == key), None)

    def get_invoices_by_provider(self, provider_id: Any) -> List[Invoice]:
        key = _coerce_id(provider_id)
        return [invoice for invoice in self.invoices if invoice.provider_id == key]

    def add_invoice(self, data: InvoiceInput | Mapping[str, Any]) -> LedgerResult:
        self.error = None
        try:
            request = data if isinstance(data, InvoiceInput) else InvoiceInput.model_validate(data)
        except ValidationError as exc:
            return self._failed(ErrorKind.VALIDATION, _validation_message(exc))

        provider = self.get_provider_by_id(request.provider_id)
        if provider is None:
            return self._failed(ErrorKind.PRECONDITION, "Provider not found")

        total_cost = sum(item.total for item in request.items)
        now = self._now()
        invoice = Invoice(
            id=_next_id(self.invoices),
            provider_id=provider.id,
            provider_name=provider.name,
            invoice_number=request.invoice_number,
            description=request.description,
            notes=request.notes,
            items=list(request.items),
            total_cost=total_cost,
            paid_amount=0.0,
            balance=total_cost,
            status=_status_for(total_cost),
            payments=[],
            date=request.date or now,
            due_date=request.due_date,
            created_at=now,
        )
        self.invoices = [*self.invoices, invoice]
        logger.info("Invoice %s created for provider %s", invoice.id, provider.id)
        return LedgerResult.ok(invoice=invoice)

    def add_payment_to_invoice(
        self, invoice_id: Any, data: PaymentInput | Mapping[str, Any]
    ) -> LedgerResult:
        self.error = None
        invoice = self.get_invoice_by_id(invoice_id)
        if invoice is None:
            return self._failed(ErrorKind.PRECONDITION, "Invoice not found")

        try:
            request = data if isinstance(data, PaymentInput) else PaymentInput.model_validate(data)
        except ValidationError as exc:
            return self._failed(ErrorKind.VALIDATION, _validation_message(exc))

        payment = Payment(
            id=_next_id(invoice.payments),
            amount=request.amount,
            date=request.date or self._now(),
            method=request.method,
            reference=request.reference,
            notes=request.notes,
        )
        # paid_amount may exceed total_cost; only the balance is clamped
        paid_amount = invoice.paid_amount + payment.amount
        balance = max(0.0, invoice.total_cost - paid_amount)
        updated = invoice.model_copy(
            update={
                "payments": [*invoice.payments, payment],
                "paid_amount": paid_amount,
                "balance": balance,
                "status": _status_for(balance),
            }
        )
        self.invoices = [
            updated if existing.id == invoice.id else existing for existing in self.invoices
        ]
        logger.info("Payment %s applied to invoice %s", payment.id, invoice.id)
        return LedgerResult.ok(payment=payment, invoice=updated)

    def set_invoice_filters(self, **changes: Any) -> InvoiceFilters:
        self.invoice_filters = InvoiceFilters.model_validate(
            {**self.invoice_filters.model_dump(), **changes}
        )
        return self.invoice_filters

    def clear_invoice_filters(self) -> None:
        self.invoice_filters = InvoiceFilters()

    def get_filtered_invoices(self, filters: InvoiceFilters | None = None) -> List[Invoice]:
        active_filters = self.invoice_filters if filters is None else filters
        filtered = list(self.invoices)

        if active_filters.status != "all":
            filtered = [invoice for invoice in filtered if invoice.status == active_filters.status]

        if active_filters.provider_id is not None:
            filtered = [
                invoice for invoice in filtered if invoice.provider_id == active_filters.provider_id
            ]

        months = _DATE_RANGE_MONTHS.get(active_filters.date_range)
        if months:
            today = _normalize_dt(self._now()).date()
            cutoff = datetime.combine(
                _months_before(today, months), time.min, tzinfo=timezone.utc
            )
            filtered = [invoice for invoice in filtered if _normalize_dt(invoice.date) >= cutoff]

        return sorted(filtered, key=lambda invoice: _normalize_dt(invoice.date), reverse=True)

    # -- statistics --------------------------------------------------------

    def get_providers_stats(self) -> ProviderStats:
        providers = self.providers
        invoices = self.invoices

        per_provider: Dict[int, Dict[str, Any]] = {}
        for invoice in invoices:
            entry = per_provider.get(invoice.provider_id)
            if entry is None:
                provider = self.get_provider_by_id(invoice.provider_id)
                entry = per_provider[invoice.provider_id] = {
                    "id": invoice.provider_id,
                    "name": (provider.name if provider else "") or UNKNOWN_PROVIDER_NAME,
                    "total_amount": 0.0,
                    "total_paid": 0.0,
                    "balance": 0.0,
                    "invoice_count": 0,
                }
            entry["total_amount"] += invoice.total_cost
            entry["total_paid"] += invoice.paid_amount
            entry["balance"] += invoice.balance
            entry["invoice_count"] += 1

        ranked = sorted(
            per_provider.values(), key=lambda entry: entry["total_amount"], reverse=True
        )
        active = sum(1 for provider in providers if provider.is_active)

        return ProviderStats(
            total_providers=len(providers),
            active_providers=active,
            inactive_providers=len(providers) - active,
            total_invoices=len(invoices),
            pending_invoices=sum(1 for invoice in invoices if invoice.status == "pending"),
            paid_invoices=sum(1 for invoice in invoices if invoice.status == "paid"),
            total_debt=sum(invoice.balance for invoice in invoices),
            total_paid=sum(invoice.paid_amount for invoice in invoices),
            total_invoice_amount=sum(invoice.total_cost for invoice in invoices),
            top_providers=[
                ProviderTotals(**entry) for entry in ranked[: self._top_providers_limit]
            ],
        )
