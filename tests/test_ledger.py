import asyncio
import os
import sys
from datetime import datetime, timezone

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from provider_ledger.schemas.billing import InvoiceFilters
from provider_ledger.schemas.ledger import ErrorKind, ProviderStats
from provider_ledger.schemas.provider import Provider, ProviderFilters
from provider_ledger.services.exceptions import DownstreamServiceError
from provider_ledger.services.ledger import LedgerStore
from provider_ledger.services.mock_store import ProviderRepository, reset_mock_store
from provider_ledger.services.provider_api import ProviderApi


FIXED_NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)
T1 = datetime(2024, 1, 1, tzinfo=timezone.utc)
T2 = datetime(2024, 2, 1, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _reset_store() -> None:
    reset_mock_store()
    yield
    reset_mock_store()


class MockLatencyClient:
    """Client stub that records simulate_latency calls."""

    def __init__(self) -> None:
        self.use_mock_data = True
        self.latency_called = False

    async def simulate_latency(self) -> None:
        self.latency_called = True


class UnreachableRepository(ProviderRepository):
    async def list(self):
        raise DownstreamServiceError("Unable to reach provider backend")


class LockedRepository(ProviderRepository):
    async def set_active(self, provider_id, active):
        raise DownstreamServiceError(
            "Provider backend returned an error response (500)",
            status_code=500,
            detail="Provider is locked",
        )


def _make_store(repository=None, **kwargs) -> LedgerStore:
    api = ProviderApi(
        MockLatencyClient(),
        repository=repository if repository is not None else ProviderRepository(seed=False),
    )
    kwargs.setdefault("clock", lambda: FIXED_NOW)
    return LedgerStore(api, **kwargs)


def _store_with_providers(*providers: Provider, **kwargs) -> LedgerStore:
    store = _make_store(**kwargs)
    store.providers = list(providers)
    return store


# -- providers --------------------------------------------------------------


def test_fetch_providers_overwrites_local_collection() -> None:
    store = _make_store(ProviderRepository())
    store.providers = [Provider(id=99, name="Stale")]

    providers = asyncio.run(store.fetch_providers())

    assert [provider.id for provider in providers] == [1, 2, 3]
    assert [provider.id for provider in store.providers] == [1, 2, 3]
    assert store.is_loading is False
    assert store.error is None

    providers.append(Provider(id=50, name="Detached"))
    assert [provider.id for provider in store.providers] == [1, 2, 3]


def test_fetch_providers_failure_keeps_state_and_reraises() -> None:
    store = _make_store(UnreachableRepository(seed=False))
    store.providers = [Provider(id=7, name="Kept")]

    with pytest.raises(DownstreamServiceError):
        asyncio.run(store.fetch_providers())

    assert [provider.id for provider in store.providers] == [7]
    assert store.error == "Unable to reach provider backend"
    assert store.is_loading is False

    store.clear_error()
    assert store.error is None


def test_get_provider_by_id_coerces_and_returns_none_when_missing() -> None:
    store = _make_store(ProviderRepository())
    asyncio.run(store.fetch_providers())

    assert store.get_provider_by_id("2").name == "Beta Logistics"
    assert store.get_provider_by_id(2).name == "Beta Logistics"
    assert store.get_provider_by_id(42) is None
    assert store.get_provider_by_id("abc") is None
    assert store.get_provider_by_id(None) is None


def test_add_provider_appends_server_record() -> None:
    store = _make_store()

    result = asyncio.run(
        store.add_provider(
            {
                "document": " 123456 ",
                "name": "Delta Foods",
                "email": "Sales@Delta.Example",
                "paymentDays": "",
            }
        )
    )

    assert result.success is True
    assert result.provider is not None
    assert result.provider.id == 1
    assert result.provider.document == "123456"
    assert result.provider.email == "sales@delta.example"
    assert result.provider.payment_days is None
    assert result.provider.is_active is True
    assert result.provider.created_at is not None
    assert store.providers == [result.provider]


def test_add_provider_prefers_structured_backend_message() -> None:
    store = _make_store()
    payload = {"document": "123456", "name": "Delta Foods"}

    first = asyncio.run(store.add_provider(payload))
    second = asyncio.run(store.add_provider(payload))

    assert first.success is True
    assert second.success is False
    assert second.error_kind is ErrorKind.BACKEND
    assert second.error == "A provider with document 123456 already exists"
    assert store.error == second.error
    assert len(store.providers) == 1


def test_add_provider_rejects_invalid_payload_without_calling_backend() -> None:
    repository = ProviderRepository(seed=False)
    store = _make_store(repository)

    short_document = asyncio.run(store.add_provider({"document": "12", "name": "Zeta Corp"}))
    bad_email = asyncio.run(
        store.add_provider({"document": "123456", "name": "Zeta Corp", "email": "nope"})
    )
    bad_phone = asyncio.run(
        store.add_provider({"document": "123456", "name": "Zeta Corp", "phone": "call me"})
    )
    negative_days = asyncio.run(
        store.add_provider({"document": "123456", "name": "Zeta Corp", "paymentDays": -1})
    )

    for result in (short_document, bad_email, bad_phone, negative_days):
        assert result.success is False
        assert result.error_kind is ErrorKind.VALIDATION
    assert "document" in short_document.error
    assert "email" in bad_email.error
    assert store.providers == []
    assert asyncio.run(repository.list()) == []


def test_update_provider_replaces_record_in_place() -> None:
    store = _make_store(ProviderRepository())
    asyncio.run(store.fetch_providers())

    result = asyncio.run(
        store.update_provider(
            "2", {"document": "800987654", "name": "Beta Logistics Group", "city": "Cali"}
        )
    )

    assert result.success is True
    assert [provider.id for provider in store.providers] == [1, 2, 3]
    assert store.providers[1].name == "Beta Logistics Group"
    assert store.providers[1].city == "Cali"


def test_update_provider_failure_leaves_state_untouched() -> None:
    store = _make_store(ProviderRepository())
    asyncio.run(store.fetch_providers())
    before = list(store.providers)

    missing = asyncio.run(
        store.update_provider(42, {"document": "111222", "name": "Nobody Ltd"})
    )
    invalid = asyncio.run(store.update_provider(1, {"document": "", "name": "Acme"}))

    assert missing.success is False
    assert missing.error_kind is ErrorKind.NOT_FOUND
    assert missing.error == "Provider 42 not found"
    assert invalid.error_kind is ErrorKind.VALIDATION
    assert store.providers == before


def test_toggle_provider_status_twice_restores_flag() -> None:
    repository = ProviderRepository()
    store = _make_store(repository)
    asyncio.run(store.fetch_providers())

    first = asyncio.run(store.toggle_provider_status(1))
    assert first.success is True
    assert store.get_provider_by_id(1).is_active is False
    assert asyncio.run(repository.get(1))["isActive"] is False

    second = asyncio.run(store.toggle_provider_status("1"))
    assert second.success is True
    assert store.get_provider_by_id(1).is_active is True
    assert asyncio.run(repository.get(1))["isActive"] is True


def test_toggle_provider_status_reactivates_inactive_provider() -> None:
    store = _make_store(ProviderRepository())
    asyncio.run(store.fetch_providers())

    result = asyncio.run(store.toggle_provider_status(3))

    assert result.success is True
    assert result.provider.is_active is True
    assert [provider.id for provider in store.providers] == [1, 2, 3]


def test_toggle_provider_status_not_found() -> None:
    store = _make_store()

    result = asyncio.run(store.toggle_provider_status(42))

    assert result.success is False
    assert result.error_kind is ErrorKind.NOT_FOUND
    assert result.error == "Provider not found"


def test_toggle_provider_status_backend_failure_keeps_flag() -> None:
    store = _make_store(LockedRepository())
    asyncio.run(store.fetch_providers())

    result = asyncio.run(store.toggle_provider_status(1))

    assert result.success is False
    assert result.error_kind is ErrorKind.BACKEND
    assert result.error == "Provider is locked"
    assert store.get_provider_by_id(1).is_active is True


def test_toggle_provider_status_reconciles_with_backend_when_enabled() -> None:
    repository = ProviderRepository()
    store = _make_store(repository, reconcile_status_toggle=True)
    asyncio.run(store.fetch_providers())
    repository._providers[1]["name"] = "Acme Renamed"

    result = asyncio.run(store.toggle_provider_status(1))

    assert result.success is True
    assert result.provider.name == "Acme Renamed"
    assert result.provider.is_active is False
    assert store.get_provider_by_id(1).name == "Acme Renamed"


def test_filter_by_active_status_returns_only_active_provider() -> None:
    store = _store_with_providers(
        Provider(id=1, name="Acme", is_active=True, created_at=T1),
        Provider(id=2, name="Beta", is_active=False, created_at=T2),
    )

    active = store.get_filtered_providers(search_term="", filters=ProviderFilters(status="active"))
    inactive = store.get_filtered_providers(
        search_term="", filters=ProviderFilters(status="inactive")
    )
    everyone = store.get_filtered_providers(search_term="", filters=ProviderFilters(status="all"))
    unset = store.get_filtered_providers(search_term="", filters=ProviderFilters(status=None))

    assert [provider.id for provider in active] == [1]
    assert [provider.id for provider in inactive] == [2]
    assert [provider.id for provider in everyone] == [2, 1]
    assert [provider.id for provider in unset] == [2, 1]


def test_search_is_case_insensitive_and_null_safe() -> None:
    store = _store_with_providers(
        Provider(id=1, name="Acme", city="Bogota", created_at=T1),
        Provider.model_validate(
            {"id": 2, "name": "Gamma", "email": None, "city": None, "contactName": None}
        ),
        Provider(id=3, name="Omega", contact_name="Laura Gomez", email="l@omega.example"),
    )
    everyone = ProviderFilters(status="all")

    by_city = store.get_filtered_providers(search_term="BOG", filters=everyone)
    by_name = store.get_filtered_providers(search_term="gam", filters=everyone)
    by_contact = store.get_filtered_providers(search_term="laura", filters=everyone)
    by_email = store.get_filtered_providers(search_term="@omega", filters=everyone)
    nothing = store.get_filtered_providers(search_term="zzz", filters=everyone)

    assert [provider.id for provider in by_city] == [1]
    assert [provider.id for provider in by_name] == [2]
    assert [provider.id for provider in by_contact] == [3]
    assert [provider.id for provider in by_email] == [3]
    assert nothing == []


def test_city_filter_is_exact_match() -> None:
    store = _store_with_providers(
        Provider(id=1, name="Acme", city="Bogota", created_at=T1),
        Provider(id=2, name="Beta", city="Bogota D.C.", created_at=T2),
    )

    result = store.get_filtered_providers(
        search_term="", filters=ProviderFilters(status="all", city="Bogota")
    )

    assert [provider.id for provider in result] == [1]


def test_filtering_sorts_newest_first_with_stable_ties() -> None:
    store = _store_with_providers(
        Provider(id=5, name="Five", created_at=T1),
        Provider(id=9, name="Undated"),
        Provider(id=3, name="Three", created_at=T1),
        Provider(id=7, name="Seven", created_at=T2),
        Provider(id=4, name="Four", created_at=datetime(2024, 1, 1)),
    )

    result = store.get_filtered_providers(search_term="", filters=ProviderFilters(status="all"))

    assert [provider.id for provider in result] == [7, 5, 3, 4, 9]


def test_filtering_is_pure() -> None:
    store = _store_with_providers(
        Provider(id=1, name="Acme", created_at=T1),
        Provider(id=2, name="Beta", created_at=T2),
        Provider(id=3, name="Acme Two", created_at=T2, is_active=False),
    )
    store.set_search_term("acme")
    store.set_filters(status="all")

    first = store.get_filtered_providers()
    second = store.get_filtered_providers()

    assert first == second
    assert [provider.id for provider in first] == [3, 1]
    assert [provider.id for provider in store.providers] == [1, 2, 3]


def test_clear_filters_restores_defaults() -> None:
    store = _make_store()
    store.set_search_term("acme")
    store.set_filters(status="inactive", city="Cali")

    assert store.filters.status == "inactive"
    assert store.filters.city == "Cali"

    store.clear_filters()

    assert store.search_term == ""
    assert store.filters == ProviderFilters(status="active", city="")


# -- invoices and payments --------------------------------------------------


def test_invoice_lifecycle_from_pending_to_paid() -> None:
    store = _store_with_providers(Provider(id=1, name="Acme", created_at=T1))

    created = store.add_invoice({"providerId": 1, "items": [{"total": 100}, {"total": 50}]})

    assert created.success is True
    invoice = created.invoice
    assert invoice.id == 1
    assert invoice.provider_name == "Acme"
    assert invoice.total_cost == 150
    assert invoice.paid_amount == 0
    assert invoice.balance == 150
    assert invoice.status == "pending"
    assert invoice.payments == []
    assert invoice.date == FIXED_NOW

    paid = store.add_payment_to_invoice(invoice.id, {"amount": 150})

    assert paid.success is True
    assert paid.payment.id == 1
    assert paid.payment.date == FIXED_NOW
    assert paid.invoice.balance == 0
    assert paid.invoice.status == "paid"
    assert store.get_invoice_by_id(1) == paid.invoice
    # earlier snapshot is left untouched
    assert invoice.balance == 150
    assert invoice.payments == []


def test_overpayment_keeps_paid_amount_and_clamps_balance() -> None:
    store = _store_with_providers(Provider(id=1, name="Acme"))
    invoice = store.add_invoice({"providerId": 1, "items": [{"total": 100}]}).invoice

    result = store.add_payment_to_invoice(invoice.id, {"amount": 120})

    assert result.invoice.paid_amount == 120
    assert result.invoice.balance == 0
    assert result.invoice.status == "paid"


def test_balance_and_status_hold_after_every_payment() -> None:
    store = _store_with_providers(Provider(id=1, name="Acme"))
    invoice = store.add_invoice({"providerId": 1, "items": [{"total": 60}, {"total": 40}]}).invoice

    running = 0.0
    payment_ids = []
    for amount in (10, 25.5, "30", 40, 20):
        result = store.add_payment_to_invoice(invoice.id, {"amount": amount})
        assert result.success is True
        running += float(amount)
        payment_ids.append(result.payment.id)
        current = result.invoice
        assert current.paid_amount == pytest.approx(running)
        assert current.balance == pytest.approx(max(0.0, current.total_cost - running))
        assert current.status == ("paid" if current.balance <= 0 else "pending")

    assert payment_ids == [1, 2, 3, 4, 5]
    assert len(store.get_invoice_by_id(invoice.id).payments) == 5


def test_invoice_ids_increase_across_store() -> None:
    store = _store_with_providers(Provider(id=1, name="Acme"), Provider(id=2, name="Beta"))

    ids = [
        store.add_invoice({"providerId": provider_id, "items": [{"total": 10}]}).invoice.id
        for provider_id in (1, 2, 1)
    ]

    assert ids == [1, 2, 3]
    assert [invoice.id for invoice in store.get_invoices_by_provider("1")] == [1, 3]


def test_add_invoice_for_unknown_provider_fails_without_mutation() -> None:
    store = _store_with_providers(Provider(id=1, name="Acme"))

    result = store.add_invoice({"providerId": 99, "items": [{"total": 10}]})

    assert result.success is False
    assert result.error_kind is ErrorKind.PRECONDITION
    assert result.error == "Provider not found"
    assert store.invoices == []


def test_add_invoice_rejects_invalid_items() -> None:
    store = _store_with_providers(Provider(id=1, name="Acme"))

    empty = store.add_invoice({"providerId": 1, "items": []})
    negative = store.add_invoice({"providerId": 1, "items": [{"total": -5}]})

    assert empty.error_kind is ErrorKind.VALIDATION
    assert negative.error_kind is ErrorKind.VALIDATION
    assert store.invoices == []


def test_non_finite_amounts_are_rejected() -> None:
    store = _store_with_providers(Provider(id=1, name="Acme"))
    invoice = store.add_invoice({"providerId": 1, "items": [{"total": 10}]}).invoice

    infinite_item = store.add_invoice({"providerId": 1, "items": [{"total": "Infinity"}]})
    nan_item = store.add_invoice({"providerId": 1, "items": [{"total": "nan"}]})
    infinite_payment = store.add_payment_to_invoice(invoice.id, {"amount": "inf"})

    assert infinite_item.error_kind is ErrorKind.VALIDATION
    assert nan_item.error_kind is ErrorKind.VALIDATION
    assert infinite_payment.error_kind is ErrorKind.VALIDATION
    assert [stored.id for stored in store.invoices] == [invoice.id]
    assert store.get_invoice_by_id(invoice.id).paid_amount == 0
    assert store.get_providers_stats().total_paid == 0


def test_zero_total_invoice_is_created_paid() -> None:
    store = _store_with_providers(Provider(id=1, name="Acme"))

    created = store.add_invoice({"providerId": 1, "items": [{"total": 0}]})

    assert created.success is True
    assert created.invoice.total_cost == 0
    assert created.invoice.balance == 0
    assert created.invoice.status == "paid"


def test_invoice_keeps_provider_name_from_creation_time() -> None:
    store = _store_with_providers(Provider(id=1, name="Acme"))
    store.add_invoice({"providerId": 1, "items": [{"total": 10}]})

    store.providers = [store.providers[0].model_copy(update={"name": "Acme Corp"})]

    assert store.get_invoice_by_id(1).provider_name == "Acme"


def test_payment_failures_do_not_touch_invoice() -> None:
    store = _store_with_providers(Provider(id=1, name="Acme"))
    invoice = store.add_invoice({"providerId": 1, "items": [{"total": 10}]}).invoice

    missing = store.add_payment_to_invoice(42, {"amount": 5})
    zero = store.add_payment_to_invoice(invoice.id, {"amount": 0})
    garbage = store.add_payment_to_invoice(invoice.id, {"amount": "ten"})

    assert missing.error_kind is ErrorKind.PRECONDITION
    assert missing.error == "Invoice not found"
    assert zero.error_kind is ErrorKind.VALIDATION
    assert garbage.error_kind is ErrorKind.VALIDATION
    assert store.get_invoice_by_id(invoice.id) == invoice


def test_filtered_invoices_by_date_range_status_and_provider() -> None:
    store = _store_with_providers(Provider(id=1, name="Acme"), Provider(id=2, name="Beta"))
    for provider_id, day in (
        (1, "2024-06-01T00:00:00+00:00"),
        (2, "2024-04-01T00:00:00+00:00"),
        (1, "2023-09-01T00:00:00+00:00"),
        (2, "2022-01-01T00:00:00+00:00"),
    ):
        store.add_invoice({"providerId": provider_id, "items": [{"total": 10}], "date": day})
    store.add_payment_to_invoice(2, {"amount": 10})

    def ids(**filters):
        return [invoice.id for invoice in store.get_filtered_invoices(InvoiceFilters(**filters))]

    assert ids() == [1, 2, 3, 4]
    assert ids(date_range="month") == [1]
    assert ids(date_range="quarter") == [1, 2]
    assert ids(date_range="year") == [1, 2, 3]
    assert ids(status="paid") == [2]
    assert ids(status="pending", provider_id=1) == [1, 3]

    store.set_invoice_filters(provider_id="2")
    assert [invoice.id for invoice in store.get_filtered_invoices()] == [2, 4]
    store.clear_invoice_filters()
    assert store.invoice_filters == InvoiceFilters()


# -- statistics -------------------------------------------------------------


def test_stats_on_empty_store_are_zero() -> None:
    store = _make_store()

    stats = store.get_providers_stats()

    assert stats == ProviderStats()
    assert stats.top_providers == []
    assert stats.total_debt == 0


def test_stats_aggregate_invoices_and_rank_providers() -> None:
    acme = Provider(id=1, name="Acme", is_active=True)
    beta = Provider(id=2, name="Beta", is_active=False)
    gamma = Provider(id=3, name="Gamma")
    store = _store_with_providers(acme, beta, gamma)

    store.add_invoice({"providerId": 1, "items": [{"total": 100}]})
    small = store.add_invoice({"providerId": 1, "items": [{"total": 50}]}).invoice
    large = store.add_invoice({"providerId": 2, "items": [{"total": 300}]}).invoice
    store.add_invoice({"providerId": 3, "items": [{"total": 20}]})
    store.add_payment_to_invoice(small.id, {"amount": 50})
    store.add_payment_to_invoice(large.id, {"amount": 100})
    store.providers = [acme, beta]

    stats = store.get_providers_stats()

    assert stats.total_providers == 2
    assert stats.active_providers == 1
    assert stats.inactive_providers == 1
    assert stats.total_invoices == 4
    assert stats.pending_invoices == 3
    assert stats.paid_invoices == 1
    assert stats.total_debt == pytest.approx(320)
    assert stats.total_paid == pytest.approx(150)
    assert stats.total_invoice_amount == pytest.approx(470)

    top = [(entry.id, entry.name, entry.total_amount, entry.balance) for entry in stats.top_providers]
    assert top == [(2, "Beta", 300, 200), (1, "Acme", 150, 100), (3, "Unknown", 20, 20)]
    assert stats.top_providers[1].invoice_count == 2
    assert stats.top_providers[1].total_paid == 50


def test_stats_keep_only_top_providers() -> None:
    providers = [Provider(id=index, name=f"Provider {index}") for index in range(1, 8)]
    store = _store_with_providers(*providers)
    for provider in providers:
        store.add_invoice({"providerId": provider.id, "items": [{"total": provider.id * 10}]})

    stats = store.get_providers_stats()
    limited = _store_with_providers(*providers, top_providers_limit=2)
    limited.invoices = store.invoices

    assert [entry.id for entry in stats.top_providers] == [7, 6, 5, 4, 3]
    assert [entry.id for entry in limited.get_providers_stats().top_providers] == [7, 6]
