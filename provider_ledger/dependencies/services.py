from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, Request

from provider_ledger.clients.backend import BackendClient
from provider_ledger.config import Settings, get_settings
from provider_ledger.services import LedgerStore, ProviderApi


@lru_cache(maxsize=1)
def get_backend_client_cached() -> BackendClient:
    settings = get_settings()
    return BackendClient(
        settings.backend_base_url,
        timeout=settings.backend_timeout,
        use_mock_data=settings.use_mock_data,
        token=settings.backend_token,
    )


def get_backend_client(settings: Settings = Depends(get_settings)) -> BackendClient:
    return get_backend_client_cached()


def get_provider_api(
    client: BackendClient = Depends(get_backend_client),
) -> ProviderApi:
    return ProviderApi(client)


def build_ledger_store(api: ProviderApi, settings: Settings) -> LedgerStore:
    return LedgerStore(
        api,
        top_providers_limit=settings.top_providers_limit,
        reconcile_status_toggle=settings.reconcile_status_toggle,
    )


def get_ledger_store(
    request: Request,
    api: ProviderApi = Depends(get_provider_api),
    settings: Settings = Depends(get_settings),
) -> LedgerStore:
    """Return the session store held on the application, creating it on first use."""

    store = getattr(request.app.state, "ledger", None)
    if store is None:
        store = build_ledger_store(api, settings)
        request.app.state.ledger = store
    return store
