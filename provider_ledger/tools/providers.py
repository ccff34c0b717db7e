from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException

from provider_ledger.dependencies.services import get_ledger_store
from provider_ledger.schemas.ledger import ProviderStats
from provider_ledger.schemas.provider import Provider, ProviderFilters, ProviderInput
from provider_ledger.services.exceptions import DownstreamServiceError, ServiceError
from provider_ledger.services.ledger import LedgerStore
from provider_ledger.tools.responses import raise_for_result

router = APIRouter()


async def _load_providers(store: LedgerStore) -> None:
    try:
        await store.fetch_providers()
    except ServiceError as exc:
        raise HTTPException(status_code=502, detail=store.error or str(exc)) from exc


@router.get("", response_model=List[Provider])
async def list_providers(
    q: Optional[str] = None,
    status: Optional[Literal["active", "inactive", "all"]] = None,
    city: Optional[str] = None,
    store: LedgerStore = Depends(get_ledger_store),
):
    await _load_providers(store)
    filters = ProviderFilters(
        status=status if status is not None else store.filters.status,
        city=city if city is not None else store.filters.city,
    )
    return store.get_filtered_providers(search_term=q, filters=filters)


@router.get("/stats", response_model=ProviderStats)
async def provider_stats(store: LedgerStore = Depends(get_ledger_store)):
    await _load_providers(store)
    return store.get_providers_stats()


@router.get("/cities", response_model=List[str])
async def list_cities(store: LedgerStore = Depends(get_ledger_store)):
    try:
        return await store.fetch_cities()
    except ServiceError as exc:
        raise HTTPException(status_code=502, detail=store.error or str(exc)) from exc


@router.get("/countries", response_model=List[str])
async def list_countries(store: LedgerStore = Depends(get_ledger_store)):
    try:
        return await store.fetch_countries()
    except ServiceError as exc:
        raise HTTPException(status_code=502, detail=store.error or str(exc)) from exc


@router.get("/{provider_id}", response_model=Provider)
async def get_provider(
    provider_id: int,
    store: LedgerStore = Depends(get_ledger_store),
):
    provider = store.get_provider_by_id(provider_id)
    if provider is not None:
        return provider
    try:
        return await store.fetch_provider_by_id(provider_id)
    except DownstreamServiceError as exc:
        status_code = 404 if exc.status_code == 404 else 502
        raise HTTPException(status_code=status_code, detail=exc.user_message) from exc
    except ServiceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc


@router.post("", response_model=Provider, status_code=201)
async def create_provider(
    req: ProviderInput,
    store: LedgerStore = Depends(get_ledger_store),
):
    result = raise_for_result(await store.add_provider(req))
    return result.provider


@router.put("/{provider_id}", response_model=Provider)
async def update_provider(
    provider_id: int,
    req: ProviderInput,
    store: LedgerStore = Depends(get_ledger_store),
):
    result = raise_for_result(await store.update_provider(provider_id, req))
    return result.provider


@router.post("/{provider_id}/toggle-status", response_model=Provider)
async def toggle_provider_status(
    provider_id: int,
    store: LedgerStore = Depends(get_ledger_store),
):
    if store.get_provider_by_id(provider_id) is None:
        await _load_providers(store)
    result = raise_for_result(await store.toggle_provider_status(provider_id))
    return result.provider
