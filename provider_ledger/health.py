# provider_ledger/health.py
from fastapi import APIRouter, Depends

from provider_ledger.dependencies.services import get_ledger_store
from provider_ledger.services.ledger import LedgerStore

router = APIRouter()


@router.get("/health")
def health(store: LedgerStore = Depends(get_ledger_store)):
    return {"ok": True, "loading": store.is_loading, "error": store.error}
