from __future__ import annotations

import itertools
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from provider_ledger.services.exceptions import DownstreamServiceError


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _not_found(provider_id: int) -> DownstreamServiceError:
    return DownstreamServiceError(
        "Provider backend returned an error response (404)",
        status_code=404,
        detail=f"Provider {provider_id} not found",
    )


class ProviderRepository:
    """In-memory stand-in for the provider REST backend.

    Records are stored and returned in the backend's camelCase wire shape so
    the service layer parses mock and live responses the same way.
    """

    def __init__(self, *, seed: bool = True) -> None:
        self._providers: Dict[int, Dict[str, Any]] = {}
        self._counter = itertools.count(1)
        if seed:
            self._seed_defaults()

    def _next_id(self) -> int:
        return next(self._counter)

    def _seed_defaults(self) -> None:
        seeds = [
            {
                "document": "900123456",
                "name": "Acme Supplies",
                "businessName": "Acme Supplies S.A.S.",
                "contactName": "Laura Gomez",
                "email": "ventas@acme.example",
                "phone": "601 555 0101",
                "city": "Bogota",
                "country": "Colombia",
                "paymentTerms": "Net 30",
                "paymentDays": 30,
                "isActive": True,
                "createdAt": "2024-01-10T09:00:00+00:00",
            },
            {
                "document": "800987654",
                "name": "Beta Logistics",
                "businessName": "Beta Logistics Ltda.",
                "contactName": "Andres Ruiz",
                "email": "contacto@beta.example",
                "phone": "604 555 0199",
                "city": "Medellin",
                "country": "Colombia",
                "paymentTerms": "Net 15",
                "paymentDays": 15,
                "isActive": True,
                "createdAt": "2024-03-02T14:30:00+00:00",
            },
            {
                "document": "700555123",
                "name": "Gamma Packaging",
                "businessName": "Gamma Packaging S.A.",
                "contactName": "Sofia Mora",
                "email": "info@gamma.example",
                "city": "Quito",
                "country": "Ecuador",
                "paymentTerms": "Cash",
                "isActive": False,
                "createdAt": "2023-11-20T08:15:00+00:00",
            },
        ]
        for seed in seeds:
            provider_id = self._next_id()
            record = {"id": provider_id, "updatedAt": seed["createdAt"], **seed}
            self._providers[provider_id] = record

    def _require(self, provider_id: int) -> Dict[str, Any]:
        record = self._providers.get(int(provider_id))
        if record is None:
            raise _not_found(provider_id)
        return record

    def _ensure_unique_document(self, document: str, exclude_id: int | None = None) -> None:
        for record in self._providers.values():
            if record["id"] == exclude_id:
                continue
            if record.get("document") == document:
                raise DownstreamServiceError(
                    "Provider backend returned an error response (409)",
                    status_code=409,
                    detail=f"A provider with document {document} already exists",
                )

    async def list(self) -> List[Dict[str, Any]]:
        return [dict(record) for record in self._providers.values()]

    async def get(self, provider_id: int) -> Dict[str, Any]:
        return dict(self._require(provider_id))

    async def create(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        self._ensure_unique_document(str(payload.get("document", "")))
        provider_id = self._next_id()
        timestamp = _utc_now_iso()
        record = {
            **payload,
            "id": provider_id,
            "isActive": payload.get("isActive", True),
            "createdAt": timestamp,
            "updatedAt": timestamp,
        }
        self._providers[provider_id] = record
        return dict(record)

    async def update(self, provider_id: int, payload: Dict[str, Any]) -> Dict[str, Any]:
        record = self._require(provider_id)
        self._ensure_unique_document(
            str(payload.get("document", record.get("document", ""))),
            exclude_id=record["id"],
        )
        protected = {"id", "createdAt", "updatedAt"}
        record.update({key: value for key, value in payload.items() if key not in protected})
        record["updatedAt"] = _utc_now_iso()
        return dict(record)

    async def set_active(self, provider_id: int, active: bool) -> Dict[str, Any]:
        record = self._require(provider_id)
        record["isActive"] = active
        record["updatedAt"] = _utc_now_iso()
        return dict(record)

    async def search(self, query: str) -> List[Dict[str, Any]]:
        normalized = query.strip().lower()
        if not normalized:
            return []
        return [
            dict(record)
            for record in self._providers.values()
            if normalized in str(record.get("name") or "").lower()
            or normalized in str(record.get("document") or "").lower()
        ]

    async def active(self) -> List[Dict[str, Any]]:
        return [dict(record) for record in self._providers.values() if record.get("isActive")]

    async def cities(self) -> List[str]:
        return sorted({record["city"] for record in self._providers.values() if record.get("city")})

    async def countries(self) -> List[str]:
        return sorted(
            {record["country"] for record in self._providers.values() if record.get("country")}
        )


@dataclass
class MockDataStore:
    providers: ProviderRepository


_mock_store: Optional[MockDataStore] = None


def get_mock_store() -> MockDataStore:
    global _mock_store
    if _mock_store is None:
        _mock_store = MockDataStore(providers=ProviderRepository())
    return _mock_store


def reset_mock_store() -> None:
    global _mock_store
    _mock_store = None
