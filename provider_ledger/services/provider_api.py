from __future__ import annotations

import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from provider_ledger.clients.backend import BackendClient
from provider_ledger.schemas.provider import Provider, ProviderInput
from provider_ledger.services.exceptions import ServiceError
from provider_ledger.services.mock_store import ProviderRepository, get_mock_store

logger = logging.getLogger(__name__)


def _parse_provider(data: Any) -> Provider:
    try:
        return Provider.model_validate(data)
    except ValidationError as exc:
        raise ServiceError("Provider backend returned a malformed provider", cause=exc) from exc


def _parse_providers(data: Any) -> List[Provider]:
    if not isinstance(data, list):
        raise ServiceError("Provider backend returned a malformed provider collection")
    return [_parse_provider(item) for item in data]


def _parse_names(data: Any) -> List[str]:
    if not isinstance(data, list):
        raise ServiceError("Provider backend returned a malformed name list")
    return [str(item) for item in data]


class ProviderApi:
    """Provider persistence collaborator.

    Mirrors the backend's ``/providers`` REST resource. In mock mode the calls
    are served by :class:`ProviderRepository`.
    """

    def __init__(
        self,
        client: BackendClient,
        *,
        repository: ProviderRepository | None = None,
    ) -> None:
        self._client = client
        self._repository = repository
        if self._client.use_mock_data:
            self._repository = repository or get_mock_store().providers

    def _mock_repository(self) -> ProviderRepository:
        if not self._repository:
            raise RuntimeError("Mock provider repository not configured")
        return self._repository

    async def _call(self, description: str, live_call) -> Any:
        try:
            return await live_call
        except ServiceError:
            raise
        except Exception as exc:  # pragma: no cover - defensive
            logger.exception("Unexpected error while %s", description)
            raise ServiceError(f"Failed while {description}", cause=exc)

    async def list_providers(self) -> List[Provider]:
        logger.info("Fetching provider collection")
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return _parse_providers(await self._mock_repository().list())
        data = await self._call("fetching providers", self._client.get("/providers"))
        return _parse_providers(data)

    async def get_provider(self, provider_id: int) -> Provider:
        logger.debug("Fetching provider %s", provider_id)
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return _parse_provider(await self._mock_repository().get(provider_id))
        data = await self._call(
            "fetching provider", self._client.get(f"/providers/{provider_id}")
        )
        return _parse_provider(data)

    async def create_provider(self, request: ProviderInput) -> Provider:
        logger.info("Creating provider %s", request.name)
        payload: Dict[str, Any] = request.to_backend_payload()
        payload.setdefault("isActive", True)
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return _parse_provider(await self._mock_repository().create(payload))
        data = await self._call("creating provider", self._client.post("/providers", payload))
        return _parse_provider(data)

    async def update_provider(self, provider_id: int, request: ProviderInput) -> Provider:
        logger.info("Updating provider %s", provider_id)
        payload: Dict[str, Any] = request.to_backend_payload()
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return _parse_provider(await self._mock_repository().update(provider_id, payload))
        data = await self._call(
            "updating provider", self._client.put(f"/providers/{provider_id}", payload)
        )
        return _parse_provider(data)

    async def deactivate_provider(self, provider_id: int) -> Any:
        """Logical delete. Returns whatever confirmation payload the backend sends."""
        logger.info("Deactivating provider %s", provider_id)
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return await self._mock_repository().set_active(provider_id, False)
        return await self._call(
            "deactivating provider", self._client.delete(f"/providers/{provider_id}")
        )

    async def activate_provider(self, provider_id: int) -> Any:
        logger.info("Activating provider %s", provider_id)
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return await self._mock_repository().set_active(provider_id, True)
        return await self._call(
            "activating provider", self._client.patch(f"/providers/{provider_id}/activate")
        )

    async def search_providers(self, query: str) -> List[Provider]:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return _parse_providers(await self._mock_repository().search(query))
        data = await self._call(
            "searching providers", self._client.get("/providers/search", params={"q": query})
        )
        return _parse_providers(data)

    async def list_active_providers(self) -> List[Provider]:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return _parse_providers(await self._mock_repository().active())
        data = await self._call(
            "fetching active providers", self._client.get("/providers/active")
        )
        return _parse_providers(data)

    async def list_cities(self) -> List[str]:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return await self._mock_repository().cities()
        data = await self._call("fetching cities", self._client.get("/providers/cities"))
        return _parse_names(data)

    async def list_countries(self) -> List[str]:
        if self._client.use_mock_data:
            await self._client.simulate_latency()
            return await self._mock_repository().countries()
        data = await self._call("fetching countries", self._client.get("/providers/countries"))
        return _parse_names(data)
