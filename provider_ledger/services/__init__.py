"""Service package public API definitions.

``provider_ledger.clients.backend`` imports ``provider_ledger.services.exceptions``,
which executes this module first. The service implementations in turn import
the backend client, so they are imported lazily on attribute access to keep
that cycle from forming at start up.
"""

from __future__ import annotations

from importlib import import_module
from typing import TYPE_CHECKING, Any

__all__ = [
    "LedgerStore",
    "ProviderApi",
]

_SERVICE_MODULES = {
    "LedgerStore": "ledger",
    "ProviderApi": "provider_api",
}


def __getattr__(name: str) -> Any:
    if name not in _SERVICE_MODULES:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

    module = import_module(f".{_SERVICE_MODULES[name]}", __name__)
    attr = getattr(module, name)
    globals()[name] = attr
    return attr


if TYPE_CHECKING:  # pragma: no cover - import for static analysis only
    from .ledger import LedgerStore as LedgerStore
    from .provider_api import ProviderApi as ProviderApi
