from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from provider_ledger.config import get_settings
from provider_ledger.dependencies.services import (
    build_ledger_store,
    get_backend_client_cached,
)
from provider_ledger.health import router as health_router
from provider_ledger.ledger_view import router as ledger_view_router
from provider_ledger.services.provider_api import ProviderApi
from provider_ledger.tools.invoices import router as invoices_router
from provider_ledger.tools.providers import router as providers_router


def configure_logging() -> None:
    """Ensure application logs use the INFO level by default."""
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=logging.INFO,
            format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        )
    else:
        root_logger.setLevel(logging.INFO)


configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    settings_snapshot = settings.model_dump(exclude={"backend_token"})
    logger.info("Application settings on startup: %s", settings_snapshot)

    client = get_backend_client_cached()
    app.state.ledger = build_ledger_store(ProviderApi(client), settings)
    logger.info("Application startup complete.")

    try:
        yield
    finally:
        logger.info("Closing provider backend client.")
        await client.close()
        logger.info("Application shutdown complete.")


# --- Application Setup ---

settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    lifespan=lifespan,
    redirect_slashes=False,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[str(origin).rstrip("/") for origin in settings.cors_origins],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(providers_router, prefix="/providers")
app.include_router(invoices_router, prefix="/invoices")
app.include_router(health_router)
app.include_router(ledger_view_router)
