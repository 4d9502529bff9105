"""FastAPI entrypoint for the bindery portfolio backend.

Run with ``uvicorn backend.app.main:create_app --factory``.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.dependencies import close_book_gateway
from .api.routers import books, health
from .config import Settings, load_settings, require_image_host
from .infra.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(application: FastAPI):
    yield
    if close_book_gateway(application):
        logger.info("book_gateway_closed")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Instantiate the FastAPI app and register routers.

    Fails with ``ConfigurationError`` when the image host is not configured.
    """

    settings = settings or load_settings()
    configure_logging(settings.logging)
    require_image_host(settings)
    application = FastAPI(title="Bindery Portfolio API", version="0.1.0", lifespan=lifespan)
    allowed_origins = {
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:4173",
        "http://127.0.0.1:4173",
    }
    application.add_middleware(
        CORSMiddleware,
        allow_origins=list(allowed_origins),
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    application.state.settings = settings
    for router in (health.router, books.router):
        application.include_router(router)
    logger.info(
        "app_created",
        extra={"environment": settings.environment, "store_backend": settings.store.backend},
    )
    return application
