"""FastAPI application entry point."""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from webforms.core.config import settings
from webforms.core.deps import get_registry
from webforms.core.rate_limit import limiter
from webforms.routers import forms_router
from webforms.schemas.views import HealthResponse
from webforms.services.form_registry import FormRegistry, registry_from_settings

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "X-XSS-Protection": "1; mode=block",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load forms (unless injected) and run notification workers until shutdown."""
    if getattr(app.state, "registry", None) is None:
        app.state.registry = registry_from_settings()
    registry: FormRegistry = app.state.registry

    workers = [asyncio.create_task(dispatcher.run()) for dispatcher in registry.dispatchers()]
    logger.info("Serving %d form(s), %d notification worker(s)", len(registry), len(workers))
    try:
        yield
    finally:
        # Global shutdown: pending retries stop immediately
        for worker in workers:
            worker.cancel()
        await asyncio.gather(*workers, return_exceptions=True)
        await registry.storage.close()


def create_app(registry: FormRegistry | None = None) -> FastAPI:
    """
    Build the application.

    Tests inject a prepared registry; otherwise forms and collaborators are
    loaded from settings when the app starts.
    """
    app = FastAPI(
        title="Web Forms API",
        description="Declarative forms with validation, storage and notifications",
        version=settings.VERSION,
        docs_url="/docs" if settings.ENV == "dev" else None,
        redoc_url="/redoc" if settings.ENV == "dev" else None,
        lifespan=lifespan,
    )
    app.state.registry = registry

    # Add rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    @app.middleware("http")
    async def security_headers(request: Request, call_next):
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers.setdefault(header, value)
        return response

    app.include_router(forms_router)

    @app.get("/health", response_model=HealthResponse)
    def health(registry: FormRegistry = Depends(get_registry)):
        """Health check endpoint."""
        return HealthResponse(status="ok", env=settings.ENV, version=settings.VERSION, forms=len(registry))

    return app
