"""FastAPI application factory."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from rfqsettle import __version__
from rfqsettle.config import get_settings
from rfqsettle.errors import RfqError
from rfqsettle.ledger.database import close_db, init_db

# HTTP status for each protocol error code
ERROR_STATUS = {
    "invalid_input": 400,
    "unauthorized": 403,
    "already_processed": 409,
    "insufficient_funds": 402,
    "paused": 423,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    await init_db()
    yield
    # Shutdown
    await close_db()


async def rfq_error_handler(request: Request, exc: RfqError) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.code, 400),
        content={"error": exc.code, "detail": exc.reason},
    )


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="rfqsettle API",
        description="Cross-chain RFQ settlement ledger",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RfqError, rfq_error_handler)

    # Register routes
    from rfqsettle.api.routers import admin, rfq
    from rfqsettle.api.routes import health

    app.include_router(health.router, tags=["Health"])
    app.include_router(rfq.router, prefix="/api/v1", tags=["RFQ"])
    app.include_router(admin.router, tags=["Admin"])

    return app


# Default app instance
app = create_app()
