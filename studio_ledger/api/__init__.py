"""
Studio Ledger API Application Factory
"""

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .ledger import router as ledger_router
from .customers import router as customers_router
from .suppliers import router as suppliers_router
from .bookings import router as bookings_router
from .purchases import router as purchases_router
from .. import __version__
from ..errors import ConsistencyError, LedgerError, NotFoundError, ValidationError
from ..logging_config import get_logger, log_action


logger = get_logger("studio_ledger.api")

_STATUS_CODES = (
    (ValidationError, 400),
    (NotFoundError, 404),
    (ConsistencyError, 409),
)


async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Map ledger errors to HTTP status codes"""
    status_code = 500
    for error_type, code in _STATUS_CODES:
        if isinstance(exc, error_type):
            status_code = code
            break

    level = "error" if status_code >= 409 else "info"
    log_action(
        logger, level, f"{request.method} {request.url.path} failed: {exc}",
        action="http_error", resource=request.url.path,
        extra={"status_code": status_code, "error": type(exc).__name__}
    )
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="Studio Ledger API",
        description="Customer and supplier ledger with running-balance account statements",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LedgerError, ledger_error_handler)

    # Include routers
    app.include_router(ledger_router, prefix="/ledger", tags=["Ledger"])
    app.include_router(customers_router, prefix="/customers", tags=["Customers"])
    app.include_router(suppliers_router, prefix="/suppliers", tags=["Suppliers"])
    app.include_router(bookings_router, prefix="/bookings", tags=["Bookings"])
    app.include_router(purchases_router, prefix="/purchases", tags=["Purchases"])

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "studio_ledger_api",
            "version": __version__
        }

    # Root endpoint
    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Studio Ledger API",
            "version": __version__,
            "description": "Customer and supplier ledger with account statements",
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "ledger": "/ledger",
                "customers": "/customers",
                "suppliers": "/suppliers",
                "bookings": "/bookings",
                "purchases": "/purchases",
            }
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False,
               log_level: str = "info", workers: int = 1):
    """Run the FastAPI server"""
    uvicorn.run(
        "studio_ledger.api:app",
        host=host,
        port=port,
        reload=debug,
        workers=None if debug else workers,
        log_level=log_level.lower()
    )
