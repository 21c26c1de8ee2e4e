"""
Bank Ledger API Application Factory
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .accounts import router as accounts_router
from .errors import ledger_error_handler
from .middleware import RateLimiter
from .transactions import router as transactions_router
from .users import router as users_router
from .. import __version__
from ..errors import LedgerError
from ..system import LedgerSystem


def create_app(system: Optional[LedgerSystem] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    system = system or LedgerSystem()
    
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        system.close()
    
    app = FastAPI(
        title="Bank Ledger API",
        description="Account-balance ledger with atomic deposits, withdrawals and transfers",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )
    app.state.ledger_system = system
    
    if system.config.enable_rate_limiting:
        app.middleware("http")(RateLimiter(system.config.rate_limit_per_minute))
    
    app.add_exception_handler(LedgerError, ledger_error_handler)
    
    # Include routers
    app.include_router(users_router, prefix="/users", tags=["Users"])
    app.include_router(accounts_router, prefix="/accounts", tags=["Accounts"])
    app.include_router(transactions_router, tags=["Transactions"])
    
    # Health check endpoint
    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "bank_ledger_api",
            "version": __version__
        }
    
    return app
