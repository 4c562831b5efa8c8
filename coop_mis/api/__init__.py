"""
Credit Cooperative MIS API Application Factory
"""

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .. import __version__
from ..config import get_config
from ..logging_config import setup_logging, get_logger, request_context
from .sessions import router as sessions_router
from .members import router as members_router
from .loans import router as loans_router
from .loan_types import router as loan_types_router
from .savings import router as savings_router
from .transactions import router as transactions_router
from .reports import router as reports_router
from .dashboards import router as dashboards_router
from .audit_logs import router as audit_logs_router
from .users import router as users_router
from .navigation import router as navigation_router
from .portal import router as portal_router

logger = get_logger("coop_mis.api.requests")

REQUEST_ID_HEADER = "X-Request-ID"


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""
    config = get_config()
    setup_logging(config.log_level, log_format=config.log_format)

    app = FastAPI(
        title="Credit Cooperative MIS API",
        description="Membership, lending, savings and reporting for a credit cooperative",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc"
    )

    origins = [o.strip() for o in config.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def correlate_request(request: Request, call_next):
        """Tag every log line of a request with its X-Request-ID"""
        with request_context(request.headers.get(REQUEST_ID_HEADER)) as request_id:
            response = await call_next(request)
            logger.debug("%s %s -> %s", request.method, request.url.path, response.status_code)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    app.include_router(sessions_router, prefix="/auth", tags=["Auth"])
    app.include_router(members_router, prefix="/members", tags=["Members"])
    app.include_router(loans_router, prefix="/loans", tags=["Loans"])
    app.include_router(loan_types_router, prefix="/settings/loan-types", tags=["Settings"])
    app.include_router(savings_router, prefix="/savings", tags=["Savings"])
    app.include_router(transactions_router, prefix="/transactions", tags=["Transactions"])
    app.include_router(reports_router, prefix="/reports", tags=["Reports"])
    app.include_router(dashboards_router, prefix="/dashboards", tags=["Dashboards"])
    app.include_router(audit_logs_router, prefix="/audit-logs", tags=["Audit Logs"])
    app.include_router(users_router, prefix="/users", tags=["Users"])
    app.include_router(navigation_router, prefix="/navigation", tags=["Navigation"])
    app.include_router(portal_router, prefix="/portal", tags=["Member Portal"])

    @app.get("/health")
    async def health_check():
        """Health check endpoint"""
        return {
            "status": "healthy",
            "service": "coop_mis_api",
            "version": __version__
        }

    @app.get("/")
    async def get_api_info():
        """Get API information"""
        return {
            "name": "Credit Cooperative MIS API",
            "version": __version__,
            "currency": config.currency,
            "endpoints": {
                "docs": "/docs",
                "health": "/health",
                "auth": "/auth",
                "members": "/members",
                "loans": "/loans",
                "loan-types": "/settings/loan-types",
                "savings": "/savings",
                "transactions": "/transactions",
                "reports": "/reports",
                "dashboards": "/dashboards",
                "audit-logs": "/audit-logs",
                "users": "/users",
                "navigation": "/navigation",
                "portal": "/portal",
            }
        }

    return app


def run_server(host: str = "0.0.0.0", port: int = 8090, debug: bool = False):
    """Run the FastAPI server"""
    uvicorn.run(
        "coop_mis.api:app",
        host=host,
        port=port,
        reload=debug,
        log_level="info"
    )


app = create_app()
