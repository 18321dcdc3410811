"""
Chainflow Approval API - Main FastAPI Application
Multi-section approval chains for business-unit requests
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from chainflow.api.v1.api import api_router
from chainflow.core.config import settings
from chainflow.core.exceptions import ChainflowError
from chainflow.core.metrics import CONTENT_TYPE_LATEST, MetricsMiddleware, get_metrics
from chainflow.core.middleware import AuditMiddleware, ErrorHandlingMiddleware
from chainflow.db.database import create_tables, health_check

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Migrations own the schema everywhere except local SQLite databases
    if "sqlite" in settings.DATABASE_URL:
        create_tables()
    logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")
    yield
    logger.info(f"{settings.APP_NAME} stopped")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="Multi-section approval chains with versioned definitions and an audit ledger",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
    debug=settings.DEBUG,
    lifespan=lifespan,
)


@app.exception_handler(ChainflowError)
async def chainflow_error_handler(request: Request, exc: ChainflowError):
    """Render typed engine errors with their status and a specific message"""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

if settings.PROMETHEUS_METRICS_ENABLED:
    app.add_middleware(MetricsMiddleware)

app.add_middleware(ErrorHandlingMiddleware)
app.add_middleware(AuditMiddleware)

# Include API routes
app.include_router(api_router, prefix="/v1")


@app.get("/health")
def health():
    """Health check for load balancers and monitoring"""
    db_ok, db_message = health_check()
    return {
        "status": "healthy" if db_ok else "degraded",
        "service": "chainflow-api",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT,
        "database": db_message,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/metrics")
def metrics():
    """Prometheus metrics endpoint"""
    return Response(content=get_metrics(), media_type=CONTENT_TYPE_LATEST)


if __name__ == "__main__":
    uvicorn.run(
        "chainflow.main:app",
        host="0.0.0.0",  # nosec B104
        port=8000,
        reload=settings.ENVIRONMENT == "development",
    )
