import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from procureflow import __version__
from procureflow.api.deps import shutdown_dispatcher
from procureflow.api.routers import approvals, delegations, health, workflows
from procureflow.common.logger import configure_from_settings
from procureflow.core.config import get_settings
from procureflow.core.errors import (
    ApprovalError,
    ConfigurationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from procureflow.db.session import init_db

settings = get_settings()
configure_from_settings(settings)
logger = logging.getLogger(__name__)

# Most specific first; InvalidTransitionError is a ConflictError
ERROR_STATUS = [
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (ConfigurationError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db()
    yield
    shutdown_dispatcher()


app = FastAPI(
    title=settings.app_name,
    description="Approval routing for purchase orders and supplier invoices",
    version=__version__,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.debug else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ApprovalError)
async def approval_error_handler(request: Request, exc: ApprovalError):
    status_code = status.HTTP_400_BAD_REQUEST
    for error_class, code in ERROR_STATUS:
        if isinstance(exc, error_class):
            status_code = code
            break
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={"error": exc.code or type(exc).__name__, "detail": exc.message},
    )


# Include routers
app.include_router(health.router)
app.include_router(approvals.router, prefix="/api")
app.include_router(delegations.router, prefix="/api")
app.include_router(workflows.router, prefix="/api")


@app.get("/")
async def root():
    return {
        "name": settings.app_name,
        "version": __version__,
        "docs": "/docs" if settings.debug else None,
    }
