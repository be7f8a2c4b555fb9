import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import TodoError
from .routers import accounts as accounts_router
from .routers import data as data_router
from .routers import groups as groups_router
from .routers import tasks as tasks_router
from .scheduler import start_purge_scheduler
from .services import get_services
from .settings import get_settings

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {"name": "accounts", "description": "Registration, password recovery and profile management."},
    {"name": "data", "description": "Everything visible to the caller, and user search."},
    {"name": "groups", "description": "Personal and collaborative groups and their members."},
    {
        "name": "tasks",
        "description": "Task CRUD with soft delete, a time-boxed undo and bulk clearing of completed tasks.",
    },
]

_settings = get_settings()

logging.basicConfig(
    level=getattr(logging, _settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Sweep with the same services the requests use, honouring test overrides
    services = app.dependency_overrides.get(get_services, get_services)()
    scheduler = start_purge_scheduler(services, _settings.purge_interval_seconds)
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")


app = FastAPI(
    title="Collaborative Todo Backend",
    description="Backend API for personal and shared to-do lists with undoable task deletion.",
    version="0.1.0",
    openapi_tags=openapi_tags,
    lifespan=lifespan,
)

# Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
allow_all = (_settings.cors_allow_origins == ["*"]) or (len(_settings.cors_allow_origins) == 0)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all else _settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TodoError)
async def todo_error_handler(request: Request, exc: TodoError) -> JSONResponse:
    """
    Render domain failures as JSON.

    Response format:
        {
            "error": "NotFound" | "Forbidden" | "Conflict" | "InvalidState",
            "detail": "<message>"
        }
    """
    logger.debug("%s %s -> %s: %s", request.method, request.url.path, exc.error, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error, "detail": exc.message},
    )


# Global exception handlers for consistent JSON on validation errors
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Return a consistent JSON structure for request validation errors.

    Response format:
        {
            "error": "ValidationError",
            "detail": [... pydantic/fastapi error details ...],
            "message": "Request validation failed"
        }
    """
    return JSONResponse(
        status_code=422,
        content={
            "error": "ValidationError",
            "message": "Request validation failed",
            # ctx may carry the raw ValueError raised by a validator
            "detail": jsonable_encoder(exc.errors(), custom_encoder={ValueError: str}),
        },
    )


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check():
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health.
    """
    return {"message": "Healthy", "backend": _settings.persistence_backend}


# Include routers
app.include_router(accounts_router.router)
app.include_router(data_router.router)
app.include_router(groups_router.router)
app.include_router(tasks_router.router)
