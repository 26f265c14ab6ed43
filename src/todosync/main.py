from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .errors import DocumentError, RemoteStoreError, format_error_message
from .logging_config import configure_logging, get_logger
from .remote import get_todo_store
from .routers import documents as documents_router
from .routers import sessions as sessions_router
from .routers import todos as todos_router
from .sessions import get_session_registry
from .settings import get_settings

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "todos",
        "description": "CRUD operations for todo records with filtering, sorting, and pagination.",
    },
    {
        "name": "sessions",
        "description": "Editing sessions that keep the to-dos of a rich-text document in sync.",
    },
    {"name": "documents", "description": "Documents saved by editing sessions."},
]

_settings = get_settings()
configure_logging(_settings.log_level)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Starting todosync (repository=%s, remote=%s)",
        _settings.persistence_backend,
        _settings.sync_remote_backend,
    )
    yield
    # Every open session gets its final pass before the store goes away.
    await get_session_registry().close_all()
    if get_todo_store.cache_info().currsize:
        await get_todo_store().aclose()
    get_session_registry.cache_clear()
    get_todo_store.cache_clear()
    logger.info("todosync stopped")


app = FastAPI(
    title="Todo Sync Backend",
    description="Todo records and editor-to-database to-do synchronization sessions.",
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


def _jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may carry the raised ValueError itself
    errors = []
    for err in exc.errors():
        err = dict(err)
        if "ctx" in err:
            err["ctx"] = {k: str(v) for k, v in err["ctx"].items()}
        errors.append(err)
    return errors


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
            "detail": _jsonable_errors(exc),
        },
    )


@app.exception_handler(DocumentError)
async def document_exception_handler(request: Request, exc: DocumentError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"error": "DocumentError", "message": str(exc)},
    )


@app.exception_handler(RemoteStoreError)
async def store_exception_handler(request: Request, exc: RemoteStoreError) -> JSONResponse:
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=502,
        content={"error": exc.error_type.value, "message": format_error_message(exc)},
    )


# PUBLIC_INTERFACE
@app.get("/", summary="Health Check", tags=["health"])
def health_check():
    """
    Health check endpoint.

    Returns:
        A JSON object indicating service health and the configured backends.
    """
    return {
        "message": "Healthy",
        "backend": _settings.persistence_backend,
        "remote": _settings.sync_remote_backend,
        "sessions": len(get_session_registry()),
    }


app.include_router(todos_router.router)
app.include_router(sessions_router.router)
app.include_router(documents_router.router)
