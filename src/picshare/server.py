"""FastAPI application factory and route setup for PicShare."""

import logging
import secrets
import time
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from picshare.config import PicShareConfig
from picshare.errors import InternalError, PicShareError, ValidationError
from picshare.handlers.account import AccountHandler
from picshare.handlers.image import ImageHandler
from picshare.metadata import create_metadata_store
from picshare.storage import create_blob_store
from picshare.tokens import TokenService, extract_token

logger = logging.getLogger(__name__)

# Path prefix of every route that requires a bearer token.
PROTECTED_PREFIX = "/image"

# Paths to suppress from per-request logging
_QUIET_PATHS = {"/metrics", "/health", "/ping"}

REQUEST_ID_HEADER = "X-Request-Id"


# Module-level singleton so multiple create_app() calls (e.g. in tests)
# don't re-register the same Prometheus gauge in the global registry.
_instrumentator = None


def _get_instrumentator():
    global _instrumentator
    if _instrumentator is None:
        from prometheus_fastapi_instrumentator import Instrumentator

        _instrumentator = Instrumentator(
            should_instrument_requests_inprogress=True,
            excluded_handlers=["/metrics"],
        )
    return _instrumentator


def error_response(exc: PicShareError, request_id: str = "") -> Response:
    """Render a PicShareError as its JSON body with the mapped status."""
    return JSONResponse(content=exc.to_dict(request_id), status_code=exc.http_status)


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(config: PicShareConfig) -> FastAPI:
    """Create and configure the PicShare FastAPI application.

    The lifespan context manager opens the metadata store and blob store on
    startup and closes them on shutdown. The local blob store removes temp
    files left by interrupted writes as part of its startup.

    Args:
        config: The loaded (and environment-overridden) configuration.

    Returns:
        A configured FastAPI application ready to run.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan hook: open the metadata store and the blob store."""
        metadata = create_metadata_store(config.metadata)
        await metadata.init_db()
        app.state.metadata = metadata

        storage = create_blob_store(config.storage)
        await storage.init()
        app.state.storage = storage

        logger.info(
            "Metadata store (%s) and blob store (%s) initialized",
            config.metadata.engine,
            config.storage.backend,
        )

        yield

        await storage.close()
        await metadata.close()
        logger.info("Metadata store and blob store closed")

    app = FastAPI(
        title="PicShare",
        version="0.1.0",
        lifespan=lifespan,
        openapi_url=None,
        docs_url=None,
        redoc_url=None,
    )
    app.state.config = config
    app.state.tokens = TokenService(config.auth)

    _register_exception_handlers(app)
    _register_middleware(app)

    if config.observability.metrics:
        import picshare.metrics as _metrics

        _metrics.init_metrics()
        _get_instrumentator().instrument(app, metric_namespace="picshare").expose(
            app, endpoint="/metrics"
        )

    _setup_routes(app, config)

    return app


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _register_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the FastAPI app."""

    @app.exception_handler(PicShareError)
    async def picshare_error_handler(request: Request, exc: PicShareError) -> Response:
        """Render PicShareError exceptions as JSON error bodies."""
        return error_response(exc, getattr(request.state, "request_id", ""))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> Response:
        """Map FastAPI request validation errors to a 400 ValidationError."""
        messages = []
        for err in exc.errors():
            loc = " -> ".join(str(p) for p in err.get("loc", []))
            msg = err.get("msg", "Invalid value")
            messages.append(f"{loc}: {msg}" if loc else msg)
        logger.warning("Request validation failed: %s", "; ".join(messages))
        return error_response(
            ValidationError("Invalid request parameters"),
            getattr(request.state, "request_id", ""),
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> Response:
        """Catch unexpected exceptions and return InternalError."""
        logger.exception("Unhandled exception in request handler")
        return error_response(InternalError(), getattr(request.state, "request_id", ""))


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def _register_middleware(app: FastAPI) -> None:
    """Register middleware on the FastAPI app.

    The last registered middleware runs first. Auth is registered first so
    the request-id middleware wraps it and every response, including auth
    failures, carries a request id and a log line.
    """

    @app.middleware("http")
    async def auth_middleware(request: Request, call_next) -> Response:
        """Bearer token authentication for the image routes.

        On success, stores the caller's identity on request.state for
        handlers to use. On failure, renders the error directly (FastAPI
        exception handlers do not catch exceptions from middleware).
        """
        if not request.url.path.startswith(PROTECTED_PREFIX):
            return await call_next(request)

        cfg: PicShareConfig = app.state.config
        tokens: TokenService = app.state.tokens
        try:
            claims = tokens.validate_token(extract_token(request, cfg.auth.cookie_name))
        except PicShareError as exc:
            return error_response(exc, getattr(request.state, "request_id", ""))

        request.state.owner_id = claims.owner_id
        request.state.email = claims.email
        return await call_next(request)

    @app.middleware("http")
    async def request_id_middleware(request: Request, call_next) -> Response:
        """Assign a request id, echo it in X-Request-Id and log the request."""
        request_id = secrets.token_hex(8)
        request.state.request_id = request_id
        start = time.monotonic()

        response = await call_next(request)

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        response.headers[REQUEST_ID_HEADER] = request_id

        if request.url.path not in _QUIET_PATHS:
            logger.info(
                "%s %s %d %.2fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                    "request_id": request_id,
                    "owner_id": getattr(request.state, "owner_id", None),
                },
            )

        return response


# ---------------------------------------------------------------------------
# Health check helpers
# ---------------------------------------------------------------------------


async def _check_metadata(app: FastAPI) -> dict:
    """Probe the metadata store.

    Returns a dict with ``status`` and ``latency_ms`` keys.
    """
    metadata = getattr(app.state, "metadata", None)
    if metadata is None:
        return {"status": "error", "error": "metadata store not initialized", "latency_ms": 0}
    try:
        start = time.monotonic()
        await metadata.ping()
        latency = round((time.monotonic() - start) * 1000, 1)
        return {"status": "ok", "latency_ms": latency}
    except Exception as exc:
        return {"status": "error", "error": str(exc), "latency_ms": 0}


async def _check_storage(app: FastAPI) -> dict:
    """Probe the blob store (check root directory exists).

    Returns a dict with ``status`` and ``latency_ms`` keys.
    """
    storage = getattr(app.state, "storage", None)
    if storage is None:
        return {"status": "error", "error": "blob store not initialized", "latency_ms": 0}
    start = time.monotonic()
    root = getattr(storage, "root", None)
    if root is not None and not Path(root).is_dir():
        return {
            "status": "error",
            "error": "data directory not found",
            "latency_ms": round((time.monotonic() - start) * 1000, 1),
        }
    latency = round((time.monotonic() - start) * 1000, 1)
    return {"status": "ok", "latency_ms": latency}


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


def _setup_routes(app: FastAPI, config: PicShareConfig) -> None:
    """Register all PicShare routes on the application.

    ``/image/meta`` is registered before ``/image/{uid}/{ref}`` so the
    literal path is matched first.

    Args:
        app: The FastAPI application to attach routes to.
        config: The PicShare configuration.
    """
    account_handler = AccountHandler(app)
    image_handler = ImageHandler(app)

    health_check_enabled = config.observability.health_check

    @app.get("/ping")
    async def ping() -> Response:
        """Liveness probe."""
        return JSONResponse(content={"message": "pong"})

    @app.get("/health")
    async def health_check() -> Response:
        """Return health status.

        When health_check is enabled: probe metadata and storage, return
        JSON with component checks and latency_ms. When disabled: return
        static ``{"status": "ok"}``.
        """
        if not health_check_enabled:
            return JSONResponse(content={"status": "ok"})

        meta_check = await _check_metadata(app)
        storage_check = await _check_storage(app)
        all_ok = meta_check["status"] == "ok" and storage_check["status"] == "ok"

        return JSONResponse(
            content={
                "status": "ok" if all_ok else "degraded",
                "checks": {"metadata": meta_check, "storage": storage_check},
            },
            status_code=200 if all_ok else 503,
        )

    # Accounts
    @app.post("/register")
    async def handle_register(request: Request) -> Response:
        """Handle POST /register -- Register."""
        return await account_handler.register(request)

    @app.get("/auth")
    async def handle_auth(request: Request) -> Response:
        """Handle GET /auth -- Authenticate."""
        return await account_handler.authenticate(request)

    # Images
    @app.post("/image")
    async def handle_upload(request: Request) -> Response:
        """Handle POST /image -- Upload."""
        return await image_handler.upload(request)

    @app.get("/image/meta")
    async def handle_query_meta(request: Request) -> Response:
        """Handle GET /image/meta -- QueryMeta."""
        return await image_handler.query_meta(request)

    @app.get("/image/{uid}/{ref}")
    async def handle_get_image(uid: str, ref: str, request: Request) -> Response:
        """Handle GET /image/{uid}/{ref} -- GetImage."""
        return await image_handler.get_image(request, uid, ref)

    @app.put("/image/{uid}/{ref}")
    async def handle_update_image(uid: str, ref: str, request: Request) -> Response:
        """Handle PUT /image/{uid}/{ref} -- UpdateImage."""
        return await image_handler.update_image(request, uid, ref)

    @app.delete("/image/{uid}/{ref}")
    async def handle_delete_image(uid: str, ref: str, request: Request) -> Response:
        """Handle DELETE /image/{uid}/{ref} -- DeleteImage."""
        return await image_handler.delete_image(request, uid, ref)
