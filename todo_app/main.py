import logging
import time
from datetime import timedelta
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import errors, models  # noqa: F401  (models registers tables on Base)
from .auth import clear_session_cookie
from .config import Settings
from .database import Base, build_engine, build_session_factory
from .logging_config import configure_logging
from .routes import auth as auth_routes
from .routes import pages as pages_routes
from .routes import todos as todos_routes
from .security import PasswordHasher, TokenService
from .templating import render, wants_html

logger = logging.getLogger(__name__)


def _error_page(request: Request, status_code: int, detail: str):
    if wants_html(request):
        template_name = "errors/404.html" if status_code == 404 else "errors/generic.html"
        return render(
            request,
            template_name,
            {"detail": detail, "status_code": status_code, "page_title": f"Error {status_code}"},
            status_code=status_code,
        )
    return JSONResponse({"detail": detail}, status_code=status_code)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        detail = exc.detail if exc.status_code != 404 else "Nothing to see here"
        return _error_page(request, exc.status_code, detail)

    @app.exception_handler(errors.NotFound)
    async def not_found_handler(request: Request, exc: errors.NotFound):
        return _error_page(request, status.HTTP_404_NOT_FOUND, "Task not found")

    @app.exception_handler(errors.AuthError)
    async def auth_error_handler(request: Request, exc: errors.AuthError):
        settings = request.app.state.settings
        if wants_html(request):
            response = RedirectResponse(url="/login", status_code=status.HTTP_303_SEE_OTHER)
        else:
            response = JSONResponse(
                {"detail": "You are not logged in, please provide a valid token."},
                status_code=status.HTTP_401_UNAUTHORIZED,
            )
        if settings.cookie_name in request.cookies:
            clear_session_cookie(response, settings)
        return response

    @app.exception_handler(errors.ValidationError)
    async def validation_error_handler(request: Request, exc: errors.ValidationError):
        if wants_html(request):
            return _error_page(request, status.HTTP_400_BAD_REQUEST, " ".join(exc.messages))
        return JSONResponse({"detail": exc.messages}, status_code=status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(errors.StorageError)
    async def storage_error_handler(request: Request, exc: errors.StorageError):
        logger.exception("Storage failure", exc_info=exc)
        return _error_page(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled application error", exc_info=exc)
        return _error_page(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the application; a missing or malformed setting aborts startup."""
    if settings is None:
        settings = Settings()
    configure_logging(settings.log_level)

    engine = build_engine(settings.database_url, settings.db_pool_size, settings.db_max_overflow)

    app = FastAPI(title=settings.app_name)
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.hasher = PasswordHasher(
        time_cost=settings.password_time_cost,
        memory_cost=settings.password_memory_cost,
        parallelism=settings.password_parallelism,
    )
    app.state.tokens = TokenService(
        secret=settings.jwt_secret,
        ttl=timedelta(minutes=settings.jwt_ttl_minutes),
        algorithm=settings.jwt_algorithm,
    )

    @app.on_event("startup")
    def on_startup() -> None:
        Base.metadata.create_all(bind=engine)
        logger.info("Database schema ready")

    @app.on_event("shutdown")
    def on_shutdown() -> None:
        engine.dispose()

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response

    _register_exception_handlers(app)

    app.include_router(pages_routes.router)
    app.include_router(auth_routes.router)
    app.include_router(todos_routes.router)
    return app
