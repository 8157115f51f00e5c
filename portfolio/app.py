import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from portfolio.core.config import get_settings
from portfolio.domain.errors import ServiceError
from portfolio.routers import records as records_router
from portfolio.routers import users as users_router

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    "validation": 400,
    "unauthorized": 401,
    "forbidden": 403,
    "not_found": 404,
    "conflict": 409,
    "internal": 500,
}

# Context keys that are safe to echo back to clients.
PUBLIC_CONTEXT = ("entity", "field")


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Inject baseline security headers for a JSON API."""

    def __init__(self, app, *, enforce_hsts: bool) -> None:
        super().__init__(app)
        self._enforce_hsts = enforce_hsts

    async def dispatch(self, request, call_next):
        response = await call_next(request)
        response.headers.setdefault("Content-Security-Policy", "default-src 'none'; frame-ancestors 'none'")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        if self._enforce_hsts:
            response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        return response


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    status = STATUS_BY_KIND.get(exc.kind, 500)
    if status >= 500:
        logger.error("%s %s failed: %r", request.method, request.url.path, exc, exc_info=exc)
        return JSONResponse({"error": exc.kind, "detail": "Internal error"}, status_code=status)
    body = {"error": exc.kind, "detail": exc.message}
    body.update({k: exc.context[k] for k in PUBLIC_CONTEXT if k in exc.context})
    return JSONResponse(body, status_code=status)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse({"error": "validation", "detail": "Malformed request body"}, status_code=400)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def create_app() -> FastAPI:
    """Factory compatible with uvicorn/gunicorn (--factory)."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(title="Portfolio Profile API")

    allowed_cors = {settings.service_url}
    if settings.app_env != "prod":
        allowed_cors.update(
            {
                "http://localhost:3000",
                "http://127.0.0.1:3000",
            }
        )
    allowed_cors = {origin for origin in allowed_cors if origin}
    if allowed_cors:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=sorted(allowed_cors),
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["*"],
        )
    app.add_middleware(SecurityHeadersMiddleware, enforce_hsts=settings.app_env == "prod")

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(users_router.router)
    for router in records_router.routers:
        app.include_router(router)

    logger.info("Portfolio API ready (env=%s)", settings.app_env)
    return app


app = create_app()
