import logging
from typing import Iterable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = "dev-secret-please-change"
# JSON-only API: nothing should ever be framed or execute scripts
API_CSP = "default-src 'none'; frame-ancestors 'none'"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach security headers to every response.

    Compliance data is never cacheable, so authenticated responses get
    ``Cache-Control: no-store``. The public health probe is left alone.
    """

    def __init__(
        self,
        app,
        *,
        enable_hsts: bool = True,
        csp: Optional[str] = API_CSP,
        cacheable_paths: Iterable[str] = ("/system/health", "/system/version"),
    ) -> None:
        super().__init__(app)
        self.enable_hsts = enable_hsts
        self.csp = csp
        self.cacheable_paths = frozenset(cacheable_paths)

    async def dispatch(self, request: Request, call_next):  # type: ignore[override]
        response = await call_next(request)
        headers = response.headers

        headers.setdefault("X-Content-Type-Options", "nosniff")
        headers.setdefault("X-Frame-Options", "DENY")
        headers.setdefault("Referrer-Policy", "no-referrer")
        if request.url.path not in self.cacheable_paths:
            headers.setdefault("Cache-Control", "no-store")
        if self.enable_hsts:
            headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
        if self.csp:
            headers.setdefault("Content-Security-Policy", self.csp)

        return response


def log_security_warnings(jwt_secret: str, app_env: str, cors_origins: Iterable[str] = (), database_url: str = "") -> None:
    """Warn at startup about settings that are only acceptable on a laptop."""
    if app_env == "development":
        return
    if jwt_secret == DEFAULT_JWT_SECRET:
        logger.warning("JWT secret is the development default (env=%s); set JWT_SECRET.", app_env)
    if "*" in set(cors_origins):
        logger.warning("CORS allows any origin while credentials are enabled (env=%s).", app_env)
    if database_url.startswith("sqlite"):
        logger.warning("SQLite database in use outside development (env=%s).", app_env)
