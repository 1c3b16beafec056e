import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from .api import admin, audit, deadlines, nca, notifications, organizations, supervision, supplier, system
from .config import Base, engine, settings
from .core.errors import register_exception_handlers
from .core.logging import configure_logging
from .core.request_context import REQUEST_ID_HEADER, assign_request_id
from .core.security import SecurityHeadersMiddleware, log_security_warnings

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Caelex Compliance API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware, enable_hsts=settings.app_env == "production")

register_exception_handlers(app)


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    request_id = assign_request_id(request)
    response = await call_next(request)
    response.headers[REQUEST_ID_HEADER] = request_id
    return response


@app.on_event("startup")
def startup() -> None:
    # Dev convenience; production schemas are managed outside the app.
    Base.metadata.create_all(bind=engine)
    log_security_warnings(settings.jwt_secret, settings.app_env, settings.cors_allow_origins, settings.database_url)
    logger.info("Caelex API started (env=%s)", settings.app_env)


app.include_router(deadlines.router, prefix="/deadlines", tags=["deadlines"])
app.include_router(nca.router, prefix="/nca", tags=["nca"])
app.include_router(organizations.router, prefix="/organizations", tags=["organizations"])
app.include_router(organizations.invitations_router, prefix="/invitations", tags=["organizations"])
app.include_router(notifications.router, prefix="/notifications", tags=["notifications"])
app.include_router(audit.router, prefix="/audit", tags=["audit"])
app.include_router(supervision.router, prefix="/supervision", tags=["supervision"])
app.include_router(supplier.portal_router, prefix="/supplier", tags=["supplier-portal"])
app.include_router(supplier.router, tags=["supplier-portal"])
app.include_router(admin.router, prefix="/admin", tags=["admin"])
app.include_router(system.router, prefix="/system", tags=["system"])
