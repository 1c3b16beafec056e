from typing import Optional

from fastapi import Depends, Request, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from ..api.dependencies import get_db
from ..config import settings
from ..core.errors import UnauthenticatedError
from ..core.request_context import RequestContext, get_client_ip, get_request_id
from ..models.models import User

bearer_scheme = HTTPBearer(auto_error=False)


def _unauthorized() -> UnauthenticatedError:
    return UnauthenticatedError("Unauthorized")


def decode_token(token: str) -> dict:
    """Verify a bearer token issued by the identity provider."""
    options = {"verify_aud": settings.jwt_audience is not None}
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        audience=settings.jwt_audience,
        options=options,
    )


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    if not credentials or credentials.scheme.lower() != "bearer":
        raise _unauthorized()
    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise _unauthorized()
    user_id: Optional[str] = payload.get("sub")
    if not user_id:
        raise _unauthorized()

    user = db.query(User).filter(User.id == str(user_id)).first()
    if user is None or not user.is_active:
        raise _unauthorized()
    return user


def get_request_context(request: Request, user: User = Depends(get_current_user)) -> RequestContext:
    return RequestContext(
        user_id=user.id,
        role=user.role,
        request_id=get_request_id(request),
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )


def require_roles(*allowed_roles: str):
    allowed = set(allowed_roles)

    def role_checker(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
        if not allowed or ctx.role in allowed:
            return ctx
        raise _unauthorized()

    return role_checker
