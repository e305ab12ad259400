from __future__ import annotations

import logging

from fastapi import Header, Request

from .auth import CredentialService
from .errors import Forbidden, InvalidToken, RateLimited, Unauthorized
from .ratelimit import RateLimiter
from .services import AuthContext, AuthService, TodoService

logger = logging.getLogger(__name__)


def get_credentials(request: Request) -> CredentialService:
    return request.app.state.credentials


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_todo_service(request: Request) -> TodoService:
    return request.app.state.todo_service


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter


def resolve_auth(authorization: str | None, credentials: CredentialService) -> AuthContext:
    """Bearer header -> AuthContext. Touches no store."""
    if not authorization or not authorization.startswith("Bearer "):
        raise Unauthorized()
    token = authorization[len("Bearer "):].strip()
    try:
        claims = credentials.verify_token(token)
    except InvalidToken as exc:
        logger.info("Rejected bearer token", extra={"reason": str(exc)})
        raise Forbidden(auth_shape=True) from None
    return AuthContext(user_id=claims.user_id, email=claims.email)


def require_auth(request: Request, authorization: str | None = Header(default=None)) -> AuthContext:
    return resolve_auth(authorization, get_credentials(request))


def client_ip(request: Request) -> str:
    # trust the first proxy hop, like `trust proxy = 1`
    fwd = request.headers.get("x-forwarded-for")
    if fwd:
        return fwd.split(",")[-1].strip()
    return request.client.host if request.client else "unknown"


def rate_limit(request: Request) -> None:
    hit = get_rate_limiter(request).hit(client_ip(request))
    if not hit.allowed:
        logger.warning("Rate limit exceeded", extra={"ip": client_ip(request)})
        raise RateLimited(limit=hit.limit, reset_s=hit.reset_s)
