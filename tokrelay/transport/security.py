# tokrelay/transport/security.py
"""
Operator authentication for the /admin routes.

A single shared ADMIN_TOKEN, sent as `Authorization: Bearer <token>`.
Unset token means the admin surface is closed (503), never open.
"""
import secrets

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tokrelay.config import settings
from tokrelay.infra.logging_config import get_logger
from tokrelay.infra.metrics import RelayMetrics

logger = get_logger(__name__)

MIN_TOKEN_LENGTH = 32
MIN_DISTINCT_CHARS = 8

admin_bearer = HTTPBearer(scheme_name="Admin Token", auto_error=False)


def validate_token_strength(token: str, token_name: str = "token") -> list[str]:
    """Weakness warnings for a configured token; empty when it looks random enough."""
    problems = []
    if len(token) < MIN_TOKEN_LENGTH:
        problems.append(f"{token_name} is shorter than {MIN_TOKEN_LENGTH} characters")
    if len(set(token)) < MIN_DISTINCT_CHARS:
        problems.append(f"{token_name} has very low character variety")
    return problems


def check_admin_token() -> None:
    """Startup check: log how the admin surface is protected."""
    if not settings.admin_token:
        logger.warning("ADMIN_TOKEN not set: /admin routes will answer 503")
        return
    for problem in validate_token_strength(settings.admin_token, "ADMIN_TOKEN"):
        logger.warning(f"SECURITY: {problem}")


async def require_admin_auth(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(admin_bearer),
) -> None:
    """
    Route dependency for operator endpoints.

    Usage:
        @app.post("/admin/queue/drain", dependencies=[Depends(require_admin_auth)])
    """
    expected = settings.admin_token
    if not expected:
        logger.critical(f"Admin route {request.url.path} called but ADMIN_TOKEN is not configured")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Service unavailable")

    presented = credentials.credentials if credentials else ""
    if presented and secrets.compare_digest(presented.encode(), expected.encode()):
        return

    RelayMetrics.admin_auth_failed()
    logger.warning(
        f"Admin auth rejected: {request.method} {request.url.path} "
        f"({'bad token' if presented else 'no bearer token'})"
    )
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )
