"""FastAPI dependencies: the service container and the back-office key check.

The admin key travels as a Bearer token. There are no user accounts: the
customer side of the API is anonymous and keyed by chat session id.
"""
import secrets
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.audit import AuditLog
from app.core.config import settings
from app.services.container import Services

security = HTTPBearer(auto_error=False)


def get_services(request: Request) -> Services:
    """Container built in the app lifespan."""
    return request.app.state.services


def require_admin(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """
    Reject unless the Bearer token equals ADMIN_API_KEY.
    An unset key rejects every request.
    """
    client_ip = request.client.host if request.client else None
    expected = settings.ADMIN_API_KEY

    if credentials is None:
        AuditLog.log_access_denied(request.url.path, client_ip, "missing token")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not expected or not secrets.compare_digest(credentials.credentials, expected):
        AuditLog.log_access_denied(request.url.path, client_ip, "invalid admin key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed",
            headers={"WWW-Authenticate": "Bearer"},
        )
