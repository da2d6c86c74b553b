from typing import Optional, Dict, Any
from jose import JWTError, jwt
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
import logging
from .config import get_settings
from .database import get_db
from . import models, crud


security_logger = logging.getLogger("security")

# Tokens are issued by the back-office identity service; this service only verifies them
bearer_scheme = HTTPBearer(auto_error=False)


def verify_token(token: str, token_type: str = "access") -> Optional[Dict[str, Any]]:
    """Verify and decode JWT token"""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])

        if payload.get("type") != token_type:
            return None

        return payload
    except JWTError:
        return None


# Dependencies for FastAPI
async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: Session = Depends(get_db)
) -> models.User:
    """Resolve the bearer token to an active user."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if credentials is None:
        raise credentials_exception

    payload = verify_token(credentials.credentials, "access")
    if not payload:
        security_logger.warning(f"Rejected token on {request.url.path}")
        raise credentials_exception

    username = payload.get("sub")
    if not username:
        raise credentials_exception

    try:
        user = crud.get_user_by_username(db, username=username)
    except crud.CRUDError:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Authentication backend unavailable")
    if not user:
        raise credentials_exception

    if not user.is_active:
        crud.create_audit_log(
            db=db,
            user_id=user.id,
            action="ACCESS_DENIED",
            category="AUTH",
            severity="WARN",
            details=f"Inactive account tried to reach {request.url.path}",
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive"
        )

    return user


def require_role(*allowed_roles: str):
    """Decorator factory for role-based access control"""
    def role_dependency(current_user: models.User = Depends(get_current_user)) -> models.User:
        if current_user.role.value not in allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required roles: {', '.join(allowed_roles)}"
            )
        return current_user

    return role_dependency


# Specific role dependencies
require_admin = require_role("admin")
require_scheduler = require_role("admin", "coordinator")
