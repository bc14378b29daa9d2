import uuid
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import RequestEngineError
from app.db.database import get_db
from app.services import capability_policy as policy
from app.services.principal_service import Identity, PrincipalService

bearer_scheme = HTTPBearer(auto_error=False)


def http_error(error: RequestEngineError) -> HTTPException:
    """Translate an engine error into the HTTP response carrying its short message."""
    headers = {"WWW-Authenticate": "Bearer"} if error.status_code == 401 else None
    return HTTPException(status_code=error.status_code, detail=error.message, headers=headers)


def decode_identity(token: str) -> Identity:
    payload = jwt.decode(
        token,
        settings.JWT_SECRET_KEY,
        algorithms=[settings.JWT_ALGORITHM],
    )
    if payload.get("type") and payload.get("type") != "access":
        raise JWTError("Not an access token")
    sub = payload.get("sub")
    if not sub:
        raise JWTError("Missing subject")
    return Identity(
        user_id=uuid.UUID(sub),
        auth_level=int(payload.get("auth_level", 0)),
        account_verified=bool(payload.get("account_verified", False)),
    )


async def get_current_identity(
    cred: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Identity:
    if cred is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_identity(cred.credentials)
    except (JWTError, ValueError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_admin(
    identity: Identity = Depends(get_current_identity),
    db: AsyncSession = Depends(get_db),
) -> Identity:
    """Checks the stored level, not the token's claim."""
    try:
        _, principal = await PrincipalService.load(db, identity)
    except RequestEngineError as e:
        raise http_error(e)
    if not policy.can_update_user_permissions(principal.auth_level) or principal.is_banned:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return identity
