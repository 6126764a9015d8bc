from typing import List, Optional
from uuid import UUID
import logging
import time

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError
from pydantic import BaseModel

from ..core.config import settings

# Set up logging
logger = logging.getLogger(__name__)

# Submissions may be anonymous, so a missing header is not an error
security = HTTPBearer(auto_error=False)


class User(BaseModel):
    """Authenticated caller decoded from a bearer JWT."""
    id: UUID
    email: Optional[str] = None
    name: Optional[str] = None
    roles: List[str] = []


def decode_access_token(token: str) -> User:
    """Validate a bearer token and build the caller identity from its claims."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"[AUTH] Failed to decode token: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    exp = payload.get("exp")
    if exp is not None and exp < time.time():
        logger.warning(f"[AUTH] Token is expired: exp={exp}, now={time.time()}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token is expired",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user_id = payload.get("sub")
    try:
        user_uuid = UUID(str(user_id))
    except (TypeError, ValueError):
        logger.warning(f"[AUTH] Token subject is not a user id: {user_id!r}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token subject is invalid",
            headers={"WWW-Authenticate": "Bearer"},
        )

    roles = payload.get("roles") or payload.get("realm_access", {}).get("roles", [])
    user = User(
        id=user_uuid,
        email=payload.get("email"),
        name=payload.get("name") or payload.get("preferred_username"),
        roles=list(roles),
    )
    logger.debug(f"[AUTH] User info extracted: id={user.id}, email={user.email}")
    return user


async def get_optional_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[User]:
    """Return the caller when a bearer token is present, ``None`` for anonymous requests."""
    if credentials is None:
        return None
    return decode_access_token(credentials.credentials)
