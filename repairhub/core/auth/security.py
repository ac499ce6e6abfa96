# repairhub/core/auth/security.py

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from jose import jwt, JWTError
from pydantic import ValidationError

from repairhub.config import settings

from .schemas import Role, TokenData

log = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/v1/auth/login/test")


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    """
    Create a signed JWT access token.

    Args:
        data (dict): payload; ``subject`` is moved to the standard ``sub`` claim.
        expires_delta (timedelta | None, optional): token lifetime, defaults to
            ``JWT_ACCESS_TOKEN_EXPIRE_MINUTES``.

    Returns:
        str: the encoded token.
    """
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode["exp"] = expire
    if "subject" in to_encode:
        to_encode["sub"] = str(to_encode.pop("subject"))
    elif "sub" not in to_encode:
        raise ValueError("Missing 'subject' or 'sub' in data for JWT")
    if isinstance(to_encode.get("role"), Role):
        to_encode["role"] = to_encode["role"].value

    encoded_jwt = jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    log.debug("Created JWT token for sub: %s", to_encode["sub"])
    return encoded_jwt


def verify_token(token: str, credentials_exception: HTTPException) -> TokenData:
    """
    Decode and validate a JWT.

    Raises:
        HTTPException: ``credentials_exception`` if the token is invalid or expired.
    """
    try:
        payload: dict[str, Any] = jwt.decode(
            token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
        )
        subject: str | None = payload.get("sub")
        if subject is None:
            log.warning("Token verification failed: 'sub' claim missing.")
            raise credentials_exception
        token_data = TokenData(
            subject=subject,
            role=payload.get("role", Role.CUSTOMER.value),
            centro_id=payload.get("centro_id"),
        )
    except JWTError as e:
        log.warning("Token verification failed: JWTError - %s", e)
        raise credentials_exception from e
    except ValidationError as e:
        log.warning("Token verification failed: ValidationError - %s", e)
        raise credentials_exception from e

    log.debug("Token verified for sub=%s role=%s", token_data.subject, token_data.role.value)
    return token_data


async def get_current_principal(token: str = Depends(oauth2_scheme)) -> TokenData:
    """FastAPI dependency: claims of the bearer token on the request."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    return verify_token(token, credentials_exception)


def ensure_customer_access(principal: TokenData, customer_id: str, centro_id: str) -> None:
    """
    Tenant check mirroring the row-level policies of the hosted database:
    customers see themselves, centro staff see customers of their centro.
    """
    if principal.role is Role.CUSTOMER and principal.subject == customer_id:
        return
    if principal.role is Role.CENTRO and principal.centro_id == centro_id:
        return
    log.warning(
        "Access denied: sub=%s role=%s for customer '%s' at centro '%s'",
        principal.subject, principal.role.value, customer_id, centro_id,
    )
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed to access this customer")
