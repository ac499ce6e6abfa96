# repairhub/api/v1/auth.py

from __future__ import annotations

import logging

from fastapi import APIRouter, Body, HTTPException, status

from repairhub.config import settings
from repairhub.core.auth.schemas import Token, TestLoginRequest
from repairhub.core.auth.security import create_access_token

router = APIRouter(prefix="/v1/auth", tags=["Authentication & Testing"])
log = logging.getLogger(__name__)


@router.post(
    "/login/test",
    response_model=Token,
    summary="[Development Only] Get JWT for a customer or centro",
    description=(
        "**WARNING:** Use only for development/testing. "
        "Returns a JWT for the given subject and role. "
        "Disabled when ENVIRONMENT=prod."
    ),
)
async def test_login_for_access_token(login_data: TestLoginRequest = Body(...)) -> Token:
    if settings.ENVIRONMENT == "prod":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not Found")
    log.warning(
        "Executing TEST login for sub=%s role=%s. Ensure this is NOT production!",
        login_data.subject, login_data.role.value,
    )
    claims = {"subject": login_data.subject, "role": login_data.role}
    if login_data.centro_id:
        claims["centro_id"] = login_data.centro_id
    try:
        access_token = create_access_token(data=claims)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e
    return Token(access_token=access_token, token_type="bearer")
