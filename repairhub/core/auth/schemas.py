# repairhub/core/auth/schemas.py

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, model_validator


class Role(str, Enum):
    CUSTOMER = "customer"
    CENTRO = "centro"


class Token(BaseModel):
    """JWT returned to the client."""
    access_token: str
    token_type: str = "bearer"


class TokenData(BaseModel):
    """
    Claims carried by a verified token.

    A ``customer`` token may only touch its own rows (``subject`` is the
    customer id); a ``centro`` token may touch every customer of ``centro_id``.
    """
    subject: str = Field(..., description="Customer id or centro staff id ('sub' claim)")
    role: Role = Field(Role.CUSTOMER)
    centro_id: str | None = Field(None, description="Centro the staff token belongs to")

    @model_validator(mode="after")
    def centro_tokens_need_centro(self) -> "TokenData":
        if self.role is Role.CENTRO and not self.centro_id:
            raise ValueError("centro tokens must carry a centro_id claim")
        return self


class TestLoginRequest(BaseModel):
    """Body of the development-only login endpoint."""
    subject: str = Field(..., description="Customer id (or staff id) to log in as")
    role: Role = Field(Role.CUSTOMER)
    centro_id: str | None = None
