"""Verified token claims."""

from typing import Any

from pydantic import BaseModel, Field


class TokenClaims(BaseModel):
    """Claims of a JWT whose signature and registered claims were verified."""

    raw_token: str = Field(repr=False, description="The verified token")
    issuer: str = Field(description="iss claim")
    subject: str = Field(description="sub claim")
    audience: str | list[str] = Field(default_factory=list, description="aud claim")
    expires_at: int = Field(description="exp claim")
    issued_at: int = Field(description="iat claim")
    not_before: int | None = Field(default=None, description="nbf claim")
    jti: str | None = Field(default=None, description="Token id")
    email: str | None = Field(default=None)
    email_verified: bool = Field(default=False)
    name: str | None = Field(default=None)
    custom_claims: dict[str, Any] = Field(
        default_factory=dict, description="Claims not mapped to a field"
    )
