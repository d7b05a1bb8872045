"""Pydantic models for broker requests and responses."""

from pydantic import BaseModel, Field, field_validator


class _TokenGrantRequest(BaseModel):
    """Fields are stripped; blank values are rejected."""

    @field_validator("*")
    @classmethod
    def not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be blank")
        return value


class ExchangeRequest(_TokenGrantRequest):
    """Body of ``POST /v1/oauth/exchange``."""

    code: str = Field(..., description="Authorization code from the OAuth callback")
    code_verifier: str = Field(..., description="PKCE code verifier")
    redirect_uri: str = Field(..., description="Redirect URI used at authorization")


class RefreshRequest(_TokenGrantRequest):
    """Body of ``POST /v1/oauth/refresh``."""

    refresh_token: str = Field(..., description="Refresh token to redeem")


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str = Field(default="ok", description="Service health status")


class ErrorResponse(BaseModel):
    """Error produced by the broker itself (not passed through from upstream)."""

    detail: str = Field(..., description="Human-readable error message")
