"""Pydantic schemas for API request/response validation."""

from app.schemas.auth import (
    AppConfigResponse,
    GitHubTokenRequest,
    MeResponse,
    MessageResponse,
)

__all__ = [
    "AppConfigResponse",
    "GitHubTokenRequest",
    "MeResponse",
    "MessageResponse",
]
