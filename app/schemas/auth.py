"""Request/response schemas for the auth endpoints and GitHub payloads."""

from typing import List, Optional

from pydantic import BaseModel, Field


# ─── API ─────────────────────────────────────

class GitHubTokenRequest(BaseModel):
    """Body of POST /auth/github/token."""
    code: str = Field(min_length=1)
    redirect_to: Optional[str] = None


class MeResponse(BaseModel):
    user_id: str
    access_token: str


class AppConfigResponse(BaseModel):
    allowed_redirect_origins: List[str]


class MessageResponse(BaseModel):
    """Simple message response."""
    message: str


# ─── GitHub ──────────────────────────────────

class GitHubAccessToken(BaseModel):
    """Successful reply from the OAuth token endpoint."""
    access_token: str
    token_type: Optional[str] = None
    scope: Optional[str] = None


class GitHubOAuthError(BaseModel):
    """Structured error reply from the OAuth token endpoint."""
    error: str
    error_description: str = ""
    error_uri: Optional[str] = None


class GitHubUser(BaseModel):
    id: int
    login: str
    avatar_url: Optional[str] = None
