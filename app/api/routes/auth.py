"""Authentication endpoints."""

import logging

from fastapi import APIRouter, Request, Response

from app.core.dependencies import AuthDeps, GitHub
from app.schemas.auth import GitHubTokenRequest, MessageResponse

logger = logging.getLogger(__name__)
router = APIRouter()


# ─────────────────────────────────────────────
# GitHub Login
# ─────────────────────────────────────────────

@router.post("/github/token", response_model=MessageResponse)
async def github_token(
    body: GitHubTokenRequest,
    response: Response,
    auth: AuthDeps,
    github: GitHub,
):
    """
    Exchange a GitHub authorization code for a session.

    Sets the access and refresh cookies.
    """
    logger.info("Processing POST /api/v1/auth/github/token")
    cookies = await auth.login_with_github(github, body.code, body.redirect_to)
    cookies.apply(response)
    return MessageResponse(message="Logged in")


# ─────────────────────────────────────────────
# Refresh Token (Rotation)
# ─────────────────────────────────────────────

@router.post("/refresh", response_model=MessageResponse)
async def refresh_token(request: Request, response: Response, auth: AuthDeps):
    """
    Rotate the refresh cookie and issue a new access cookie.
    A refresh token can be used exactly once.
    """
    logger.info("Processing POST /api/v1/auth/refresh")
    cookies = await auth.refresh(request.headers.get("cookie"))
    cookies.apply(response)
    return MessageResponse(message="Tokens refreshed")


# ─────────────────────────────────────────────
# Logout
# ─────────────────────────────────────────────

@router.post("/logout", response_model=MessageResponse)
async def logout(request: Request, response: Response, auth: AuthDeps):
    """Revoke the refresh token if present and always clear both cookies."""
    logger.info("Processing POST /api/v1/auth/logout")
    cookies = await auth.logout(request.headers.get("cookie"))
    cookies.apply(response)
    return MessageResponse(message="Logged out")
