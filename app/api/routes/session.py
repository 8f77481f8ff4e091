"""Current-session and client configuration endpoints."""

import logging

from fastapi import APIRouter

from app.core.dependencies import AppSettings, CurrentSession
from app.schemas.auth import AppConfigResponse, MeResponse

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/me", response_model=MeResponse)
async def me(session: CurrentSession):
    """Return the authenticated user id and the presented access token."""
    return MeResponse(user_id=session.subject, access_token=session.token)


@router.get("/config", response_model=AppConfigResponse)
async def get_config(settings: AppSettings):
    """Expose the redirect origins the frontend may use."""
    logger.info("Serving app configuration")
    return AppConfigResponse(allowed_redirect_origins=settings.allowed_redirects_list)
