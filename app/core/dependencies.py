"""
FastAPI dependency providers.

The signing secret and the pooled session factory are the only shared state;
everything else is built per request from them.
"""

from datetime import timedelta
from typing import Annotated, AsyncGenerator

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.core.config import Settings, get_settings
from app.db.session import AsyncSessionLocal
from app.services.auth_service import AuthService
from app.services.cookies import CookieCodec
from app.services.github import GitHubClient
from app.services.rotation import RotationValidator
from app.services.token_issuer import AccessCredential, TokenIssuer
from app.services.token_store import TokenStore
from app.services.user_directory import UserDirectory

AppSettings = Annotated[Settings, Depends(get_settings)]


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return AsyncSessionLocal


SessionFactory = Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)]


def get_token_issuer(settings: AppSettings) -> TokenIssuer:
    return TokenIssuer(
        secret=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        access_ttl=timedelta(minutes=settings.access_token_expire_minutes),
        refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
    )


def get_token_store(session_factory: SessionFactory) -> TokenStore:
    return TokenStore(session_factory)


def get_user_directory(session_factory: SessionFactory) -> UserDirectory:
    return UserDirectory(session_factory)


def get_cookie_codec(settings: AppSettings) -> CookieCodec:
    return CookieCodec(
        access_name=settings.access_cookie_name,
        refresh_name=settings.refresh_cookie_name,
        access_path=settings.access_cookie_path,
        refresh_path=settings.refresh_cookie_path,
        domain=settings.cookie_domain,
    )


async def get_github_client(settings: AppSettings) -> AsyncGenerator[GitHubClient, None]:
    async with httpx.AsyncClient(
        timeout=settings.github_timeout_seconds,
        follow_redirects=False,
    ) as http:
        yield GitHubClient(
            http,
            client_id=settings.github_client_id,
            client_secret=settings.github_client_secret,
            token_url=settings.github_token_url,
            user_url=settings.github_user_url,
        )


def get_rotation_validator(
    settings: AppSettings,
    issuer: Annotated[TokenIssuer, Depends(get_token_issuer)],
    store: Annotated[TokenStore, Depends(get_token_store)],
) -> RotationValidator:
    return RotationValidator(
        issuer, store, revoke_all_on_replay=settings.revoke_all_on_replay
    )


def get_auth_service(
    settings: AppSettings,
    rotation: Annotated[RotationValidator, Depends(get_rotation_validator)],
    cookies: Annotated[CookieCodec, Depends(get_cookie_codec)],
    users: Annotated[UserDirectory, Depends(get_user_directory)],
) -> AuthService:
    return AuthService(
        rotation=rotation,
        cookies=cookies,
        users=users,
        allowed_redirects=settings.allowed_redirects_list,
        default_redirect=settings.default_redirect,
    )


AuthDeps = Annotated[AuthService, Depends(get_auth_service)]
GitHub = Annotated[GitHubClient, Depends(get_github_client)]


def get_current_session(request: Request, auth: AuthDeps) -> AccessCredential:
    """Verify the access cookie of the incoming request."""
    return auth.authenticate(request.headers.get("cookie"))


CurrentSession = Annotated[AccessCredential, Depends(get_current_session)]
