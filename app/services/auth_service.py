"""Authentication Service — GitHub login, refresh token rotation, logout."""

import logging
from typing import Optional, Sequence

from app.core.errors import MissingCredential, RedirectNotAllowed
from app.services.cookies import CookieCodec, SessionCookies
from app.services.github import GitHubClient
from app.services.redirects import is_allowed_redirect
from app.services.rotation import RotationValidator
from app.services.token_issuer import AccessCredential
from app.services.user_directory import UserDirectory

logger = logging.getLogger(__name__)


class AuthService:
    """Wires the identity provider, user directory and token subsystem together."""

    def __init__(
        self,
        rotation: RotationValidator,
        cookies: CookieCodec,
        users: UserDirectory,
        allowed_redirects: Sequence[str] = (),
        default_redirect: str = "",
    ):
        self.rotation = rotation
        self.cookies = cookies
        self.users = users
        self.allowed_redirects = list(allowed_redirects)
        self.default_redirect = default_redirect

    # ─── Login ──────────────────────────────────
    async def login_with_github(
        self, github: GitHubClient, code: str, redirect_to: Optional[str] = None
    ) -> SessionCookies:
        target = redirect_to or self.default_redirect
        if not is_allowed_redirect(target, self.allowed_redirects):
            logger.info(f"Rejected login redirect target: {target}")
            raise RedirectNotAllowed("Redirect target is not allowed")

        provider_token = await github.exchange(code)
        profile = await github.fetch_profile(provider_token)

        await self.users.upsert(
            user_id=profile.id,
            username=profile.login,
            display_name=profile.login,
            avatar_url=profile.avatar_url,
        )

        tokens = await self.rotation.issue_session(str(profile.id))
        logger.info(f"Issued session for user_id: {profile.id}")
        return self.cookies.encode(tokens)

    # ─── Refresh (Rotation) ─────────────────────
    async def refresh(self, cookie_header: Optional[str]) -> SessionCookies:
        raw = self.cookies.decode(cookie_header, self.cookies.refresh_name)
        tokens = await self.rotation.rotate(raw)
        return self.cookies.encode(tokens)

    # ─── Logout ─────────────────────────────────
    async def logout(self, cookie_header: Optional[str]) -> SessionCookies:
        raw = self.cookies.decode(cookie_header, self.cookies.refresh_name)
        revoked = await self.rotation.logout(raw)
        logger.info(f"Logout processed (refresh token revoked: {revoked})")
        return self.cookies.clear()

    # ─── Current session ────────────────────────
    def authenticate(self, cookie_header: Optional[str]) -> AccessCredential:
        raw = self.cookies.decode(cookie_header, self.cookies.access_name)
        if not raw:
            raise MissingCredential("Missing access token")
        return self.rotation.issuer.verify_access(raw)
