"""
GitHub OAuth client.

Exchanges an authorization code for a provider access token and fetches the
authenticated user's profile. All failures surface as ``UpstreamError``; a
structured OAuth error from GitHub (bad or expired code) surfaces as the
``ProviderRejected`` subtype.
"""

import logging
from typing import Any, Union

import httpx
from pydantic import ValidationError

from app.core.errors import ProviderRejected, UpstreamError
from app.schemas.auth import GitHubAccessToken, GitHubOAuthError, GitHubUser

logger = logging.getLogger(__name__)

GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"
GITHUB_USER_URL = "https://api.github.com/user"
USER_AGENT = "auth-api"

TokenResponse = Union[GitHubAccessToken, GitHubOAuthError]


def parse_token_response(data: Any) -> TokenResponse:
    """
    Decode the token endpoint reply: the success shape is tried first, then
    the error shape. Anything else is an upstream failure.
    """
    try:
        return GitHubAccessToken.model_validate(data)
    except ValidationError:
        pass
    try:
        return GitHubOAuthError.model_validate(data)
    except ValidationError as e:
        raise UpstreamError("GitHub token response deserialization error") from e


class GitHubClient:
    """Thin async client over an injected ``httpx.AsyncClient``."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        client_id: str,
        client_secret: str,
        token_url: str = GITHUB_TOKEN_URL,
        user_url: str = GITHUB_USER_URL,
    ):
        self.http = http
        self.client_id = client_id
        self.client_secret = client_secret
        self.token_url = token_url
        self.user_url = user_url

    async def exchange(self, code: str) -> str:
        """Trade an authorization code for a GitHub access token."""
        params = {
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "code": code,
        }
        try:
            response = await self.http.post(
                self.token_url,
                data=params,
                headers={"Accept": "application/json"},
            )
            data = response.json()
        except httpx.HTTPError as e:
            raise UpstreamError(f"Unable to contact GitHub: {e}") from e
        except ValueError as e:
            raise UpstreamError("GitHub returned invalid JSON") from e

        parsed = parse_token_response(data)
        if isinstance(parsed, GitHubOAuthError):
            logger.warning(
                f"GitHub OAuth error: {parsed.error} - {parsed.error_description}. "
                f"URI: {parsed.error_uri}"
            )
            raise ProviderRejected(f"GitHub returned an error: {parsed.error_description}")
        return parsed.access_token

    async def fetch_profile(self, access_token: str) -> GitHubUser:
        try:
            response = await self.http.get(
                self.user_url,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/vnd.github+json",
                    "User-Agent": USER_AGENT,
                },
            )
            response.raise_for_status()
            user = GitHubUser.model_validate(response.json())
        except httpx.HTTPError as e:
            raise UpstreamError(f"GitHub user request failed: {e}") from e
        except (ValueError, ValidationError) as e:
            raise UpstreamError(f"GitHub user response error: {e}") from e

        logger.info(f"Successfully fetched user info from GitHub for user_id: {user.id}")
        return user
