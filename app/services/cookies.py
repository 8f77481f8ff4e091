"""Transport encoding of session tokens as cookies."""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Optional

from starlette.requests import cookie_parser
from starlette.responses import Response

from app.services.token_issuer import TokenPair

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class CookieSpec:
    """A single Set-Cookie directive."""
    name: str
    value: str
    path: str
    domain: Optional[str] = None
    expires: Optional[datetime] = None
    secure: bool = True
    httponly: bool = True
    samesite: str = "none"

    def apply(self, response: Response) -> None:
        response.set_cookie(
            key=self.name,
            value=self.value,
            expires=self.expires,
            path=self.path,
            domain=self.domain,
            secure=self.secure,
            httponly=self.httponly,
            samesite=self.samesite,
        )

    def header(self) -> str:
        """Render the Set-Cookie header value."""
        parts = [f"{self.name}={self.value}", f"Path={self.path}"]
        if self.domain:
            parts.append(f"Domain={self.domain}")
        if self.expires is not None:
            parts.append(f"Expires={format_datetime(self.expires, usegmt=True)}")
        if self.secure:
            parts.append("Secure")
        if self.httponly:
            parts.append("HttpOnly")
        parts.append(f"SameSite={self.samesite.capitalize()}")
        return "; ".join(parts)


@dataclass(frozen=True)
class SessionCookies:
    access: CookieSpec
    refresh: CookieSpec

    def apply(self, response: Response) -> None:
        self.access.apply(response)
        self.refresh.apply(response)


class CookieCodec:
    """
    Builds the access and refresh cookies.

    The refresh cookie is scoped to the rotation endpoint only, so browsers
    never attach it to ordinary API requests. Clearing cookies reuse the
    exact attributes of the originals; a clearing cookie with a different
    path or domain would not replace the original in the client.
    """

    def __init__(
        self,
        access_name: str = "__Secure-access_token",
        refresh_name: str = "__Secure-refresh_token",
        access_path: str = "/",
        refresh_path: str = "/api/v1/auth/refresh",
        domain: Optional[str] = None,
    ):
        self.access_name = access_name
        self.refresh_name = refresh_name
        self.access_path = access_path
        self.refresh_path = refresh_path
        self.domain = domain or None

    def _templates(self) -> SessionCookies:
        return SessionCookies(
            access=CookieSpec(
                name=self.access_name, value="", path=self.access_path, domain=self.domain
            ),
            refresh=CookieSpec(
                name=self.refresh_name, value="", path=self.refresh_path, domain=self.domain
            ),
        )

    def encode(self, tokens: TokenPair) -> SessionCookies:
        base = self._templates()
        return SessionCookies(
            access=replace(base.access, value=tokens.access.token),
            refresh=replace(
                base.refresh,
                value=tokens.refresh.token,
                expires=tokens.refresh.expires_at,
            ),
        )

    def clear(self) -> SessionCookies:
        base = self._templates()
        return SessionCookies(
            access=replace(base.access, expires=EPOCH),
            refresh=replace(base.refresh, expires=EPOCH),
        )

    @staticmethod
    def decode(cookie_header: Optional[str], name: str) -> Optional[str]:
        """Extract cookie ``name`` from a raw Cookie header; empty counts as absent."""
        if not cookie_header:
            return None
        return cookie_parser(cookie_header).get(name) or None
