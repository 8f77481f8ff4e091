"""Signed access/refresh token issuance and verification."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from jose import ExpiredSignatureError, JOSEError, JWTError, jwt

from app.core.errors import ExpiredToken, MalformedToken, SigningFailure

logger = logging.getLogger(__name__)

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AccessCredential:
    token: str
    subject: str
    expires_at: datetime


@dataclass(frozen=True)
class RefreshCredential:
    token: str
    subject: str
    jti: str
    expires_at: datetime


@dataclass(frozen=True)
class TokenPair:
    access: AccessCredential
    refresh: RefreshCredential


class TokenIssuer:
    """
    Mints and verifies HMAC-signed JWTs.

    Holds only immutable configuration, so a single instance may be shared
    across concurrent requests.
    """

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=7),
        clock: Clock = utcnow,
    ):
        self._secret = secret
        self._algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self._clock = clock

    # ─── Issuance ───────────────────────────────
    def _sign(self, claims: dict) -> str:
        if not self._secret:
            raise SigningFailure("JWT secret is not configured")
        try:
            return jwt.encode(claims, self._secret, algorithm=self._algorithm)
        except JOSEError as e:
            raise SigningFailure(f"Unable to sign token: {e}") from e

    def issue(self, subject: str) -> TokenPair:
        """Create a fresh access/refresh pair for ``subject``."""
        subject = str(subject)
        now = self._clock()

        access_exp = now + self.access_ttl
        access_token = self._sign({
            "sub": subject,
            "iat": now,
            "exp": access_exp,
            "type": ACCESS_TOKEN_TYPE,
        })

        jti = str(uuid.uuid4())
        refresh_exp = now + self.refresh_ttl
        refresh_token = self._sign({
            "sub": subject,
            "jti": jti,
            "iat": now,
            "exp": refresh_exp,
            "type": REFRESH_TOKEN_TYPE,
        })

        return TokenPair(
            access=AccessCredential(token=access_token, subject=subject, expires_at=access_exp),
            refresh=RefreshCredential(
                token=refresh_token, subject=subject, jti=jti, expires_at=refresh_exp
            ),
        )

    # ─── Verification ───────────────────────────
    def _decode(self, token: str, expected_type: str) -> dict:
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except ExpiredSignatureError as e:
            raise ExpiredToken(f"{expected_type.capitalize()} token has expired") from e
        except JWTError as e:
            raise MalformedToken(f"Invalid {expected_type} token") from e

        if payload.get("type") != expected_type or not payload.get("sub"):
            raise MalformedToken(f"Invalid {expected_type} token")
        return payload

    def verify_access(self, token: str) -> AccessCredential:
        payload = self._decode(token, ACCESS_TOKEN_TYPE)
        return AccessCredential(
            token=token,
            subject=str(payload["sub"]),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    def verify_refresh(self, token: str) -> RefreshCredential:
        payload = self._decode(token, REFRESH_TOKEN_TYPE)
        jti = payload.get("jti")
        if not jti:
            raise MalformedToken("Invalid refresh token")
        return RefreshCredential(
            token=token,
            subject=str(payload["sub"]),
            jti=str(jti),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
        )

    def peek_refresh_jti(self, token: str) -> Optional[str]:
        """
        Return the ``jti`` of a refresh token whose signature checks out,
        ignoring expiry. Returns None instead of raising.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTError:
            return None
        if payload.get("type") != REFRESH_TOKEN_TYPE:
            return None
        return payload.get("jti")
