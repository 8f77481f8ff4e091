"""
Refresh token rotation with replay detection.

A refresh call walks Presented -> Parsed -> Checked and ends either Rotated
(new pair issued, new record stored) or Rejected with one of the credential
errors. The store's atomic ``consume`` is the only point of coordination
between concurrent refresh calls.
"""

import logging
from typing import Optional

from app.core.errors import (
    ExpiredToken,
    MalformedToken,
    MissingCredential,
    ReplayedToken,
    StoreUnavailable,
)
from app.services.token_issuer import TokenIssuer, TokenPair
from app.services.token_store import TokenStore

logger = logging.getLogger(__name__)


class RotationValidator:
    """Validates a presented refresh token and exchanges it for a new pair."""

    def __init__(
        self,
        issuer: TokenIssuer,
        store: TokenStore,
        revoke_all_on_replay: bool = False,
    ):
        self.issuer = issuer
        self.store = store
        self.revoke_all_on_replay = revoke_all_on_replay

    async def issue_session(self, subject: str) -> TokenPair:
        """Mint a pair and record its refresh token. Used on login and rotation."""
        tokens = self.issuer.issue(subject)
        await self.store.persist(
            tokens.refresh.jti, tokens.refresh.subject, tokens.refresh.expires_at
        )
        return tokens

    async def rotate(self, raw_token: Optional[str]) -> TokenPair:
        # Presented
        if not raw_token:
            logger.info("Refresh rejected: no refresh token presented")
            raise MissingCredential("Missing refresh token")

        # Parsed (signature/expiry only, store untouched)
        try:
            credential = self.issuer.verify_refresh(raw_token)
        except (MalformedToken, ExpiredToken) as e:
            logger.info(f"Refresh rejected: {e.message}")
            raise

        # Checked
        if not await self.store.consume(credential.jti):
            logger.warning(
                "Refresh token JTI not found or already used; possible stolen "
                f"or replayed token for user_id: {credential.subject}"
            )
            if self.revoke_all_on_replay:
                revoked = await self.store.revoke_subject(credential.subject)
                logger.warning(
                    f"Revoked {revoked} outstanding session(s) for user_id: {credential.subject}"
                )
            raise ReplayedToken("Invalid refresh token")

        # Rotated
        tokens = await self.issue_session(credential.subject)
        logger.info(f"Successfully refreshed tokens for user_id: {credential.subject}")
        return tokens

    async def logout(self, raw_token: Optional[str]) -> bool:
        """
        Best-effort revocation of the presented refresh token.

        Never raises for credential or store problems; the caller clears the
        cookies regardless of the outcome.
        """
        if not raw_token:
            return False

        jti = self.issuer.peek_refresh_jti(raw_token)
        if not jti:
            return False

        try:
            return await self.store.consume(jti)
        except StoreUnavailable as e:
            logger.error(f"Failed to revoke refresh token on logout: {e}")
            return False
