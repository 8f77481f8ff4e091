"""
Tests for the token lifecycle services.

Run with: pytest tests/test_services.py -v
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest
from starlette.responses import Response

from tests.conftest import TEST_SECRET


# ============================================
# TokenIssuer Tests
# ============================================

class TestTokenIssuer:
    """Tests for TokenIssuer."""

    def test_issue_and_verify_recovers_subject(self, issuer):
        """Both tokens of a fresh pair verify and carry the subject."""
        pair = issuer.issue("7")

        access = issuer.verify_access(pair.access.token)
        refresh = issuer.verify_refresh(pair.refresh.token)

        assert access.subject == "7"
        assert refresh.subject == "7"
        assert refresh.jti == pair.refresh.jti

    def test_expiry_lifetimes(self):
        """Access lives 15 minutes, refresh 7 days, from the issuer clock."""
        from app.services.token_issuer import TokenIssuer

        now = datetime.now(timezone.utc).replace(microsecond=0)
        issuer = TokenIssuer(secret=TEST_SECRET, clock=lambda: now)

        pair = issuer.issue("42")

        assert pair.access.expires_at == now + timedelta(minutes=15)
        assert pair.refresh.expires_at == now + timedelta(days=7)
        assert issuer.verify_refresh(pair.refresh.token).expires_at == pair.refresh.expires_at

    def test_jti_is_unique_per_issue(self, issuer):
        jtis = {issuer.issue("1").refresh.jti for _ in range(50)}
        assert len(jtis) == 50

    def test_access_token_rejected_as_refresh(self, issuer):
        """Token types are not interchangeable."""
        from app.core.errors import MalformedToken

        pair = issuer.issue("7")

        with pytest.raises(MalformedToken):
            issuer.verify_refresh(pair.access.token)
        with pytest.raises(MalformedToken):
            issuer.verify_access(pair.refresh.token)

    def test_wrong_secret_is_malformed(self, issuer):
        from app.core.errors import MalformedToken
        from app.services.token_issuer import TokenIssuer

        pair = TokenIssuer(secret="another-secret").issue("7")

        with pytest.raises(MalformedToken):
            issuer.verify_refresh(pair.refresh.token)

    def test_garbage_is_malformed(self, issuer):
        from app.core.errors import MalformedToken

        with pytest.raises(MalformedToken):
            issuer.verify_access("not-a-jwt")

    def test_expired_token(self, past_clock):
        from app.core.errors import ExpiredToken
        from app.services.token_issuer import TokenIssuer

        old = TokenIssuer(secret=TEST_SECRET, clock=past_clock).issue("7")
        issuer = TokenIssuer(secret=TEST_SECRET)

        with pytest.raises(ExpiredToken):
            issuer.verify_access(old.access.token)
        with pytest.raises(ExpiredToken):
            issuer.verify_refresh(old.refresh.token)

    def test_empty_secret_is_signing_failure(self):
        from app.core.errors import SigningFailure
        from app.services.token_issuer import TokenIssuer

        with pytest.raises(SigningFailure):
            TokenIssuer(secret="").issue("7")

    def test_peek_jti_ignores_expiry(self, issuer, past_clock):
        from app.services.token_issuer import TokenIssuer

        old = TokenIssuer(secret=TEST_SECRET, clock=past_clock).issue("7")

        assert issuer.peek_refresh_jti(old.refresh.token) == old.refresh.jti

    def test_peek_jti_requires_valid_signature(self, issuer):
        from app.services.token_issuer import TokenIssuer

        forged = TokenIssuer(secret="another-secret").issue("7")

        assert issuer.peek_refresh_jti(forged.refresh.token) is None
        assert issuer.peek_refresh_jti("garbage") is None
        assert issuer.peek_refresh_jti(issuer.issue("7").access.token) is None


# ============================================
# TokenStore Tests
# ============================================

class TestTokenStore:
    """Tests for TokenStore."""

    @pytest.mark.asyncio
    async def test_persist_then_consume_once(self, store):
        expires = datetime.now(timezone.utc) + timedelta(days=7)
        await store.persist("j1", "7", expires)

        assert await store.consume("j1") is True
        assert await store.consume("j1") is False
        assert await store.get("j1") is None

    @pytest.mark.asyncio
    async def test_consume_unknown_jti(self, store):
        assert await store.consume("never-issued") is False

    @pytest.mark.asyncio
    async def test_persist_is_upsert(self, store):
        """Persisting the same jti twice leaves one record with the latest values."""
        first = datetime.now(timezone.utc) + timedelta(days=1)
        second = datetime.now(timezone.utc) + timedelta(days=7)

        await store.persist("j1", "7", first)
        await store.persist("j1", "8", second)

        record = await store.get("j1")
        assert record is not None
        assert record.subject == "8"
        assert record.expires_at.replace(tzinfo=None) == second.replace(tzinfo=None)

        assert await store.consume("j1") is True
        assert await store.consume("j1") is False

    @pytest.mark.asyncio
    async def test_expired_record_is_not_consumable(self, store):
        expired = datetime.now(timezone.utc) - timedelta(seconds=1)
        await store.persist("j-old", "7", expired)

        assert await store.consume("j-old") is False

    @pytest.mark.asyncio
    async def test_concurrent_consume_has_single_winner(self, store):
        """Exactly one of several racing consumers observes success."""
        await store.persist("race", "7", datetime.now(timezone.utc) + timedelta(days=7))

        results = await asyncio.gather(*(store.consume("race") for _ in range(5)))

        assert results.count(True) == 1
        assert results.count(False) == 4

    @pytest.mark.asyncio
    async def test_revoke_subject(self, store):
        expires = datetime.now(timezone.utc) + timedelta(days=7)
        await store.persist("a", "7", expires)
        await store.persist("b", "7", expires)
        await store.persist("c", "8", expires)

        assert await store.revoke_subject("7") == 2
        assert await store.get("a") is None
        assert await store.get("c") is not None

    @pytest.mark.asyncio
    async def test_purge_expired(self, store):
        now = datetime.now(timezone.utc)
        await store.persist("old", "7", now - timedelta(days=1))
        await store.persist("new", "7", now + timedelta(days=1))

        assert await store.purge_expired() == 1
        assert await store.get("old") is None
        assert await store.get("new") is not None

    @pytest.mark.asyncio
    async def test_database_failure_is_store_unavailable(self, tmp_path):
        """A missing table surfaces as StoreUnavailable, not a raw driver error."""
        from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

        from app.core.errors import StoreUnavailable
        from app.services.token_store import TokenStore

        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'empty.db'}")
        store = TokenStore(async_sessionmaker(engine))
        try:
            with pytest.raises(StoreUnavailable):
                await store.consume("j1")
        finally:
            await engine.dispose()

    @pytest.mark.asyncio
    async def test_records_do_not_reference_users(self, store, session_factory):
        """Records are keyed by subject alone; no user row has to exist."""
        from app.services.user_directory import UserDirectory

        await store.persist("j1", "12345", datetime.now(timezone.utc) + timedelta(days=7))

        assert await UserDirectory(session_factory).get(12345) is None
        assert await store.consume("j1") is True

    @pytest.mark.asyncio
    async def test_purge_loop_sweeps_expired_records(self, store):
        from app.services.token_store import purge_loop

        now = datetime.now(timezone.utc)
        await store.persist("old", "7", now - timedelta(days=1))
        await store.persist("new", "7", now + timedelta(days=1))

        task = asyncio.create_task(purge_loop(store, interval_seconds=0.01))
        try:
            for _ in range(100):
                if await store.get("old") is None:
                    break
                await asyncio.sleep(0.01)
        finally:
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        assert await store.get("old") is None
        assert await store.get("new") is not None


# ============================================
# RotationValidator Tests
# ============================================

class TestRotationValidator:
    """Tests for refresh token rotation."""

    @pytest.mark.asyncio
    async def test_end_to_end_rotation(self, rotation, store):
        """issue -> rotate -> old jti gone, new jti stored -> replay rejected."""
        from app.core.errors import ReplayedToken

        first = await rotation.issue_session("7")
        j1 = first.refresh.jti
        assert await store.get(j1) is not None

        second = await rotation.rotate(first.refresh.token)
        j2 = second.refresh.jti

        assert j2 != j1
        assert second.access.subject == "7"
        assert await store.get(j1) is None
        assert await store.get(j2) is not None

        with pytest.raises(ReplayedToken):
            await rotation.rotate(first.refresh.token)

    @pytest.mark.asyncio
    async def test_missing_credential(self, rotation):
        from app.core.errors import MissingCredential

        with pytest.raises(MissingCredential):
            await rotation.rotate(None)
        with pytest.raises(MissingCredential):
            await rotation.rotate("")

    @pytest.mark.asyncio
    async def test_malformed_token(self, rotation):
        from app.core.errors import MalformedToken

        with pytest.raises(MalformedToken):
            await rotation.rotate("definitely.not.valid")

    @pytest.mark.asyncio
    async def test_expired_token_rejected_despite_live_record(self, rotation, store, past_clock):
        """Expiry is checked before the store; the live record is left untouched."""
        from app.core.errors import ExpiredToken
        from app.services.token_issuer import TokenIssuer

        old = TokenIssuer(secret=TEST_SECRET, clock=past_clock).issue("7")
        await store.persist(
            old.refresh.jti, "7", datetime.now(timezone.utc) + timedelta(days=1)
        )

        with pytest.raises(ExpiredToken):
            await rotation.rotate(old.refresh.token)

        assert await store.get(old.refresh.jti) is not None

    @pytest.mark.asyncio
    async def test_never_persisted_token_is_replay(self, rotation, issuer):
        """A validly signed token with no record counts as replayed."""
        from app.core.errors import ReplayedToken

        pair = issuer.issue("7")

        with pytest.raises(ReplayedToken):
            await rotation.rotate(pair.refresh.token)

    @pytest.mark.asyncio
    async def test_concurrent_rotation_has_single_winner(self, rotation):
        from app.core.errors import ReplayedToken

        pair = await rotation.issue_session("7")

        results = await asyncio.gather(
            *(rotation.rotate(pair.refresh.token) for _ in range(4)),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, Exception)]
        replays = [r for r in results if isinstance(r, ReplayedToken)]
        assert len(successes) == 1
        assert len(replays) == 3

    @pytest.mark.asyncio
    async def test_replay_keeps_other_sessions_by_default(self, rotation, store):
        from app.core.errors import ReplayedToken

        device_a = await rotation.issue_session("7")
        device_b = await rotation.issue_session("7")
        await rotation.rotate(device_a.refresh.token)

        with pytest.raises(ReplayedToken):
            await rotation.rotate(device_a.refresh.token)

        assert await store.get(device_b.refresh.jti) is not None

    @pytest.mark.asyncio
    async def test_replay_revokes_all_sessions_when_enabled(self, issuer, store):
        from app.core.errors import ReplayedToken
        from app.services.rotation import RotationValidator

        rotation = RotationValidator(issuer, store, revoke_all_on_replay=True)
        device_a = await rotation.issue_session("7")
        device_b = await rotation.issue_session("7")
        rotated = await rotation.rotate(device_a.refresh.token)

        with pytest.raises(ReplayedToken):
            await rotation.rotate(device_a.refresh.token)

        assert await store.get(device_b.refresh.jti) is None
        assert await store.get(rotated.refresh.jti) is None

    @pytest.mark.asyncio
    async def test_logout_consumes_record(self, rotation, store):
        """After logout the refresh token can no longer rotate."""
        from app.core.errors import ReplayedToken

        first = await rotation.issue_session("7")
        second = await rotation.rotate(first.refresh.token)

        assert await rotation.logout(second.refresh.token) is True
        assert await store.get(second.refresh.jti) is None

        with pytest.raises(ReplayedToken):
            await rotation.rotate(second.refresh.token)

    @pytest.mark.asyncio
    async def test_logout_is_best_effort(self, rotation):
        assert await rotation.logout(None) is False
        assert await rotation.logout("garbage") is False

    @pytest.mark.asyncio
    async def test_logout_swallows_store_failure(self, issuer):
        from unittest.mock import AsyncMock, MagicMock

        from app.core.errors import StoreUnavailable
        from app.services.rotation import RotationValidator

        store = MagicMock()
        store.consume = AsyncMock(side_effect=StoreUnavailable())
        rotation = RotationValidator(issuer, store)

        assert await rotation.logout(issuer.issue("7").refresh.token) is False

    @pytest.mark.asyncio
    async def test_persist_failure_after_consume_keeps_old_token_spent(self, issuer, store):
        """If storing the new record fails, the presented token is still used up."""
        from unittest.mock import AsyncMock, patch

        from app.core.errors import ReplayedToken, StoreUnavailable
        from app.services.rotation import RotationValidator

        rotation = RotationValidator(issuer, store)
        first = await rotation.issue_session("7")

        with patch.object(store, "persist", AsyncMock(side_effect=StoreUnavailable())):
            with pytest.raises(StoreUnavailable):
                await rotation.rotate(first.refresh.token)

        assert await store.get(first.refresh.jti) is None
        with pytest.raises(ReplayedToken):
            await rotation.rotate(first.refresh.token)


# ============================================
# CookieCodec Tests
# ============================================

class TestCookieCodec:
    """Tests for cookie encoding."""

    def test_cookie_scoping(self, codec, issuer):
        cookies = codec.encode(issuer.issue("7"))

        assert cookies.access.path == "/"
        assert cookies.refresh.path == "/api/v1/auth/refresh"
        for cookie in (cookies.access, cookies.refresh):
            assert cookie.secure is True
            assert cookie.httponly is True
            assert cookie.samesite == "none"
            assert cookie.domain is None

    def test_cookie_names_use_secure_prefix(self, codec, issuer):
        cookies = codec.encode(issuer.issue("7"))

        assert cookies.access.name == "__Secure-access_token"
        assert cookies.refresh.name == "__Secure-refresh_token"

    def test_refresh_cookie_expires_with_token(self, codec, issuer):
        pair = issuer.issue("7")
        cookies = codec.encode(pair)

        assert cookies.access.expires is None
        assert cookies.refresh.expires == pair.refresh.expires_at

    def test_set_cookie_headers(self, codec, issuer):
        response = Response()
        codec.encode(issuer.issue("7")).apply(response)

        headers = response.headers.getlist("set-cookie")
        assert len(headers) == 2
        access_header, refresh_header = headers
        assert "Path=/;" in access_header or access_header.endswith("Path=/")
        assert "Path=/api/v1/auth/refresh" in refresh_header
        for header in headers:
            lowered = header.lower()
            assert "secure" in lowered
            assert "httponly" in lowered
            assert "samesite=none" in lowered

    def test_clear_has_attribute_parity(self, issuer):
        """Clearing cookies differ from the originals only in value and expiry."""
        from dataclasses import replace

        from app.services.cookies import EPOCH, CookieCodec

        codec = CookieCodec(domain="example.com")
        encoded = codec.encode(issuer.issue("7"))
        cleared = codec.clear()

        for original, clearing in (
            (encoded.access, cleared.access),
            (encoded.refresh, cleared.refresh),
        ):
            assert clearing.value == ""
            assert clearing.expires == EPOCH
            assert replace(clearing, value=original.value, expires=original.expires) == original

    def test_domain_attribute(self, issuer):
        from app.services.cookies import CookieCodec

        cookies = CookieCodec(domain="example.com").encode(issuer.issue("7"))

        assert cookies.access.domain == "example.com"
        assert cookies.refresh.domain == "example.com"
        assert "Domain=example.com" in cookies.refresh.header()

    def test_cleared_header_has_epoch_expiry(self, codec):
        header = codec.clear().refresh.header()

        assert header.startswith("__Secure-refresh_token=;")
        assert "Expires=Thu, 01 Jan 1970 00:00:00 GMT" in header
        assert "Path=/api/v1/auth/refresh" in header

    def test_decode(self, codec):
        header = "theme=dark; __Secure-refresh_token=abc.def.ghi; other=1"

        assert codec.decode(header, "__Secure-refresh_token") == "abc.def.ghi"
        assert codec.decode(header, "__Secure-access_token") is None
        assert codec.decode(None, "__Secure-refresh_token") is None
        assert codec.decode("__Secure-refresh_token=", "__Secure-refresh_token") is None


# ============================================
# Redirect Allow-list Tests
# ============================================

class TestRedirects:
    """Tests for redirect target validation."""

    def test_exact_origin_match(self):
        from app.services.redirects import is_allowed_redirect

        allowed = ["https://app.example.com"]

        assert is_allowed_redirect("https://app.example.com/callback?x=1", allowed) is True
        assert is_allowed_redirect("https://app.example.com", allowed) is True

    def test_rejections(self):
        from app.services.redirects import is_allowed_redirect

        allowed = ["https://app.example.com"]

        assert is_allowed_redirect("http://app.example.com", allowed) is False
        assert is_allowed_redirect("https://evil.example.com", allowed) is False
        assert is_allowed_redirect("https://app.example.com.evil.io", allowed) is False
        assert is_allowed_redirect("not a url", allowed) is False
        assert is_allowed_redirect("", allowed) is False
        assert is_allowed_redirect("https://app.example.com", []) is False

    def test_port_is_ignored(self):
        from app.services.redirects import origin_of

        assert origin_of("http://localhost:5173/path") == "http://localhost"


# ============================================
# UserDirectory Tests
# ============================================

class TestUserDirectory:
    """Tests for user upsert on login."""

    @pytest.mark.asyncio
    async def test_upsert_creates_then_updates(self, session_factory):
        from app.services.user_directory import UserDirectory

        users = UserDirectory(session_factory)
        await users.upsert(7, "octocat", "octocat", "https://avatars.example/1")
        await users.upsert(7, "octocat-renamed", "octocat-renamed", "https://avatars.example/2")

        user = await users.get(7)
        assert user is not None
        assert user.username == "octocat-renamed"
        assert user.display_name == "octocat"
        assert user.avatar_url == "https://avatars.example/2"

    @pytest.mark.asyncio
    async def test_username_taken_by_another_user(self, session_factory):
        """A login name still stored on another account does not block the upsert."""
        from app.services.user_directory import UserDirectory

        users = UserDirectory(session_factory)
        await users.upsert(99, "octocat", "octocat")
        await users.upsert(7, "octocat", "octocat")

        assert (await users.get(7)).username == "octocat"
        assert (await users.get(99)).username == "octocat"
