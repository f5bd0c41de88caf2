"""
tests/test_auth.py — Auth Session Tests
========================================

Token expiry is read from the JWT ``exp`` claim; the session must re-login
at most once per expiry, even with many concurrent callers.
"""

from __future__ import annotations

import asyncio
import time

import httpx
import jwt
import pytest
from factories import ME_ID, ME_UUID, FakeBackend, FakeClock

from mejour.errors import ErrorKind, HttpStatus, MissingCredential
from mejour.gateway.auth import AuthSession, token_expires_at

LOGIN = "/api/auth/token/login/"
_SIGNING_KEY = "test-signing-key-for-pytest-only-" + "x" * 32


def run_async(coro):
    """Run an async coroutine in a fresh event loop."""
    return asyncio.run(coro)


def _jwt(exp: float) -> str:
    return jwt.encode({"sub": str(ME_ID), "exp": int(exp)}, _SIGNING_KEY, algorithm="HS256")


def _issue_fresh_tokens(backend: FakeBackend, clock: FakeClock, lifetime: float = 3600) -> None:
    def handler(request: httpx.Request):
        return {"access": _jwt(clock() + lifetime), "refresh": "r"}

    backend.on("POST", LOGIN, handler)


class TestTokenExpiry:
    def test_reads_exp_claim(self):
        exp = time.time() + 600
        assert token_expires_at(_jwt(exp)) == float(int(exp))

    def test_opaque_token_has_no_expiry(self):
        assert token_expires_at("opaque-token") is None


class TestLogin:
    def test_login_sets_user_and_token(self, backend):
        async def scenario():
            auth = AuthSession(backend.client(), "alice", "pw")
            user = await auth.login()
            return auth, user

        auth, user = run_async(scenario())
        assert user.id == ME_ID
        assert user.uuid == ME_UUID
        assert auth.is_authenticated
        me_request = [r for r in backend.requests if r.url.path == "/api/auth/me/"][0]
        assert me_request.headers["Authorization"] == f"Bearer {backend.token}"

    def test_login_without_credentials(self, backend):
        async def scenario():
            await AuthSession(backend.client()).login()

        with pytest.raises(MissingCredential) as exc_info:
            run_async(scenario())
        assert exc_info.value.kind is ErrorKind.MISSING_CREDENTIAL
        assert backend.requests == []

    def test_rejected_login_leaves_session_signed_out(self, backend):
        backend.on("POST", LOGIN, lambda r: httpx.Response(401, text="bad credentials"))

        async def scenario():
            auth = AuthSession(backend.client(), "alice", "wrong")
            with pytest.raises(HttpStatus):
                await auth.login()
            return auth

        auth = run_async(scenario())
        assert not auth.is_authenticated
        assert auth.access_token is None

    def test_logout(self, backend):
        async def scenario():
            auth = AuthSession(backend.client(), "alice", "pw")
            await auth.login()
            auth.logout()
            return auth

        assert run_async(scenario()).current_user is None


class TestEnsureToken:
    def test_usable_token_is_reused(self, backend, clock):
        _issue_fresh_tokens(backend, clock)

        async def scenario():
            auth = AuthSession(backend.client(), "alice", "pw", clock=clock)
            await auth.login()
            await auth.ensure_token()
            await auth.ensure_token()

        run_async(scenario())
        assert backend.count("POST", LOGIN) == 1

    def test_expired_token_relogs_once_for_concurrent_callers(self, backend, clock):
        _issue_fresh_tokens(backend, clock)

        async def scenario():
            auth = AuthSession(backend.client(), "alice", "pw", clock=clock)
            first = await auth.login()
            clock.advance(7200)
            tokens = await asyncio.gather(*(auth.ensure_token() for _ in range(5)))
            return first, tokens

        _, tokens = run_async(scenario())
        assert backend.count("POST", LOGIN) == 2
        assert len(set(tokens)) == 1

    def test_token_inside_leeway_counts_as_expired(self, backend, clock):
        _issue_fresh_tokens(backend, clock, lifetime=10)

        async def scenario():
            auth = AuthSession(backend.client(), "alice", "pw", clock=clock)
            await auth.login()
            return auth.token_is_usable()

        assert run_async(scenario()) is False

    def test_failed_relogin_is_missing_credential(self, backend, clock):
        _issue_fresh_tokens(backend, clock)

        async def scenario():
            auth = AuthSession(backend.client(), "alice", "pw", clock=clock)
            await auth.login()
            clock.advance(7200)
            backend.on("POST", LOGIN, lambda r: httpx.Response(503, text="down"))
            await auth.ensure_token()

        with pytest.raises(MissingCredential) as exc_info:
            run_async(scenario())
        assert "HTTP 503" in exc_info.value.user_message

    def test_never_signed_in_without_credentials(self, backend):
        async def scenario():
            await AuthSession(backend.client()).ensure_token()

        with pytest.raises(MissingCredential):
            run_async(scenario())
