"""
mejour.gateway.auth — Token login + silent re-authentication
=============================================================

The access token is read-only shared state.  Gated operations call
:meth:`AuthSession.ensure_token`, which returns the current token or makes
exactly one re-login attempt with the stored credentials.  Concurrent callers
share that attempt; there is never a retry loop.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable

import httpx
import jwt
from jwt.exceptions import InvalidTokenError

from mejour.errors import MejourError, MissingCredential
from mejour.gateway.http import decode, send
from mejour.gateway.mapping import user_from_api
from mejour.gateway.schemas import APIMeUser, APITokenPair
from mejour.models import CurrentUser

logger = logging.getLogger(__name__)

TOKEN_LOGIN_PATH = "/api/auth/token/login/"
ME_PATH = "/api/auth/me/"

# Treat tokens this close to expiry as already expired
EXPIRY_LEEWAY_SECONDS = 30


def token_expires_at(token: str) -> float | None:
    """Read the ``exp`` claim without verifying the signature.

    Opaque (non-JWT) tokens and tokens without ``exp`` return None.
    """
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except InvalidTokenError:
        return None
    exp = claims.get("exp")
    if exp is None:
        return None
    try:
        return float(exp)
    except (TypeError, ValueError):
        return None


class AuthSession:
    """Holds the access token and current user for one signed-in viewer."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        username: str | None = None,
        password: str | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._username = username
        self._password = password
        self._clock = clock
        self._access_token: str | None = None
        self._current_user: CurrentUser | None = None
        self._reauth_lock = asyncio.Lock()

    @property
    def access_token(self) -> str | None:
        return self._access_token

    @property
    def current_user(self) -> CurrentUser | None:
        return self._current_user

    @property
    def is_authenticated(self) -> bool:
        return bool(self._access_token) and self._current_user is not None

    def token_is_usable(self) -> bool:
        token = self._access_token
        if not token:
            return False
        exp = token_expires_at(token)
        if exp is None:
            return True
        return self._clock() < exp - EXPIRY_LEEWAY_SECONDS

    async def login(self, username: str | None = None, password: str | None = None) -> CurrentUser:
        """Exchange credentials for a token, then fetch the current user.

        On any failure the session is left signed out and the error propagates.
        """
        if username is not None:
            self._username = username
        if password is not None:
            self._password = password
        if not self._username or not self._password:
            raise MissingCredential("No stored credentials to sign in with.")

        try:
            resp = await send(
                self._client,
                "POST",
                TOKEN_LOGIN_PATH,
                json={"username": self._username, "password": self._password},
            )
            tokens = decode(APITokenPair, resp)
            me_resp = await send(self._client, "GET", ME_PATH, token=tokens.access)
            user = user_from_api(decode(APIMeUser, me_resp))
        except MejourError:
            self._access_token = None
            self._current_user = None
            raise

        self._access_token = tokens.access
        self._current_user = user
        logger.info("Signed in as %s (id=%d)", user.username or user.uuid, user.id)
        return user

    def logout(self) -> None:
        self._access_token = None
        self._current_user = None
        logger.info("Signed out")

    async def ensure_token(self) -> str:
        """Return a usable token, re-authenticating at most once."""
        if self.token_is_usable() and self._current_user is not None:
            return self._access_token  # type: ignore[return-value]

        async with self._reauth_lock:
            # Another caller may have finished re-login while we waited
            if self.token_is_usable() and self._current_user is not None:
                return self._access_token  # type: ignore[return-value]
            try:
                await self.login()
            except MissingCredential:
                raise
            except MejourError as exc:
                logger.warning("Silent re-authentication failed: %s", exc)
                raise MissingCredential(
                    f"Missing access token and re-login failed: {exc.user_message}"
                ) from exc
        return self._access_token  # type: ignore[return-value]
