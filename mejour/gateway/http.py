"""
mejour.gateway.http — Shared httpx plumbing
============================================

One :class:`httpx.AsyncClient` per session, explicit timeout, one transport
level retry for connection failures.  :func:`send` turns every transport
error and non-2xx status into :class:`~mejour.errors.HttpStatus`;
:func:`decode` turns schema mismatches into
:class:`~mejour.errors.DecodeFailure`.
"""

from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import TypeAdapter, ValidationError

from mejour.errors import DecodeFailure, HttpStatus

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 10.0


def create_http_client(
    base_url: str,
    *,
    timeout: float = DEFAULT_TIMEOUT,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Build the session's HTTP client.  Tests inject ``httpx.MockTransport``."""
    if transport is None:
        transport = httpx.AsyncHTTPTransport(retries=1)
    return httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)


async def send(
    client: httpx.AsyncClient,
    method: str,
    url: str | httpx.URL,
    *,
    token: str | None = None,
    **kwargs: Any,
) -> httpx.Response:
    headers = dict(kwargs.pop("headers", None) or {})
    if token:
        headers["Authorization"] = f"Bearer {token}"
    try:
        resp = await client.request(method, url, headers=headers, **kwargs)
    except httpx.HTTPError as exc:
        logger.warning("%s %s failed without a response: %s", method, url, exc)
        raise HttpStatus(-1, str(exc) or exc.__class__.__name__) from exc

    if not resp.is_success:
        logger.warning("%s %s → HTTP %d", method, url, resp.status_code)
        raise HttpStatus(resp.status_code, resp.text)
    return resp


def decode(type_: type[T] | Any, resp: httpx.Response) -> T:
    """Validate the response JSON against *type_* (a model or any type hint)."""
    try:
        return TypeAdapter(type_).validate_json(resp.content)
    except ValidationError as exc:
        logger.warning(
            "Response from %s did not match %s: %d error(s)",
            resp.request.url, type_, exc.error_count(),
        )
        raise DecodeFailure() from exc
