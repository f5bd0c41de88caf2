"""
mejour.config — YAML Configuration Loader
==========================================

Reads ``config.yaml`` for non-secret settings (backend URL, cache and dedup
tuning, where the follow list lives).  Credentials never go in the YAML file;
they come from the environment (``MEJOUR_USERNAME`` / ``MEJOUR_PASSWORD``),
typically via a ``.env`` file loaded by the entry point.

Usage::

    from mejour.config import load_config

    cfg = load_config()                 # reads ./config.yaml by default
    print(cfg.base_url)                 # "https://meejing-backend.vercel.app"
    print(cfg.posts_cache_ttl_seconds)  # 300
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from mejour.constants import (
    DEFAULT_DEDUP_RADIUS_METERS,
    DEFAULT_NEARBY_LIMIT,
    DEFAULT_NEARBY_RADIUS_METERS,
    DEFAULT_POSTS_CACHE_TTL,
)
from mejour.gateway.client import DEFAULT_MAP_PREFIX
from mejour.gateway.http import DEFAULT_TIMEOUT


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MejourConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Backend
    base_url: str
    map_prefix: str = DEFAULT_MAP_PREFIX
    request_timeout: float = DEFAULT_TIMEOUT

    # Caching / dedup tuning
    posts_cache_ttl_seconds: float = DEFAULT_POSTS_CACHE_TTL
    dedup_radius_meters: float = DEFAULT_DEDUP_RADIUS_METERS
    nearby_radius_meters: float = DEFAULT_NEARBY_RADIUS_METERS
    nearby_limit: int = DEFAULT_NEARBY_LIMIT

    # Local state
    follow_store_path: str | None = None


@dataclass(frozen=True, slots=True)
class Credentials:
    username: str | None
    password: str | None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> MejourConfig:
    """Read *path* and return a :class:`MejourConfig` instance.

    ``MEJOUR_BASE_URL`` in the environment overrides ``base_url``.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If ``base_url`` is missing from both the file and the environment.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    base_url = os.getenv("MEJOUR_BASE_URL") or raw["base_url"]
    follow_path = raw.get("follow_store_path")

    return MejourConfig(
        base_url=str(base_url).rstrip("/"),
        map_prefix=str(raw.get("map_prefix", DEFAULT_MAP_PREFIX)),
        request_timeout=float(raw.get("request_timeout", DEFAULT_TIMEOUT)),
        posts_cache_ttl_seconds=float(
            raw.get("posts_cache_ttl_seconds", DEFAULT_POSTS_CACHE_TTL)
        ),
        dedup_radius_meters=float(raw.get("dedup_radius_meters", DEFAULT_DEDUP_RADIUS_METERS)),
        nearby_radius_meters=float(
            raw.get("nearby_radius_meters", DEFAULT_NEARBY_RADIUS_METERS)
        ),
        nearby_limit=int(raw.get("nearby_limit", DEFAULT_NEARBY_LIMIT)),
        follow_store_path=str(Path(follow_path).expanduser()) if follow_path else None,
    )


def load_credentials() -> Credentials:
    """Read sign-in credentials from the environment (blank → None)."""
    username = os.getenv("MEJOUR_USERNAME", "").strip() or None
    password = os.getenv("MEJOUR_PASSWORD", "") or None
    return Credentials(username=username, password=password)
