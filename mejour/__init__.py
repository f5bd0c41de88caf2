"""
Mejour — Client Sync Layer for a Location-Tagged Journal
=========================================================
Keeps a local, deduplicated view of places and posts fetched from the
journal backend, creates places and posts without duplicating them, and
projects the cache into personal, friends and community map scopes.

Package layout::

    mejour/
    ├── config.py          # YAML + env → typed config
    ├── constants.py       # Markers, sentinels, tuning defaults
    ├── errors.py          # Error taxonomy (MejourError subclasses)
    ├── models.py          # Place, Post, Coordinate, enums
    ├── engine/
    │   ├── content.py     # Structured post-body codec
    │   ├── geo.py         # Great-circle distance
    │   ├── place_index.py # Place dedup + nearest-first queries
    │   ├── post_cache.py  # Per-place / per-author post cache
    │   └── scopes.py      # Mine / friends / community projections
    ├── gateway/
    │   ├── http.py        # httpx client + status/decoding helpers
    │   ├── auth.py        # Token login + single re-auth
    │   ├── schemas.py     # Pydantic wire DTOs
    │   ├── mapping.py     # DTO → domain mapping
    │   └── client.py      # Map API endpoints
    └── services/
        ├── sync_service.py  # Single owner of all cache state
        ├── follow_store.py  # Persisted follow list
        └── display_names.py # Name resolution chain
"""

__version__ = "0.1.0"
