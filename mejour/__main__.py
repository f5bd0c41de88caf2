"""
mejour.__main__ — Entry point for ``python -m mejour``
=======================================================

Wiring:
1. Load .env (credentials).
2. Load config.yaml (soft settings).
3. Build the SyncService (httpx client, auth session, caches).
4. Sign in and warm the caches (places, my posts, followed posts).
5. Log a summary of each map scope.

Run with::

    python -m mejour
"""

from __future__ import annotations

import asyncio
import logging
import sys

from dotenv import load_dotenv

from mejour.config import load_config, load_credentials
from mejour.errors import MejourError
from mejour.models import MapScope
from mejour.services.sync_service import SyncService

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("mejour")


async def _run() -> int:
    cfg = load_config()
    logger.info("Config loaded — Backend: %s", cfg.base_url)

    creds = load_credentials()
    if not creds.username or not creds.password:
        logger.critical(
            "MEJOUR_USERNAME / MEJOUR_PASSWORD are not set.  "
            "Copy .env.example → .env and fill them in."
        )
        return 1

    sync = SyncService.from_config(cfg, creds)
    try:
        user = await sync.sign_in()
        logger.info("Signed in as %s (id=%d)", user.username or user.uuid, user.id)

        places = await sync.refresh()
        logger.info("Canonical places: %d", len(places))
        for scope in MapScope:
            logger.info("  %-9s → %d place(s)", scope, len(sync.scopes.places_for(scope)))
        logger.info("My posts: %d", len(sync.scopes.my_posts()))
    except MejourError as exc:
        logger.error("Sync failed: %s", exc.user_message)
        return 1
    except Exception:
        logger.exception("Unexpected failure during sync")
        return 1
    finally:
        await sync.aclose()
    return 0


def main() -> None:
    """Bootstrap a session and print what the caches hold."""
    load_dotenv()
    sys.exit(asyncio.run(_run()))


if __name__ == "__main__":
    main()
