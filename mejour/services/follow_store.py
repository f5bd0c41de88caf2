"""
mejour.services.follow_store — Followed-user set with local persistence
========================================================================

The follow list survives restarts as a small JSON file.  Every mutation is
written through synchronously before the call returns; a failed write raises
:class:`~mejour.errors.StorageFailure` and leaves the in-memory list as it was.
Display names are cached locally and refreshed lazily (see
:mod:`mejour.services.display_names`).
"""

from __future__ import annotations

import json
import logging
import os
import threading
from pathlib import Path

from mejour.constants import avatar_emoji, placeholder_display_name, random_avatar_id
from mejour.errors import StorageFailure
from mejour.models import Friend

logger = logging.getLogger(__name__)


def is_placeholder_name(friend: Friend) -> bool:
    """True when the cached name is missing, blank, or the generated fallback."""
    name = (friend.display_name or "").strip()
    return not name or name == placeholder_display_name(friend.user_id)


class FollowStore:
    """Ordered set of followed users, persisted to *path* on every change.

    Pass ``path=None`` for an in-memory store (tests, ephemeral sessions).
    """

    def __init__(self, path: str | Path | None = None) -> None:
        self._path = Path(path) if path is not None else None
        self._lock = threading.Lock()
        self._friends: list[Friend] = self._load()

    # -------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------
    def _load(self) -> list[Friend]:
        if self._path is None or not self._path.exists():
            return []
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            friends = [Friend.from_dict(item) for item in raw]
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
            logger.warning("Follow store %s is unreadable; starting empty", self._path)
            return []
        logger.info("Loaded %d followed user(s) from %s", len(friends), self._path)
        return friends

    def _persist(self, friends: list[Friend]) -> None:
        """Write *friends* to disk atomically.  Raises StorageFailure."""
        if self._path is None:
            return
        payload = json.dumps([f.to_dict() for f in friends], ensure_ascii=False, indent=2)
        tmp = self._path.with_name(self._path.name + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(payload, encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError as exc:
            logger.warning("Could not write follow store %s: %s", self._path, exc)
            raise StorageFailure(str(self._path), exc.strerror or str(exc)) from exc

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    @property
    def friends(self) -> list[Friend]:
        with self._lock:
            return [Friend(f.user_id, f.avatar_id, f.display_name) for f in self._friends]

    @property
    def ids(self) -> list[int]:
        with self._lock:
            return [f.user_id for f in self._friends]

    def contains(self, user_id: int) -> bool:
        with self._lock:
            return any(f.user_id == user_id for f in self._friends)

    def friend(self, user_id: int) -> Friend | None:
        with self._lock:
            for f in self._friends:
                if f.user_id == user_id:
                    return Friend(f.user_id, f.avatar_id, f.display_name)
        return None

    def display_name(self, user_id: int) -> str:
        f = self.friend(user_id)
        if f is None or not (f.display_name or "").strip():
            return placeholder_display_name(user_id)
        return f.display_name  # type: ignore[return-value]

    def avatar(self, user_id: int) -> str:
        f = self.friend(user_id)
        return avatar_emoji(f.avatar_id if f else None)

    # -------------------------------------------------------------------
    # Mutations (write-through)
    #
    # Each mutation builds the next list, persists it, and only then swaps
    # it in, so a failed write leaves memory matching the file.
    # -------------------------------------------------------------------
    def add(self, user_id: int, display_name: str | None = None) -> bool:
        """Follow *user_id*.  Returns False for non-positive or known ids."""
        if user_id <= 0:
            return False
        with self._lock:
            if any(f.user_id == user_id for f in self._friends):
                return False
            updated = self._friends + [
                Friend(user_id=user_id, avatar_id=random_avatar_id(), display_name=display_name)
            ]
            self._persist(updated)
            self._friends = updated
        logger.info("Now following user %d", user_id)
        return True

    def remove(self, user_id: int) -> bool:
        with self._lock:
            updated = [f for f in self._friends if f.user_id != user_id]
            if len(updated) == len(self._friends):
                return False
            self._persist(updated)
            self._friends = updated
        logger.info("Unfollowed user %d", user_id)
        return True

    def set_display_names(self, names: dict[int, str]) -> int:
        """Apply resolved display names in one write.  Returns how many changed."""
        changed = 0
        with self._lock:
            updated: list[Friend] = []
            for f in self._friends:
                name = names.get(f.user_id)
                if name and name != f.display_name:
                    updated.append(Friend(f.user_id, f.avatar_id, name))
                    changed += 1
                else:
                    updated.append(f)
            if changed:
                self._persist(updated)
                self._friends = updated
        return changed
