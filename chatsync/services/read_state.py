"""
Read markers and unread counts.

Markers are client-local: one timestamp per (user, conversation) saved in a
JSON file on this device (or only in memory). They are never written to the
remote store, so read state does not follow a user to another device.
"""

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from chatsync.repositories.message_repository import MessageRepository
from chatsync.schemas.conversation import ConversationRef

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ReadMarkerStore:

    def __init__(self, path: Optional[str] = None) -> None:
        self._path = path or None
        self._markers: Dict[str, Dict[str, datetime]] = {}
        if self._path:
            self._load()

    def get(self, user_id: str, key: str) -> Optional[datetime]:
        return self._markers.get(user_id, {}).get(key)

    def set(self, user_id: str, key: str, value: datetime) -> None:
        self._markers.setdefault(user_id, {})[key] = value
        if self._path:
            self._save()

    def _load(self) -> None:
        if not os.path.exists(self._path):
            return
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            self._markers = {
                user_id: {key: datetime.fromisoformat(ts) for key, ts in markers.items()}
                for user_id, markers in raw.items()
            }
        except (OSError, ValueError, AttributeError) as exc:
            logger.warning("Ignoring unreadable read markers at %s: %s", self._path, exc)
            self._markers = {}

    def _save(self) -> None:
        raw = {
            user_id: {key: ts.isoformat() for key, ts in markers.items()}
            for user_id, markers in self._markers.items()
        }
        directory = os.path.dirname(os.path.abspath(self._path))
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".read_markers_")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(raw, f)
            os.replace(tmp_path, self._path)
        except OSError:
            logger.exception("Failed to persist read markers to %s", self._path)
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)


class ReadStateTracker:

    def __init__(
        self,
        store: ReadMarkerStore,
        message_repo: MessageRepository,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._message_repo = message_repo
        self._clock = clock

    def mark_read(self, ref: ConversationRef, user_id: str) -> datetime:
        now = self._clock()
        self._store.set(user_id, ref.marker_key, now)
        logger.debug("User %s read %s at %s", user_id, ref.marker_key, now.isoformat())
        return now

    async def unread_count(self, ref: ConversationRef, user_id: str) -> int:
        """Messages created after the marker that were not sent by ``user_id``.

        A message stored in the same instant as mark_read may be missed; the
        undercount lasts until the next message arrives.
        """
        since = self._store.get(user_id, ref.marker_key)
        return await self._message_repo.count_since(ref, since, exclude_sender=user_id)
