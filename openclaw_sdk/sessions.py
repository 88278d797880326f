"""Session table reconciliation.

The gateway reports sessions in two shapes:

- a list of objects, each carrying an explicit ``key``;
- a keyed map whose values are objects, bare status strings, or unrelated
  metadata (numbers, paths, counters).

Each entry is decoded into either a ``Session`` or a ``Skip`` marker that
records why the entry is not a session. Every successful parse replaces the
whole table.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Union

from .errors import ProtocolError
from .models import Session, utc_now

logger = logging.getLogger(__name__)


# Keys of the map shape that carry metadata, never sessions.
METADATA_KEYS = frozenset({"recent", "count", "path", "defaults", "ts"})


@dataclass(frozen=True)
class Skip:
    """Marker for a wire entry that is not a session."""
    key: str
    reason: str


DecodedEntry = Union[Session, Skip]


def is_main_session_key(key: str) -> bool:
    """Infer from the key alone whether a session is the main session."""
    return key == "main" or key.endswith(":main") or ":main:main" in key


def looks_like_session_key(key: str) -> bool:
    return ":" in key or "agent" in key or "session" in key


def _looks_like_path(value: str) -> bool:
    return value.startswith("/") or "/." in value


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 string or epoch milliseconds into a UTC datetime."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value:
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed
    return None


def _optional_str(item: Dict[str, Any], name: str) -> Optional[str]:
    value = item.get(name)
    return value if isinstance(value, str) else None


def _session_from_object(key: str, item: Dict[str, Any], now: datetime) -> Session:
    is_main = is_main_session_key(key)
    # An explicit flag can only promote a session to main.
    if item.get("isMain") is True:
        is_main = True

    status = item.get("status")
    last_seen = parse_timestamp(item.get("lastSeen")) or parse_timestamp(item.get("updatedAt"))

    return Session(
        key=key,
        is_main=is_main,
        status=status if isinstance(status, str) and status else "unknown",
        model=_optional_str(item, "model"),
        channel=_optional_str(item, "channel"),
        started_at=parse_timestamp(item.get("startedAt")),
        last_seen=last_seen or now,
    )


def decode_list_item(item: Any, now: Optional[datetime] = None) -> DecodedEntry:
    """Decode one element of the list shape."""
    now = now or utc_now()
    if not isinstance(item, dict):
        return Skip(key="?", reason=f"list item is {type(item).__name__}, not an object")
    key = item.get("key")
    if not isinstance(key, str) or not key:
        return Skip(key="?", reason="list item has no key")
    return _session_from_object(key, item, now)


def decode_map_entry(key: str, value: Any, now: Optional[datetime] = None) -> DecodedEntry:
    """Decode one entry of the keyed-map shape."""
    now = now or utc_now()
    if key in METADATA_KEYS:
        return Skip(key=key, reason="metadata key")
    if not looks_like_session_key(key):
        return Skip(key=key, reason="not a session key")

    if isinstance(value, dict):
        return _session_from_object(key, value, now)
    if isinstance(value, bool):
        return Skip(key=key, reason="boolean value")
    if isinstance(value, (int, float)):
        return Skip(key=key, reason="numeric metadata")
    if isinstance(value, str):
        if _looks_like_path(value):
            return Skip(key=key, reason="path value")
        return Session(key=key, is_main=is_main_session_key(key), status=value or "unknown", last_seen=now)
    return Skip(key=key, reason=f"unsupported value type {type(value).__name__}")


def parse_sessions(payload: Any, now: Optional[datetime] = None) -> List[Session]:
    """Decode a ``sessions`` payload into sessions, dropping skipped entries.

    Raises:
        ProtocolError: If the payload is neither a list nor an object.
    """
    now = now or utc_now()
    if isinstance(payload, list):
        decoded: Iterable[DecodedEntry] = (decode_list_item(item, now) for item in payload)
    elif isinstance(payload, dict):
        decoded = (decode_map_entry(str(k), v, now) for k, v in payload.items())
    else:
        raise ProtocolError(f"Unsupported sessions payload: {type(payload).__name__}")

    sessions: Dict[str, Session] = {}
    for entry in decoded:
        if isinstance(entry, Skip):
            logger.debug(f"Skipping session entry {entry.key!r}: {entry.reason}")
            continue
        sessions[entry.key] = entry
    return list(sessions.values())


def sort_sessions(sessions: Iterable[Session]) -> List[Session]:
    """Main session first, then most recently seen first."""
    by_recency = sorted(sessions, key=lambda s: s.last_seen, reverse=True)
    return sorted(by_recency, key=lambda s: not s.is_main)


class SessionRegistry:
    """Canonical table of gateway sessions keyed by session key.

    Only the receive loop writes to the registry; readers get copies from
    ``snapshot()``.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger(__name__)
        self._sessions: Dict[str, Session] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, key: str) -> bool:
        return key in self._sessions

    def replace_all(self, sessions: Iterable[Session]) -> List[Session]:
        """Replace the whole table and return the new snapshot."""
        self._sessions = {s.key: replace(s) for s in sessions}
        return self.snapshot()

    def apply_payload(self, payload: Any) -> Optional[List[Session]]:
        """Parse a ``sessions`` payload and replace the table.

        Returns:
            The new snapshot, or None if the payload could not be parsed
            (the previous table is kept).
        """
        try:
            sessions = parse_sessions(payload)
        except ProtocolError as e:
            self._logger.warning(f"Failed to parse sessions: {e}")
            return None
        self._logger.debug(f"Session table refreshed: {len(sessions)} session(s)")
        return self.replace_all(sessions)

    def touch(self, key: str, is_main: bool, current_activity: Optional[str]) -> List[Session]:
        """Record activity for a session, adding it if the gateway has not listed it yet."""
        session = self._sessions.get(key)
        if session is None:
            session = Session(key=key, is_main=is_main or is_main_session_key(key), status="active")
            self._sessions[key] = session
        session.current_activity = current_activity
        session.last_seen = utc_now()
        return self.snapshot()

    def get(self, key: str) -> Optional[Session]:
        session = self._sessions.get(key)
        return replace(session) if session else None

    def is_main(self, key: str) -> bool:
        session = self._sessions.get(key)
        if session is not None:
            return session.is_main
        return is_main_session_key(key)

    def snapshot(self) -> List[Session]:
        """Copies of all sessions in presentation order."""
        return [replace(s) for s in sort_sessions(self._sessions.values())]

    def clear(self) -> None:
        self._sessions.clear()


__all__ = [
    "METADATA_KEYS",
    "SessionRegistry",
    "Skip",
    "decode_list_item",
    "decode_map_entry",
    "is_main_session_key",
    "parse_sessions",
    "parse_timestamp",
    "sort_sessions",
]
