"""Agent activity tracking.

Turns ``agent`` event payloads into ``ActivityRecord`` objects and picks a
single session whose activity is surfaced to observers.

Selection rules, applied to every incoming record:

1. The record replaces the cached record for its session.
2. An active main session is displayed immediately.
3. A displayed session that is still active is kept until the debounce
   window (3 seconds) since the last switch has elapsed.
4. Otherwise any active main session in the cache wins.
5. Otherwise the incoming session is displayed if it is active.
6. Otherwise nothing is displayed.
"""

import logging
import time
from typing import Any, Callable, Dict, Mapping, Optional

from .models import ActivityKind, ActivityRecord

logger = logging.getLogger(__name__)


MAX_LABEL_LENGTH = 60
SESSION_SWITCH_DEBOUNCE = 3.0

ELLIPSIS = "…"

_TOOL_KINDS = {
    "exec": ActivityKind.EXEC,
    "read": ActivityKind.READ,
    "write": ActivityKind.WRITE,
    "edit": ActivityKind.EDIT,
    "web_search": ActivityKind.SEARCH,
    "web_fetch": ActivityKind.SEARCH,
    "browser": ActivityKind.BROWSER,
    "message": ActivityKind.MESSAGE,
}

_FINISHED_JOB_STATES = ("done", "error")


# =============================================================================
# Labels
# =============================================================================

def truncate_label(text: str, max_len: int = MAX_LABEL_LENGTH) -> str:
    """Cut text longer than max_len to max_len - 1 characters plus an ellipsis."""
    if not text or len(text) <= max_len:
        return text
    return text[:max_len - 1] + ELLIPSIS


def shorten_path(path: str) -> str:
    """Render a path as its last two segments.

    ``/a/b/c/d.txt`` becomes ``…/c/d.txt``; paths with two segments or fewer
    are reduced to the leaf.
    """
    if not path:
        return path
    parts = path.replace("\\", "/").split("/")
    if len(parts) > 2:
        return f"{ELLIPSIS}/{parts[-2]}/{parts[-1]}"
    return parts[-1]


def classify_tool(tool_name: str) -> ActivityKind:
    return _TOOL_KINDS.get((tool_name or "").lower(), ActivityKind.TOOL)


def _str_arg(args: Mapping[str, Any], name: str) -> Optional[str]:
    value = args.get(name)
    return value if isinstance(value, str) else None


def describe_tool_args(args: Any, tool_name: str = "") -> str:
    """Build a short label for a tool call from its arguments.

    Arguments are inspected in order: ``command`` (first line), ``path`` or
    ``file_path``, ``query``, ``url``. Falls back to the tool name.
    """
    if isinstance(args, Mapping):
        command = _str_arg(args, "command")
        if command is not None:
            return truncate_label(command.split("\n")[0])
        path = _str_arg(args, "path")
        if path is None:
            path = _str_arg(args, "file_path")
        if path is not None:
            return shorten_path(path)
        for name in ("query", "url"):
            value = _str_arg(args, name)
            if value is not None:
                return truncate_label(value)
    return tool_name


# =============================================================================
# Agent events
# =============================================================================

def _payload_data(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    data = payload.get("data")
    return data if isinstance(data, Mapping) else {}


def job_activity(session_key: str, is_main: bool, payload: Mapping[str, Any]) -> ActivityRecord:
    state = _payload_data(payload).get("state")
    if not isinstance(state, str) or not state:
        state = "unknown"
    kind = ActivityKind.IDLE if state in _FINISHED_JOB_STATES else ActivityKind.JOB
    return ActivityRecord(
        session_key=session_key,
        is_main=is_main,
        kind=kind,
        stream="job",
        state=state,
        label=f"Job: {state}",
    )


def tool_activity(session_key: str, is_main: bool, payload: Mapping[str, Any]) -> ActivityRecord:
    data = _payload_data(payload)
    phase = data.get("phase") if isinstance(data.get("phase"), str) else ""
    tool_name = data.get("name") if isinstance(data.get("name"), str) else ""

    label = describe_tool_args(data.get("args"), tool_name) or tool_name
    kind = classify_tool(tool_name)
    if phase == "result":
        kind = ActivityKind.IDLE

    return ActivityRecord(
        session_key=session_key,
        is_main=is_main,
        kind=kind,
        stream="tool",
        state=phase,
        tool_name=tool_name,
        label=label,
    )


def activity_from_agent_event(
    session_key: str,
    is_main: bool,
    payload: Mapping[str, Any],
) -> Optional[ActivityRecord]:
    """Decode the ``stream`` of an agent event payload.

    Returns:
        An ActivityRecord for ``job`` and ``tool`` streams, None otherwise.
    """
    stream = payload.get("stream")
    if stream == "job":
        return job_activity(session_key, is_main, payload)
    if stream == "tool":
        return tool_activity(session_key, is_main, payload)
    return None


# =============================================================================
# Selection
# =============================================================================

class ActivitySelector:
    """Chooses which session's activity is displayed.

    Attributes:
        debounce: Seconds a displayed active session is kept before another
            non-main session may replace it.
    """

    def __init__(
        self,
        debounce: float = SESSION_SWITCH_DEBOUNCE,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self.debounce = debounce
        self._clock = clock
        self._logger = logger or logging.getLogger(__name__)
        self._activities: Dict[str, ActivityRecord] = {}
        self._displayed_key: Optional[str] = None
        self._last_switch: Optional[float] = None

    @property
    def displayed_key(self) -> Optional[str]:
        return self._displayed_key

    @property
    def displayed(self) -> Optional[ActivityRecord]:
        if self._displayed_key is None:
            return None
        return self._activities.get(self._displayed_key)

    def activities(self) -> Dict[str, ActivityRecord]:
        """Copy of the per-session activity cache."""
        return dict(self._activities)

    def update(self, record: ActivityRecord) -> Optional[ActivityRecord]:
        """Cache a record and return the activity to display (None if idle)."""
        self._activities[record.session_key] = record
        now = self._clock()

        if record.is_main and not record.is_idle:
            return self._select(record, now)

        current = self.displayed
        if current is not None and not current.is_idle:
            if self._last_switch is not None and now - self._last_switch < self.debounce:
                return current

        for activity in self._activities.values():
            if activity.is_main and not activity.is_idle:
                return self._select(activity, now)

        if not record.is_idle:
            return self._select(record, now)

        if self._displayed_key is not None:
            self._logger.debug("No active session, clearing displayed activity")
        self._displayed_key = None
        return None

    def _select(self, record: ActivityRecord, now: float) -> ActivityRecord:
        if record.session_key != self._displayed_key:
            self._logger.debug(f"Displaying activity of session {record.session_key}")
        self._displayed_key = record.session_key
        self._last_switch = now
        return record

    def clear(self) -> None:
        self._activities.clear()
        self._displayed_key = None
        self._last_switch = None


__all__ = [
    "ActivitySelector",
    "MAX_LABEL_LENGTH",
    "SESSION_SWITCH_DEBOUNCE",
    "activity_from_agent_event",
    "classify_tool",
    "describe_tool_args",
    "job_activity",
    "shorten_path",
    "tool_activity",
    "truncate_label",
]
