"""Data model shared by the gateway client components.

All records are plain dataclasses. Consumers receive copies, so mutating a
returned record never affects the client's internal state.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utc_now() -> datetime:
    """Timezone-aware current time."""
    return datetime.now(timezone.utc)


class ConnectionState(str, Enum):
    """Connection state of the gateway client.

    States:
        DISCONNECTED: No transport, no handshake.
        CONNECTING: Transport opening or waiting for the handshake.
        CONNECTED: Handshake accepted (``hello-ok`` received).
        ERROR: Last connection attempt or transport failed.
    """
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class ActivityKind(str, Enum):
    """What a session is currently doing."""
    IDLE = "idle"
    JOB = "job"
    EXEC = "exec"
    READ = "read"
    WRITE = "write"
    EDIT = "edit"
    SEARCH = "search"
    BROWSER = "browser"
    MESSAGE = "message"
    TOOL = "tool"

    @property
    def glyph(self) -> str:
        return _GLYPHS[self]


_GLYPHS = {
    ActivityKind.IDLE: "",
    ActivityKind.JOB: "⚡",
    ActivityKind.EXEC: "💻",
    ActivityKind.READ: "📄",
    ActivityKind.WRITE: "✍️",
    ActivityKind.EDIT: "📝",
    ActivityKind.SEARCH: "🔍",
    ActivityKind.BROWSER: "🌐",
    ActivityKind.MESSAGE: "💬",
    ActivityKind.TOOL: "🛠️",
}


@dataclass
class Session:
    """A logical unit of agent work on the gateway.

    Attributes:
        key: Stable unique identifier (e.g. ``agent:main:main``).
        is_main: Whether this is the main agent session.
        status: Free-form status reported by the gateway.
        model: Model name, if reported.
        channel: Channel the session is bound to, if any.
        started_at: When the session started, if reported.
        current_activity: Display text of the latest non-idle activity.
        last_seen: When the session was last reported or active.
    """
    key: str
    is_main: bool = False
    status: str = "unknown"
    model: Optional[str] = None
    channel: Optional[str] = None
    started_at: Optional[datetime] = None
    current_activity: Optional[str] = None
    last_seen: datetime = field(default_factory=utc_now)

    @property
    def short_key(self) -> str:
        """Last colon-separated segment of the key."""
        return self.key.rsplit(":", 1)[-1] or self.key


@dataclass(frozen=True)
class ActivityRecord:
    """The latest activity reported for a session."""
    session_key: str
    is_main: bool
    kind: ActivityKind
    state: str = ""
    stream: str = ""
    tool_name: Optional[str] = None
    label: str = ""

    @property
    def is_idle(self) -> bool:
        return self.kind == ActivityKind.IDLE

    @property
    def display_text(self) -> str:
        if self.is_idle or not self.label:
            return self.label
        return f"{self.kind.glyph} {self.label}"


@dataclass
class UsageSnapshot:
    """Most recent token/cost usage reported by the gateway."""
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost_usd: float = 0.0
    request_count: int = 0
    model: Optional[str] = None

    @property
    def display_text(self) -> str:
        text = f"{self.total_tokens:,} tokens"
        if self.cost_usd:
            text += f" · ${self.cost_usd:.2f}"
        if self.request_count:
            text += f" · {self.request_count} requests"
        return text


@dataclass
class ChannelStatus:
    """Health of one messaging channel (telegram, whatsapp, ...)."""
    name: str
    status: str = "unknown"
    linked: bool = False
    auth_age: Optional[str] = None
    error: Optional[str] = None
    type: Optional[str] = None

    @property
    def display_text(self) -> str:
        text = f"{self.name}: {self.status}"
        if self.auth_age:
            text += f" ({self.auth_age})"
        if self.error:
            text += f" - {self.error}"
        return text


@dataclass(frozen=True)
class NotificationEvent:
    """A user-facing notification derived from gateway text."""
    title: str
    message: str
    category: str


__all__ = [
    "ActivityKind",
    "ActivityRecord",
    "ChannelStatus",
    "ConnectionState",
    "NotificationEvent",
    "Session",
    "UsageSnapshot",
    "utc_now",
]
