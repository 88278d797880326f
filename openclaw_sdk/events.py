"""Wire protocol for the OpenClaw gateway.

Frames are JSON text messages carrying a top-level ``type`` discriminator:

    {"type": "req", "id": "<uuid>", "method": "<name>", "params": {...}}
    {"type": "res", "payload": {...}}
    {"type": "event", "event": "<name>", "sessionKey": "<key>", "payload": {...}}

Requests are sent by the client, responses and events by the gateway.
Responses are not correlated with request ids; consumers route them by the
shape of their payload.

Protocol Version: 3
"""

import json
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .errors import ProtocolError

logger = logging.getLogger(__name__)


PROTOCOL_VERSION = 3


# =============================================================================
# Discriminators
# =============================================================================

class MessageType(str, Enum):
    """Top-level frame types."""
    REQUEST = "req"
    RESPONSE = "res"
    EVENT = "event"


class Method(str, Enum):
    """Request methods understood by the gateway."""
    CONNECT = "connect"
    HEALTH = "health"
    CHAT_SEND = "chat.send"
    SESSIONS_LIST = "sessions.list"
    USAGE = "usage"
    CHANNEL_START = "channel.start"
    CHANNEL_STOP = "channel.stop"


class EventName(str, Enum):
    """Push events consumed by the client."""
    CONNECT_CHALLENGE = "connect.challenge"
    AGENT = "agent"
    HEALTH = "health"
    CHAT = "chat"
    SESSION = "session"


# =============================================================================
# Envelopes
# =============================================================================

@dataclass
class Envelope:
    """Base class for all frames."""
    type: MessageType

    def to_dict(self) -> Dict[str, Any]:
        raise NotImplementedError

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict())


@dataclass
class RequestEnvelope(Envelope):
    """Client -> gateway request."""
    type: MessageType = field(default=MessageType.REQUEST)
    method: str = ""
    params: Optional[Dict[str, Any]] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "type": self.type.value,
            "id": self.id,
            "method": self.method,
        }
        if self.params is not None:
            d["params"] = self.params
        return d


@dataclass
class ResponseEnvelope(Envelope):
    """Gateway -> client response to some earlier request."""
    type: MessageType = field(default=MessageType.RESPONSE)
    payload: Dict[str, Any] = field(default_factory=dict)
    id: Optional[str] = None
    ok: Optional[bool] = None
    error: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"type": self.type.value, "payload": self.payload}
        if self.id is not None:
            d["id"] = self.id
        if self.ok is not None:
            d["ok"] = self.ok
        if self.error is not None:
            d["error"] = self.error
        return d


@dataclass
class EventEnvelope(Envelope):
    """Gateway -> client push event."""
    type: MessageType = field(default=MessageType.EVENT)
    event: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)
    session_key: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "type": self.type.value,
            "event": self.event,
            "payload": self.payload,
        }
        if self.session_key is not None:
            d["sessionKey"] = self.session_key
        return d


Message = Union[RequestEnvelope, ResponseEnvelope, EventEnvelope]


# =============================================================================
# Serialization Helpers
# =============================================================================

def make_request(method: Union[Method, str], params: Optional[Dict[str, Any]] = None) -> RequestEnvelope:
    """Build a request envelope with a fresh unique id."""
    if isinstance(method, Method):
        method = method.value
    return RequestEnvelope(method=method, params=params)


def serialize_message(message: Envelope) -> str:
    """Serialize an envelope to a JSON string."""
    return message.to_json()


def _optional_dict(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ProtocolError(f"Field '{key}' must be an object, got {type(value).__name__}")
    return value


def deserialize_message(json_str: str) -> Message:
    """Deserialize a JSON string into a typed envelope.

    Args:
        json_str: One complete JSON frame.

    Returns:
        The decoded envelope.

    Raises:
        ProtocolError: If the frame is not valid JSON, is not an object,
            has an unknown ``type`` or lacks a required field.
    """
    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ProtocolError(f"Frame must be a JSON object, got {type(data).__name__}")

    msg_type = data.get("type")

    if msg_type == MessageType.RESPONSE.value:
        ok = data.get("ok")
        return ResponseEnvelope(
            payload=_optional_dict(data, "payload"),
            id=data.get("id"),
            ok=ok if isinstance(ok, bool) else None,
            error=data.get("error"),
        )

    if msg_type == MessageType.EVENT.value:
        event = data.get("event")
        if not isinstance(event, str) or not event:
            raise ProtocolError("Event frame without 'event' name")
        session_key = data.get("sessionKey")
        return EventEnvelope(
            event=event,
            payload=_optional_dict(data, "payload"),
            session_key=session_key if isinstance(session_key, str) else None,
        )

    if msg_type == MessageType.REQUEST.value:
        method = data.get("method")
        if not isinstance(method, str) or not method:
            raise ProtocolError("Request frame without 'method'")
        request_id = data.get("id")
        if not isinstance(request_id, str) or not request_id:
            raise ProtocolError("Request frame without 'id'")
        params = data.get("params")
        if params is not None and not isinstance(params, dict):
            raise ProtocolError("Field 'params' must be an object")
        return RequestEnvelope(method=method, params=params, id=request_id)

    raise ProtocolError(f"Unknown frame type: {msg_type!r}")


# =============================================================================
# Framing
# =============================================================================

class FrameBuffer:
    """Accumulates message fragments until the end of a message."""

    def __init__(self) -> None:
        self._parts: List[str] = []

    def feed(self, fragment: Union[str, bytes]) -> None:
        if isinstance(fragment, (bytes, bytearray)):
            fragment = bytes(fragment).decode("utf-8", errors="replace")
        self._parts.append(fragment)

    def take(self) -> str:
        """Return the accumulated message and clear the buffer."""
        text = "".join(self._parts)
        self._parts.clear()
        return text

    def clear(self) -> None:
        self._parts.clear()

    def __len__(self) -> int:
        return sum(len(p) for p in self._parts)


class ProtocolCodec:
    """Encodes outbound requests and decodes inbound frames.

    Inbound data is fed fragment by fragment; ``end_message()`` parses what
    was accumulated. Undecodable frames are logged and dropped so that a
    single bad frame never stops the receive loop.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self._logger = logger or logging.getLogger(__name__)
        self._buffer = FrameBuffer()

    def encode_request(self, method: Union[Method, str], params: Optional[Dict[str, Any]] = None) -> str:
        return serialize_message(make_request(method, params))

    def feed(self, fragment: Union[str, bytes]) -> None:
        self._buffer.feed(fragment)

    def end_message(self) -> Optional[Message]:
        """Parse the buffered fragments as one frame.

        Returns:
            The decoded envelope, or None if the frame was dropped.
        """
        return self.decode(self._buffer.take())

    def decode(self, text: str) -> Optional[Message]:
        if not text.strip():
            return None
        try:
            return deserialize_message(text)
        except ProtocolError as e:
            self._logger.warning(f"Dropping gateway frame: {e}")
            return None

    def reset(self) -> None:
        """Discard a partially received message (e.g. after a disconnect)."""
        self._buffer.clear()


__all__ = [
    "Envelope",
    "EventEnvelope",
    "EventName",
    "FrameBuffer",
    "Message",
    "MessageType",
    "Method",
    "PROTOCOL_VERSION",
    "ProtocolCodec",
    "RequestEnvelope",
    "ResponseEnvelope",
    "deserialize_message",
    "make_request",
    "serialize_message",
]
