"""Parsing of channel health and usage payloads."""

import logging
import math
from typing import Any, List, Mapping, Optional

from .errors import ProtocolError
from .models import ChannelStatus, UsageSnapshot

logger = logging.getLogger(__name__)


def _flag(value: Mapping[str, Any], name: str) -> bool:
    return value.get(name) is True


def _optional_str(value: Mapping[str, Any], name: str) -> Optional[str]:
    item = value.get(name)
    return item if isinstance(item, str) else None


def derive_channel_status(value: Mapping[str, Any]) -> str:
    """Unified status string for a channel entry.

    An explicit ``status`` wins. Otherwise a recorded ``lastError`` means
    "error", a running channel is "running", and a configured channel with
    no error is "ready" (a configured Telegram bot token or a linked
    WhatsApp account has already been validated).
    """
    status = value.get("status")
    if isinstance(status, str):
        return status or "unknown"
    if value.get("lastError") is not None:
        return "error"
    if _flag(value, "running"):
        return "running"
    if _flag(value, "configured"):
        return "ready"
    return "not configured"


def parse_channel_health(channels: Any) -> List[ChannelStatus]:
    """Decode a ``channels`` object keyed by channel name.

    Raises:
        ProtocolError: If ``channels`` is not an object.
    """
    if not isinstance(channels, Mapping):
        raise ProtocolError(f"Unsupported channels payload: {type(channels).__name__}")

    result: List[ChannelStatus] = []
    for name, value in channels.items():
        if not isinstance(value, Mapping):
            logger.debug(f"Skipping channel {name!r}: value is {type(value).__name__}")
            continue
        result.append(ChannelStatus(
            name=str(name),
            status=derive_channel_status(value),
            linked=_flag(value, "linked"),
            auth_age=_optional_str(value, "authAge"),
            error=_optional_str(value, "error"),
            type=_optional_str(value, "type"),
        ))
    return result


def _number(value: Mapping[str, Any], name: str, cast: type) -> Any:
    item = value.get(name)
    if isinstance(item, bool) or not isinstance(item, (int, float)) or not math.isfinite(item):
        return cast(0)
    return cast(item)


def parse_usage(usage: Any) -> UsageSnapshot:
    """Decode a ``usage`` object.

    Raises:
        ProtocolError: If ``usage`` is not an object.
    """
    if not isinstance(usage, Mapping):
        raise ProtocolError(f"Unsupported usage payload: {type(usage).__name__}")
    return UsageSnapshot(
        input_tokens=_number(usage, "inputTokens", int),
        output_tokens=_number(usage, "outputTokens", int),
        total_tokens=_number(usage, "totalTokens", int),
        cost_usd=_number(usage, "cost", float),
        request_count=_number(usage, "requestCount", int),
        model=_optional_str(usage, "model"),
    )


__all__ = [
    "derive_channel_status",
    "parse_channel_health",
    "parse_usage",
]
