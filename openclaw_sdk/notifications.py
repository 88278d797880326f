"""Notification classification.

Maps free text coming from the gateway to a notification category and a
fixed display title. Keyword groups are tested in order; the first group
with a match wins.
"""

import re
from enum import Enum
from typing import List, Pattern, Tuple

from .models import NotificationEvent

MAX_MESSAGE_LENGTH = 200


class NotificationCategory(str, Enum):
    HEALTH = "health"
    URGENT = "urgent"
    REMINDER = "reminder"
    STOCK = "stock"
    EMAIL = "email"
    CALENDAR = "calendar"
    ERROR = "error"
    BUILD = "build"
    INFO = "info"


TITLES = {
    NotificationCategory.HEALTH: "🩸 Blood Sugar Alert",
    NotificationCategory.URGENT: "🚨 Urgent Alert",
    NotificationCategory.REMINDER: "⏰ Reminder",
    NotificationCategory.STOCK: "📦 Stock Alert",
    NotificationCategory.EMAIL: "📧 Email",
    NotificationCategory.CALENDAR: "📅 Calendar",
    NotificationCategory.ERROR: "⚠️ Error",
    NotificationCategory.BUILD: "🔨 Build",
    NotificationCategory.INFO: "🤖 OpenClaw",
}


def _keywords(*words: str) -> Pattern[str]:
    return re.compile("|".join(re.escape(w) for w in words))


# Order matters: error is checked before build.
_RULES: List[Tuple[NotificationCategory, Pattern[str]]] = [
    (NotificationCategory.HEALTH, _keywords("blood sugar", "glucose", "cgm", "mg/dl")),
    (NotificationCategory.URGENT, _keywords("urgent", "critical", "emergency")),
    (NotificationCategory.REMINDER, _keywords("reminder")),
    (NotificationCategory.STOCK, _keywords("stock", "in stock", "available now")),
    (NotificationCategory.EMAIL, _keywords("email", "inbox", "gmail")),
    (NotificationCategory.CALENDAR, _keywords("calendar", "meeting", "event")),
    (NotificationCategory.ERROR, _keywords("error", "exception")),
    (NotificationCategory.BUILD, re.compile(r"build|\bci\b|deploy")),
]


def classify_notification(text: str) -> NotificationCategory:
    """Return the category for a piece of notification text."""
    lower = (text or "").lower()
    for category, pattern in _RULES:
        if pattern.search(lower):
            return category
    return NotificationCategory.INFO


def title_for(category: NotificationCategory) -> str:
    return TITLES[category]


def build_notification(text: str) -> NotificationEvent:
    """Classify text and wrap it in a NotificationEvent.

    Messages longer than 200 characters are cut and end with an ellipsis.
    """
    category = classify_notification(text)
    message = text if len(text) <= MAX_MESSAGE_LENGTH else text[:MAX_MESSAGE_LENGTH] + "…"
    return NotificationEvent(title=title_for(category), message=message, category=category.value)


__all__ = [
    "MAX_MESSAGE_LENGTH",
    "NotificationCategory",
    "TITLES",
    "build_notification",
    "classify_notification",
    "title_for",
]
