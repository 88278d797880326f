"""Tests for openclaw_sdk.notifications: keyword classification."""

import pytest

from openclaw_sdk.notifications import (
    MAX_MESSAGE_LENGTH,
    TITLES,
    NotificationCategory,
    build_notification,
    classify_notification,
)


class TestClassify:
    """First matching keyword group wins."""

    @pytest.mark.parametrize("text,expected", [
        ("Low blood sugar detected", NotificationCategory.HEALTH),
        ("Glucose at 70 mg/dL", NotificationCategory.HEALTH),
        ("URGENT: server down", NotificationCategory.URGENT),
        ("Reminder: call mom", NotificationCategory.REMINDER),
        ("PS5 back in stock", NotificationCategory.STOCK),
        ("3 new emails in your inbox", NotificationCategory.EMAIL),
        ("Meeting at 3pm", NotificationCategory.CALENDAR),
        ("Unhandled exception in worker", NotificationCategory.ERROR),
        ("build failed on CI", NotificationCategory.BUILD),
        ("Deploy finished", NotificationCategory.BUILD),
        ("Hello there", NotificationCategory.INFO),
    ])
    def test_categories(self, text, expected):
        assert classify_notification(text) == expected

    def test_health_beats_urgent(self):
        assert classify_notification("Critical glucose level") == NotificationCategory.HEALTH

    def test_error_beats_build(self):
        assert classify_notification("Build error in step 2") == NotificationCategory.ERROR

    def test_ci_matches_whole_word_only(self):
        assert classify_notification("a special offer") == NotificationCategory.INFO

    def test_empty_text_is_info(self):
        assert classify_notification("") == NotificationCategory.INFO


class TestBuildNotification:

    def test_title_and_category(self):
        n = build_notification("Reminder: stand up")
        assert n.title == TITLES[NotificationCategory.REMINDER]
        assert n.category == "reminder"
        assert n.message == "Reminder: stand up"

    def test_long_message_truncated(self):
        n = build_notification("x" * 300)
        assert len(n.message) == MAX_MESSAGE_LENGTH + 1
        assert n.message.endswith("…")

    def test_message_at_limit_kept(self):
        assert build_notification("y" * 200).message == "y" * 200
