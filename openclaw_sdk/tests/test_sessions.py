"""Tests for openclaw_sdk.sessions: session decoding and the registry."""

from datetime import datetime, timedelta, timezone

import pytest

from openclaw_sdk.errors import ProtocolError
from openclaw_sdk.models import Session
from openclaw_sdk.sessions import (
    SessionRegistry,
    Skip,
    decode_list_item,
    decode_map_entry,
    is_main_session_key,
    parse_sessions,
    parse_timestamp,
    sort_sessions,
)

NOW = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)


class TestMainInference:

    @pytest.mark.parametrize("key", ["main", "agent:main", "agent:main:main", "x:main:main:y"])
    def test_main_keys(self, key):
        assert is_main_session_key(key)

    @pytest.mark.parametrize("key", ["agent:sub1", "mainframe", "agent:main:sub"])
    def test_non_main_keys(self, key):
        assert not is_main_session_key(key)


class TestMapShape:
    """Keyed-map payloads."""

    def test_main_session_from_object(self):
        sessions = parse_sessions({"agent:main:main": {"status": "active"}}, now=NOW)
        assert len(sessions) == 1
        assert sessions[0].key == "agent:main:main"
        assert sessions[0].is_main
        assert sessions[0].status == "active"

    def test_metadata_only_yields_nothing(self):
        assert parse_sessions({"count": 3}, now=NOW) == []

    @pytest.mark.parametrize("key", ["recent", "count", "path", "defaults", "ts"])
    def test_metadata_keys_skipped(self, key):
        entry = decode_map_entry(key, {"status": "active"}, NOW)
        assert isinstance(entry, Skip)

    def test_non_session_key_skipped(self):
        entry = decode_map_entry("version", "1.2.3", NOW)
        assert entry == Skip(key="version", reason="not a session key")

    def test_string_value_is_status(self):
        entry = decode_map_entry("agent:sub1", "idle", NOW)
        assert isinstance(entry, Session)
        assert entry.status == "idle"
        assert not entry.is_main

    @pytest.mark.parametrize("value", ["/home/me/.openclaw/sessions", "data/.cache"])
    def test_path_values_skipped(self, value):
        assert isinstance(decode_map_entry("session:store", value, NOW), Skip)

    @pytest.mark.parametrize("value", [42, 1.5, True, None, ["a"]])
    def test_other_values_skipped(self, value):
        assert isinstance(decode_map_entry("agent:x", value, NOW), Skip)

    def test_status_defaults_to_unknown(self):
        entry = decode_map_entry("agent:x", {}, NOW)
        assert entry.status == "unknown"
        assert entry.last_seen == NOW


class TestListShape:
    """List payloads."""

    def test_items_with_keys(self):
        sessions = parse_sessions([
            {"key": "agent:main:main", "status": "active", "model": "opus"},
            {"key": "agent:sub1", "channel": "telegram"},
        ], now=NOW)
        assert [s.key for s in sessions] == ["agent:main:main", "agent:sub1"]
        assert sessions[0].model == "opus"
        assert sessions[1].channel == "telegram"

    def test_item_without_key_skipped(self):
        assert isinstance(decode_list_item({"status": "active"}, NOW), Skip)
        assert isinstance(decode_list_item({"key": 5}, NOW), Skip)
        assert isinstance(decode_list_item("agent:x", NOW), Skip)

    def test_explicit_is_main_promotes(self):
        session = decode_list_item({"key": "agent:worker", "isMain": True}, NOW)
        assert session.is_main

    def test_explicit_is_main_false_does_not_demote(self):
        session = decode_list_item({"key": "agent:main:main", "isMain": False}, NOW)
        assert session.is_main

    def test_timestamps(self):
        session = decode_list_item({
            "key": "agent:x",
            "startedAt": "2025-01-01T10:00:00Z",
            "lastSeen": 1735732800000,
        }, NOW)
        assert session.started_at == datetime(2025, 1, 1, 10, 0, tzinfo=timezone.utc)
        assert session.last_seen == datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_unsupported_payload_raises(self):
        with pytest.raises(ProtocolError):
            parse_sessions("agent:main", now=NOW)


class TestParseTimestamp:

    def test_invalid_values(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(True) is None
        assert parse_timestamp(None) is None

    def test_naive_iso_is_utc(self):
        assert parse_timestamp("2025-01-01T00:00:00").tzinfo == timezone.utc


class TestOrdering:

    def test_main_first_then_recent(self):
        old = Session(key="agent:a", last_seen=NOW - timedelta(minutes=5))
        new = Session(key="agent:b", last_seen=NOW)
        main = Session(key="main", is_main=True, last_seen=NOW - timedelta(hours=1))
        assert [s.key for s in sort_sessions([old, main, new])] == ["main", "agent:b", "agent:a"]


class TestSessionRegistry:

    def test_apply_payload_replaces_table(self):
        registry = SessionRegistry()
        registry.apply_payload({"agent:a": "active", "agent:b": "idle"})
        snapshot = registry.apply_payload({"agent:c": "active"})
        assert [s.key for s in snapshot] == ["agent:c"]
        assert "agent:a" not in registry
        assert len(registry) == 1

    def test_bad_payload_keeps_previous_table(self, caplog):
        registry = SessionRegistry()
        registry.apply_payload({"agent:a": "active"})
        assert registry.apply_payload(17) is None
        assert "agent:a" in registry
        assert "Failed to parse sessions" in caplog.text

    def test_snapshot_is_a_copy(self):
        registry = SessionRegistry()
        registry.apply_payload({"agent:a": "active"})
        registry.snapshot()[0].status = "mutated"
        assert registry.get("agent:a").status == "active"

    def test_touch_inserts_active_session(self):
        registry = SessionRegistry()
        snapshot = registry.touch("agent:new", False, "💻 ls")
        assert snapshot[0].key == "agent:new"
        assert snapshot[0].status == "active"
        assert snapshot[0].current_activity == "💻 ls"

    def test_touch_updates_existing(self):
        registry = SessionRegistry()
        registry.apply_payload([{"key": "agent:a", "status": "idle"}])
        registry.touch("agent:a", False, "📄 file.txt")
        session = registry.get("agent:a")
        assert session.status == "idle"
        assert session.current_activity == "📄 file.txt"

    def test_is_main_falls_back_to_key(self):
        registry = SessionRegistry()
        registry.apply_payload([{"key": "agent:worker", "isMain": True}])
        assert registry.is_main("agent:worker")
        assert registry.is_main("agent:main:main")
        assert not registry.is_main("agent:other")
