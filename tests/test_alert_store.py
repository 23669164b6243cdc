"""
Unit tests for the SQLite alert store.
"""

import sqlite3
from datetime import datetime, timezone
from unittest.mock import patch

import pytest

from vinted_scout.models.alert import AlertMatch
from vinted_scout.services.alert_store import AlertStore


@pytest.mark.unit
class TestAlerts:
    def test_create_and_get(self, store):
        alert = store.create_alert("Mario Kart 8 Deluxe", 30.0, platform="switch")

        loaded = store.get_alert(alert.id)

        assert alert.id > 0
        assert loaded.game_title == "Mario Kart 8 Deluxe"
        assert loaded.platform == "switch"
        assert loaded.max_price == 30.0
        assert loaded.is_active
        assert loaded.triggered_count == 0
        assert loaded.triggered_at is None

    def test_create_rejects_invalid_alert(self, store):
        with pytest.raises(ValueError):
            store.create_alert("", 30.0)
        with pytest.raises(ValueError):
            store.create_alert("Zelda", 0)

    def test_get_missing_alert(self, store):
        assert store.get_alert(999) is None

    def test_list_active_alerts(self, store):
        first = store.create_alert("Zelda", 20.0)
        second = store.create_alert("Metroid", 25.0)
        store.create_alert("Kirby", 15.0, is_active=False)

        store.set_alert_active(second.id, False)

        assert [alert.id for alert in store.list_active_alerts()] == [first.id]

    def test_creates_parent_directory(self, tmp_path):
        AlertStore(str(tmp_path / "nested" / "dir" / "scout.db"))

        assert (tmp_path / "nested" / "dir" / "scout.db").exists()


@pytest.mark.unit
class TestMatches:
    def test_insert_match_is_idempotent(self, store):
        alert = store.create_alert("Zelda", 20.0)

        assert store.insert_match(AlertMatch(alert.id, 42, "title match"))
        assert not store.insert_match(AlertMatch(alert.id, 42, "title match again"))
        assert store.insert_match(AlertMatch(alert.id, 43, "title match"))

        matches = store.list_matches(alert.id)
        assert [match.item_id for match in matches] == [42, 43]
        assert matches[0].match_reason == "title match"

    def test_same_item_for_different_alerts(self, store):
        zelda = store.create_alert("Zelda", 20.0)
        link = store.create_alert("Link", 20.0)

        assert store.insert_match(AlertMatch(zelda.id, 42, "a"))
        assert store.insert_match(AlertMatch(link.id, 42, "b"))

    def test_record_trigger(self, store):
        alert = store.create_alert("Zelda", 20.0)
        when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        store.record_trigger(alert.id, 2, when)
        store.record_trigger(alert.id, 0, datetime(2030, 1, 1, tzinfo=timezone.utc))

        loaded = store.get_alert(alert.id)
        assert loaded.triggered_count == 2
        assert loaded.triggered_at == when

    def test_insert_match_retried_when_database_locked(self, store):
        alert = store.create_alert("Zelda", 20.0)
        real_connect = sqlite3.connect
        calls = []

        def locked_once(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                raise sqlite3.OperationalError("database is locked")
            return real_connect(*args, **kwargs)

        with patch("vinted_scout.services.alert_store.sqlite3.connect", side_effect=locked_once), \
                patch("vinted_scout.utils.error_handling.time.sleep") as sleep:
            assert store.insert_match(AlertMatch(alert.id, 42, "title match"))

        assert len(calls) == 2
        sleep.assert_called_once()
        assert [m.item_id for m in store.list_matches(alert.id)] == [42]

    def test_record_trigger_gives_up_after_bounded_attempts(self, store):
        alert = store.create_alert("Zelda", 20.0)
        when = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

        with patch("vinted_scout.services.alert_store.sqlite3.connect",
                   side_effect=sqlite3.OperationalError("database is locked")) as connect, \
                patch("vinted_scout.utils.error_handling.time.sleep") as sleep:
            with pytest.raises(sqlite3.OperationalError):
                store.record_trigger(alert.id, 1, when)

        assert connect.call_count == 3
        assert sleep.call_count == 2
        assert store.get_alert(alert.id).triggered_count == 0


@pytest.mark.unit
class TestSeenItems:
    def test_missing_ids_preserves_order(self, store):
        store.mark_seen([2, 4])

        assert store.missing_ids([5, 4, 3, 2, 1, 5]) == [5, 3, 1]

    def test_missing_ids_empty(self, store):
        assert store.missing_ids([]) == []

    def test_mark_seen_counts_new_rows(self, store):
        assert store.mark_seen([1, 2, 2]) == 2
        assert store.mark_seen([2, 3]) == 1

    def test_large_batches(self, store):
        store.mark_seen(range(1, 1200, 2))

        missing = store.missing_ids(range(1, 1201))

        assert len(missing) == 600
        assert missing[:3] == [2, 4, 6]


@pytest.mark.unit
class TestSettings:
    def test_get_and_set(self, store):
        assert store.get_setting("request_delay_ms") is None

        store.set_setting("request_delay_ms", 20000)
        store.set_setting("request_delay_ms", 18000)

        assert store.get_setting("request_delay_ms") == "18000"
