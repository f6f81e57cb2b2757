"""Tests for crmsync.data.db and crmsync.core.preferences — durable settings."""

from unittest.mock import MagicMock

from crmsync.core.preferences import NOTIFICATIONS_ENABLED_KEY, NotificationSettings
from crmsync.data.db import PreferenceDB


class TestPreferenceDB:
    def test_get_missing_returns_none(self, preference_db):
        assert preference_db.get("u1", "anything") is None

    def test_set_then_overwrite(self, preference_db):
        preference_db.set("u1", "theme", "dark")
        preference_db.set("u1", "theme", "light")
        assert preference_db.get("u1", "theme") == "light"

    def test_scoped_per_user(self, preference_db):
        preference_db.set("u1", "theme", "dark")
        assert preference_db.get("u2", "theme") is None

    def test_survives_reopen(self, tmp_db_path):
        PreferenceDB(db_path=tmp_db_path).set("u1", "k", "v")
        assert PreferenceDB(db_path=tmp_db_path).get("u1", "k") == "v"


class TestNotificationSettings:
    def test_enabled_by_default(self, preference_db):
        assert NotificationSettings(preference_db, "u1").enabled is True

    def test_without_db(self):
        settings = NotificationSettings()
        settings.set_enabled(False)
        assert settings.enabled is False

    def test_persists(self, preference_db):
        NotificationSettings(preference_db, "u1").set_enabled(False)
        assert preference_db.get("u1", NOTIFICATIONS_ENABLED_KEY) == "false"
        assert NotificationSettings(preference_db, "u1").enabled is False

    def test_subscribers_notified_on_change_only(self, preference_db):
        settings = NotificationSettings(preference_db, "u1")
        subscriber = MagicMock()
        settings.subscribe(subscriber)

        settings.set_enabled(True)
        settings.set_enabled(False)
        settings.set_enabled(False)
        subscriber.assert_called_once_with(False)

    def test_unsubscribe(self):
        settings = NotificationSettings()
        subscriber = MagicMock()
        unsubscribe = settings.subscribe(subscriber)
        unsubscribe()
        settings.set_enabled(False)
        subscriber.assert_not_called()

    def test_failing_subscriber_does_not_block_others(self):
        settings = NotificationSettings()
        healthy = MagicMock()
        settings.subscribe(MagicMock(side_effect=RuntimeError("boom")))
        settings.subscribe(healthy)
        settings.set_enabled(False)
        healthy.assert_called_once_with(False)
