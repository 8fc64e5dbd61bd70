"""
Tests for the engine lifecycle: login/logout, settings changes, shutdown.
"""

from dataclasses import replace

import pytest

from cheevos.config import KEY_LOGIN_TIMESTAMP, KEY_TOKEN, KEY_USERNAME, SETTINGS_SECTION
from cheevos.exceptions import ConfigError
from cheevos.notify.notifier import ErrorMessage, Refreshed
from cheevos.tracking.fetcher import FetchState

from conftest import GAME_CRC, GAME_PATH, OTHER_GAME_CRC, OTHER_GAME_PATH


class TestLogin:
    def test_sync_login_stores_credentials(self, make_engine):
        engine = make_engine(logged_in=False)
        assert engine.login("player", "hunter2")
        assert engine.is_logged_in
        assert engine.username == "player"
        assert engine.settings.get_string(SETTINGS_SECTION, KEY_TOKEN) == "session-token"
        assert engine.settings.get_string(SETTINGS_SECTION, KEY_LOGIN_TIMESTAMP).isdigit()

    def test_login_while_inactive_only_persists(self, make_engine, transport):
        engine = make_engine(logged_in=False, enabled=False)
        assert not engine.active
        assert engine.login("player", "hunter2")
        assert engine.settings.get_string(SETTINGS_SECTION, KEY_USERNAME) == "player"
        assert not engine.is_logged_in
        assert len(transport.requests_of("login")) == 1

    def test_rejected_login_while_inactive_keeps_old_session(self, make_engine, transport):
        transport.respond("login", {"Success": False, "Error": "Invalid password"})
        engine = make_engine(logged_in=False, enabled=False)
        engine.settings.set_string(SETTINGS_SECTION, KEY_USERNAME, "olduser")
        engine.settings.set_string(SETTINGS_SECTION, KEY_TOKEN, "old-token")

        assert not engine.login("player", "wrong")
        assert engine.settings.get_string(SETTINGS_SECTION, KEY_USERNAME) == "olduser"
        assert any("Invalid password" in e.message for e in engine.notifier.of_type(ErrorMessage))

    def test_empty_credentials_raise(self, make_engine):
        engine = make_engine(logged_in=False)
        with pytest.raises(ConfigError):
            engine.login("player", "")

    def test_rejected_when_already_logged_in(self, make_engine, transport):
        engine = make_engine()
        assert not engine.login("player", "hunter2")
        assert transport.requests_of("login") == []

    def test_server_rejection(self, make_engine, transport):
        transport.respond("login", {"Success": False, "Error": "Invalid password"})
        engine = make_engine(logged_in=False)
        assert not engine.login("player", "wrong")
        assert not engine.is_logged_in
        errors = engine.notifier.of_type(ErrorMessage)
        assert any("Invalid password" in e.message for e in errors)

    def test_async_login_completes_on_frame(self, make_engine):
        engine = make_engine(logged_in=False)
        assert engine.login_async("player", "hunter2")
        assert not engine.login_async("player", "hunter2")
        engine.wait_for_requests()
        assert engine.is_logged_in

    def test_login_identifies_running_game(self, make_engine, transport):
        engine = make_engine(logged_in=False)
        engine.game_changed(GAME_CRC, GAME_PATH)
        engine.wait_for_requests()
        assert transport.requests_of("gameid") == []

        engine.login("player", "hunter2")
        engine.wait_for_requests()
        assert engine.fetch_state == FetchState.READY
        assert engine.has_active_game


class TestLogout:
    def test_logout_clears_everything(self, ready_engine):
        engine = ready_engine()
        engine.logout()
        assert not engine.is_logged_in
        assert not engine.has_active_game
        assert engine.achievement_count == 0
        assert engine.runtime.achievements == {}
        assert engine.settings.get_string(SETTINGS_SECTION, KEY_TOKEN) == ""
        assert engine.notifier.events[-1] == Refreshed(0)

    def test_in_flight_fetch_discarded(self, ready_engine, transport):
        engine = ready_engine()
        transport.hold()
        engine.game_changed(OTHER_GAME_CRC, OTHER_GAME_PATH)
        engine.logout()
        transport.release()
        engine.wait_for_requests()

        assert len(transport.requests_of("patch")) == 1
        assert engine.fetch_state == FetchState.IDLE
        assert not engine.has_active_game


class TestSettingsChanges:
    def test_restart_on_hardcore_toggle(self, ready_engine, transport):
        engine = ready_engine()
        old_runtime = engine.runtime
        engine.update_settings(replace(engine.config, challenge_mode=True))
        engine.wait_for_requests()

        assert engine.runtime is not old_runtime
        assert engine.challenge_mode
        assert engine.fetch_state == FetchState.READY
        assert transport.requests_of("unlocks")[-1]["h"] == "1"

    def test_no_restart_for_notification_toggle(self, ready_engine):
        engine = ready_engine()
        old_runtime = engine.runtime
        engine.update_settings(replace(engine.config, notifications=False))
        assert engine.runtime is old_runtime
        assert not engine.config.notifications

    def test_disable_shuts_down(self, ready_engine):
        engine = ready_engine()
        engine.update_settings(replace(engine.config, enabled=False))
        assert not engine.active
        assert not engine.has_active_game
        assert not engine.challenge_mode
        engine.do_frame()

    def test_enable_initializes(self, make_engine):
        engine = make_engine(enabled=False)
        engine.update_settings(replace(engine.config, enabled=True))
        assert engine.active
        assert engine.is_logged_in


class TestShutdown:
    def test_shutdown_is_idempotent(self, ready_engine):
        engine = ready_engine()
        engine.shutdown()
        engine.shutdown()
        assert engine.session_client is None
        assert engine.fetch_state == FetchState.IDLE
        assert engine.try_enumerate_leaderboard_entries(5) is None

    def test_game_stopped(self, ready_engine):
        engine = ready_engine()
        engine.game_stopped()
        assert not engine.has_active_game
        assert engine.runtime.achievements == {}

    def test_reset_clears_progress(self, ready_engine):
        engine = ready_engine()
        engine.reset()
        engine.on_paused(True)
        assert engine.has_active_game
