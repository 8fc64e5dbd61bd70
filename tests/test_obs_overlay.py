"""
Tests for the OBS overlay notifier, using a mocked obs-websocket client.
"""

from unittest.mock import MagicMock

from cheevos.notify.notifier import (
    AchievementUnlocked, ErrorMessage, FanoutNotifier, PresenceChanged, RecordingNotifier, Refreshed,
)
from cheevos.notify.obs_overlay import ObsOverlayNotifier


def make_client(popup_item_id=3):
    client = MagicMock()
    client.get_scene_item_list.return_value.scene_items = [
        {"sourceName": "Game Capture", "sceneItemId": 1},
        {"sourceName": "Achievement Popup", "sceneItemId": popup_item_id},
    ]
    return client


def unlocked(duration=15.0):
    return AchievementUnlocked(7, "First Steps", "Do the thing", "", 10, duration)


class TestObsOverlay:
    def test_unlock_shows_popup(self):
        client = make_client()
        overlay = ObsOverlayNotifier("Stream", client=client)
        overlay.push(unlocked())

        source, settings, overlay_flag = client.set_input_settings.call_args[0]
        assert source == "Achievement Popup"
        assert "First Steps" in settings["text"]
        assert overlay_flag is True
        client.set_scene_item_enabled.assert_called_with("Stream", 3, True)
        overlay.close()

    def test_close_hides_popup_and_disconnects(self):
        client = make_client()
        overlay = ObsOverlayNotifier("Stream", client=client)
        overlay.push(unlocked(duration=60.0))
        overlay.close()

        assert overlay._hide_timer is None
        client.set_scene_item_enabled.assert_called_with("Stream", 3, False)
        client.disconnect.assert_called_once()

    def test_presence_updates_text_only(self):
        client = make_client()
        overlay = ObsOverlayNotifier("Stream", client=client)
        overlay.push(PresenceChanged("Level 3"))
        client.set_input_settings.assert_called_once_with("Rich Presence", {"text": "Level 3"}, True)
        client.set_scene_item_enabled.assert_not_called()

    def test_error_message_shown(self):
        client = make_client()
        overlay = ObsOverlayNotifier("Stream", client=client)
        overlay.push(ErrorMessage("Login failed", 10.0))
        assert client.set_input_settings.call_args[0][1] == {"text": "Login failed"}
        overlay.close()

    def test_refresh_ignored(self):
        client = make_client()
        ObsOverlayNotifier("Stream", client=client).push(Refreshed(42))
        client.set_input_settings.assert_not_called()

    def test_missing_popup_source(self):
        client = make_client()
        client.get_scene_item_list.return_value.scene_items = []
        overlay = ObsOverlayNotifier("Stream", client=client)
        overlay.push(unlocked())
        client.set_scene_item_enabled.assert_not_called()
        overlay.close()

    def test_obs_failure_does_not_raise(self):
        client = make_client()
        client.set_input_settings.side_effect = ConnectionError("OBS closed")
        overlay = ObsOverlayNotifier("Stream", client=client)
        overlay.push(PresenceChanged("Level 3"))
        assert overlay._client is None


class TestFanout:
    def test_failing_sink_does_not_stop_others(self):
        broken = MagicMock()
        broken.push.side_effect = RuntimeError("sink down")
        recorder = RecordingNotifier()
        FanoutNotifier(broken, recorder).push(Refreshed(1))
        assert recorder.events == [Refreshed(1)]
