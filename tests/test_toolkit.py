"""
Tests for the external toolkit adapter and integration selection.
"""

import hashlib
from unittest.mock import MagicMock

import pytest

from cheevos.config import AchievementsConfig
from cheevos.net.mock_transport import MockTransport
from cheevos.runtime.memory import BufferMemory
from cheevos.runtime.mock_runtime import MockRuntime
from cheevos.tracking.engine import Achievements
from cheevos.tracking.toolkit import ToolkitAchievements, create_achievements

from conftest import GAME_CRC, GAME_PATH


def make_toolkit():
    toolkit = MagicMock()
    toolkit.user_name.return_value = "player"
    toolkit.hardcore_mode_active.return_value = True
    toolkit.identify_hash.return_value = 42
    toolkit.confirm_load_new_rom.return_value = True
    return toolkit


@pytest.fixture
def adapter(reader):
    memory = BufferMemory(0x100)
    adapter = ToolkitAchievements(AchievementsConfig(use_toolkit=True), make_toolkit(), memory, reader)
    adapter.initialize()
    return adapter


class TestToolkitAchievements:
    def test_initialize_installs_memory_bank(self, adapter):
        read, write, size = adapter.toolkit.install_memory_bank.call_args[0]
        assert size == 0x100
        write(0x10, 0xAB)
        assert read(0x10) == 0xAB
        assert adapter.memory.peek(0x10, 1) == 0xAB

    def test_hardcore_comes_from_toolkit(self, adapter):
        assert adapter.config.challenge_mode
        assert adapter.is_logged_in
        assert adapter.username == "player"

    def test_game_changed_activates_game(self, adapter, reader):
        adapter.game_changed(GAME_CRC, GAME_PATH)
        expected = hashlib.md5(b"SLUS_209.46" + reader.files[GAME_PATH]).hexdigest()
        adapter.toolkit.identify_hash.assert_called_once_with(expected)
        adapter.toolkit.activate_game.assert_called_once_with(42)
        assert adapter.has_active_game

        adapter.game_changed(GAME_CRC, GAME_PATH)
        assert adapter.toolkit.identify_hash.call_count == 1

    def test_unreadable_game_deactivates(self, adapter):
        adapter.game_changed(GAME_CRC, "cdrom0:\\MISSING.ELF;1")
        adapter.toolkit.identify_hash.assert_not_called()
        adapter.toolkit.activate_game.assert_called_once_with(0)

    def test_session_is_toolkit_owned(self, adapter):
        assert not adapter.login("player", "hunter2")
        assert not adapter.login_async("player", "hunter2")
        adapter.logout()

    def test_save_state_two_pass(self, adapter):
        def capture(buffer):
            if buffer is None:
                return 3
            buffer[:] = b"abc"
            return 3

        adapter.toolkit.capture_state.side_effect = capture
        assert adapter.save_state() == b"abc"

    def test_save_state_nothing_to_save(self, adapter):
        adapter.toolkit.capture_state.return_value = 0
        assert adapter.save_state() == b""

    def test_load_empty_state_resets(self, adapter):
        adapter.load_state(b"")
        adapter.toolkit.on_reset.assert_called_once()
        adapter.toolkit.restore_state.assert_not_called()

        adapter.load_state(b"abc")
        adapter.toolkit.restore_state.assert_called_once_with(b"abc")

    def test_frame_forwarded(self, adapter):
        adapter.do_frame()
        adapter.vsync_update()
        assert adapter.toolkit.do_achievements_frame.call_count == 2

    def test_reset_can_be_vetoed(self, adapter):
        adapter.toolkit.confirm_load_new_rom.return_value = False
        assert not adapter.reset()
        adapter.toolkit.on_reset.assert_not_called()

    def test_shutdown_can_be_vetoed(self, adapter):
        adapter.toolkit.confirm_load_new_rom.return_value = False
        assert not adapter.shutdown()
        assert adapter.active

        adapter.toolkit.confirm_load_new_rom.return_value = True
        assert adapter.shutdown()
        assert not adapter.active
        adapter.toolkit.activate_game.assert_called_with(0)


    def test_queries(self, adapter):
        adapter.toolkit.game_title.return_value = "Test Game"
        assert adapter.game_title == ""
        adapter.game_changed(GAME_CRC, GAME_PATH)

        assert adapter.game_id == 42
        assert adapter.game_title == "Test Game"
        assert adapter.challenge_mode
        assert adapter.achievement_count == 0
        assert adapter.leaderboard_count == 0
        assert adapter.current_points == 0
        assert list(adapter.enumerate_achievements()) == []
        assert adapter.try_enumerate_leaderboard_entries(5) is None
        assert adapter.rich_presence_string == ""


class TestInactiveToolkit:
    def test_nothing_forwarded_before_initialize(self, reader):
        toolkit = make_toolkit()
        adapter = ToolkitAchievements(AchievementsConfig(use_toolkit=True), toolkit, BufferMemory(), reader)

        adapter.game_changed(GAME_CRC, GAME_PATH)
        adapter.do_frame()
        adapter.vsync_update()
        adapter.on_paused(True)
        adapter.load_state(b"abc")
        adapter.game_stopped()

        assert adapter.save_state() == b""
        assert not adapter.reset()
        assert not adapter.has_active_game
        assert not adapter.challenge_mode
        toolkit.identify_hash.assert_not_called()
        toolkit.activate_game.assert_not_called()
        toolkit.do_achievements_frame.assert_not_called()
        toolkit.set_paused.assert_not_called()
        toolkit.restore_state.assert_not_called()
        toolkit.capture_state.assert_not_called()
        toolkit.on_reset.assert_not_called()


class TestCreateAchievements:
    def test_toolkit_selected(self):
        config = AchievementsConfig(use_toolkit=True)
        result = create_achievements(config, BufferMemory(), toolkit=make_toolkit())
        assert isinstance(result, ToolkitAchievements)

    def test_toolkit_missing(self):
        with pytest.raises(ValueError):
            create_achievements(AchievementsConfig(use_toolkit=True), BufferMemory())

    def test_builtin_engine(self):
        config = AchievementsConfig(enabled=True)
        result = create_achievements(config, BufferMemory(), transport=MockTransport(), runtime_factory=MockRuntime)
        assert isinstance(result, Achievements)

    def test_builtin_needs_transport(self):
        with pytest.raises(ValueError):
            create_achievements(AchievementsConfig(), BufferMemory(), runtime_factory=MockRuntime)
