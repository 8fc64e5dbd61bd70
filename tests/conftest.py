"""
Shared fixtures: an engine wired to the mock runtime, an in-memory
transport with canned server responses, and a controllable clock.
"""

import pytest

from cheevos.config import KEY_TOKEN, KEY_USERNAME, SETTINGS_SECTION, AchievementsConfig
from cheevos.identity import ReadError
from cheevos.net.mock_transport import MockTransport
from cheevos.notify.notifier import RecordingNotifier
from cheevos.runtime.memory import BufferMemory
from cheevos.runtime.mock_runtime import MockRuntime
from cheevos.settings import SettingsStore
from cheevos.tracking.engine import Achievements

GAME_PATH = "cdrom0:\\SLUS_209.46;1"
OTHER_GAME_PATH = "cdrom0:\\SLES_501.23;1"
GAME_CRC = 0x1234ABCD
OTHER_GAME_CRC = 0x0BADF00D
GAME_ID = 42


class DictReader:
    """Byte reader serving executables from a dict keyed by path."""

    def __init__(self, files: dict):
        self.files = files
        self.reads = 0

    def read(self, path: str, max_size: int):
        self.reads += 1
        if path not in self.files:
            return ReadError(path, "no such file")
        return self.files[path][:max_size]


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_achievement(achievement_id=7, memaddr="0x10=1", flags=3, title="First Steps",
                     points=10, badge_name="", description="Do the thing"):
    return {
        "ID": achievement_id,
        "Flags": flags,
        "MemAddr": memaddr,
        "Title": title,
        "Description": description,
        "BadgeName": badge_name,
        "Points": points,
    }


def make_leaderboard(leaderboard_id=5, mem="0x30=1|0x31=1|0x32", title="High Score", fmt="SCORE"):
    return {"ID": leaderboard_id, "Mem": mem, "Title": title, "Format": fmt, "Description": ""}


def make_patch(game_id=GAME_ID, achievements=None, leaderboards=None, rich_presence=None, title="Test Game"):
    patch_data = {
        "ID": game_id,
        "Title": title,
        "Developer": "Dev Co",
        "Publisher": "Pub Co",
        "Released": "2004",
        "ImageIcon": "",
        "Achievements": achievements if achievements is not None else [make_achievement()],
        "Leaderboards": leaderboards if leaderboards is not None else [],
    }
    if rich_presence is not None:
        patch_data["RichPresencePatch"] = rich_presence
    return {"Success": True, "PatchData": patch_data}


def make_responses(game_id=GAME_ID, patch=None, unlocked=()):
    return {
        "login": {"Success": True, "User": "player", "Token": "session-token"},
        "gameid": {"Success": True, "GameID": game_id},
        "patch": patch if patch is not None else make_patch(game_id),
        "unlocks": {"Success": True, "GameID": game_id, "UserUnlocks": list(unlocked)},
        "postactivity": {"Success": True},
        "ping": {"Success": True},
        "awardachievement": {"Success": True},
        "submitlbentry": {"Success": True},
    }


@pytest.fixture
def transport():
    return MockTransport(make_responses())


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def reader():
    return DictReader({
        GAME_PATH: b"\x7fELF" + bytes(range(256)) * 4,
        OTHER_GAME_PATH: b"\x7fELF" + b"other game" * 50,
    })


@pytest.fixture
def make_engine(transport, reader, clock, tmp_path):
    """Factory for an initialized, logged-in engine. Shut down after the test."""
    engines = []

    def factory(logged_in=True, **overrides):
        options = {"enabled": True, "cache_dir": tmp_path / "cache", "worker_count": 2}
        options.update(overrides)
        config = AchievementsConfig(**options)

        settings = SettingsStore()
        if logged_in:
            settings.set_string(SETTINGS_SECTION, KEY_USERNAME, "player")
            settings.set_string(SETTINGS_SECTION, KEY_TOKEN, "session-token")

        engine = Achievements(
            config, MockRuntime, BufferMemory(), transport,
            reader=reader, settings=settings, notifier=RecordingNotifier(), clock=clock,
        )
        engine.initialize()
        engines.append(engine)
        return engine

    yield factory

    transport.release()
    for engine in engines:
        engine.shutdown()


@pytest.fixture
def ready_engine(make_engine):
    """Engine that has identified GAME_PATH and reached Ready."""
    def factory(**overrides):
        engine = make_engine(**overrides)
        engine.game_changed(GAME_CRC, GAME_PATH)
        engine.wait_for_requests()
        return engine
    return factory
