"""
External toolkit integration.

Some users run a standalone achievements toolkit (with its own login, asset
editor and memory inspector) instead of the built-in engine. The toolkit
does identification, evaluation and server traffic itself; this adapter
only forwards emulator events to it while presenting the same surface as
Achievements, so the host never needs to know which one it is driving.

Toolkit object interface (duck-typed):
    install_memory_bank(read, write, size)
    attempt_login(blocking)           user_name() -> str
    hardcore_mode_active() -> bool    identify_hash(hash) -> int
    activate_game(game_id)            do_achievements_frame()
    capture_state(buffer) -> int      restore_state(data)
    on_reset()                        set_paused(paused)
    confirm_load_new_rom(quitting) -> bool
    game_title() -> str

The toolkit owns its achievement and leaderboard lists, so the list and
count queries report nothing.
"""

import logging
from typing import Iterator, Optional

from ..config import MAX_HASH_SIZE, AchievementsConfig
from ..identity import FileByteReader, GameIdentityResolver
from ..models import Achievement, Leaderboard, LeaderboardEntry
from .engine import Achievements

logger = logging.getLogger(__name__)


class ToolkitAchievements:
    """Drives an external achievements toolkit through the engine's surface."""

    def __init__(self, config: AchievementsConfig, toolkit, memory, reader=None):
        self.config = config
        self.toolkit = toolkit
        self.memory = memory
        self.identity = GameIdentityResolver(reader if reader is not None else FileByteReader(), MAX_HASH_SIZE)
        self.active = False
        self.game_id = 0

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def initialize(self) -> bool:
        if self.active:
            return True
        self.toolkit.install_memory_bank(self._read_memory, self._write_memory, self.memory.window)
        self.toolkit.attempt_login(False)
        self.config.challenge_mode = bool(self.toolkit.hardcore_mode_active())
        self.active = True
        logger.info(f"Toolkit initialized (hardcore: {self.config.challenge_mode})")
        return True

    def shutdown(self) -> bool:
        """Returns False if the user vetoed unloading their unsaved assets."""
        if not self.active:
            return True
        if not self.toolkit.confirm_load_new_rom(True):
            return False
        self.toolkit.set_paused(False)
        self.toolkit.activate_game(0)
        self.identity.clear()
        self.game_id = 0
        self.active = False
        return True

    def update_settings(self, new_config: AchievementsConfig) -> None:
        # The toolkit keeps its own settings
        pass

    def reset(self) -> bool:
        if not self.active:
            return False
        if not self.toolkit.confirm_load_new_rom(False):
            return False
        self.toolkit.on_reset()
        return True

    def on_paused(self, paused: bool) -> None:
        if not self.active:
            return
        self.toolkit.set_paused(paused)

    # -------------------------------------------------------------------------
    # Session (handled inside the toolkit)
    # -------------------------------------------------------------------------

    def login(self, username: str, password: str) -> bool:
        return False

    def login_async(self, username: str, password: str) -> bool:
        return False

    def logout(self) -> None:
        pass

    @property
    def is_logged_in(self) -> bool:
        return bool(self.toolkit.user_name())

    @property
    def username(self) -> str:
        return self.toolkit.user_name() or ""

    # -------------------------------------------------------------------------
    # Game & Frame
    # -------------------------------------------------------------------------

    def game_changed(self, crc: int, executable_path: str) -> None:
        if not self.active:
            return
        if self.identity.crc_unchanged(crc):
            return
        game_hash = self.identity.resolve(executable_path)
        if game_hash and game_hash == self.identity.game_hash:
            self.identity.remember(crc, game_hash)
            return

        self.identity.remember(crc, game_hash)
        self.game_id = self.toolkit.identify_hash(game_hash) if game_hash else 0
        self.toolkit.activate_game(self.game_id)
        logger.info(f"Toolkit activated game {self.game_id}")

    def game_stopped(self) -> None:
        if not self.active:
            return
        self.identity.clear()
        self.game_id = 0
        self.toolkit.activate_game(0)

    def do_frame(self) -> None:
        if not self.active:
            return
        self.toolkit.do_achievements_frame()

    vsync_update = do_frame

    @property
    def has_active_game(self) -> bool:
        return self.game_id != 0

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def challenge_mode(self) -> bool:
        return self.active and self.config.challenge_mode

    @property
    def game_title(self) -> str:
        if not self.has_active_game:
            return ""
        return self.toolkit.game_title() or ""

    @property
    def rich_presence_string(self) -> str:
        return ""

    @property
    def achievement_count(self) -> int:
        return 0

    @property
    def unlocked_achievement_count(self) -> int:
        return 0

    @property
    def maximum_points(self) -> int:
        return 0

    @property
    def current_points(self) -> int:
        return 0

    @property
    def leaderboard_count(self) -> int:
        return 0

    def enumerate_achievements(self) -> Iterator[Achievement]:
        return iter(())

    def enumerate_leaderboards(self) -> Iterator[Leaderboard]:
        return iter(())

    def get_achievement(self, achievement_id: int) -> Optional[Achievement]:
        return None

    def get_leaderboard(self, leaderboard_id: int) -> Optional[Leaderboard]:
        return None

    def try_enumerate_leaderboard_entries(self, leaderboard_id: int) -> Optional[list[LeaderboardEntry]]:
        return None

    # -------------------------------------------------------------------------
    # Save States
    # -------------------------------------------------------------------------

    def save_state(self) -> bytes:
        if not self.active:
            return b""
        size = self.toolkit.capture_state(None)
        if size <= 0:
            return b""
        buffer = bytearray(size)
        if self.toolkit.capture_state(buffer) <= 0:
            logger.warning("Failed to serialize achievement state from toolkit")
            return b""
        return bytes(buffer)

    def load_state(self, data: bytes) -> None:
        if not self.active:
            return
        if not data:
            logger.warning("State is missing achievement data, resetting toolkit")
            self.toolkit.on_reset()
            return
        self.toolkit.restore_state(data)

    # -------------------------------------------------------------------------
    # Memory bank callbacks
    # -------------------------------------------------------------------------

    def _read_memory(self, address: int) -> int:
        return self.memory.peek(address, 1)

    def _write_memory(self, address: int, value: int) -> None:
        self.memory.poke(address, 1, value)


def create_achievements(config: AchievementsConfig, memory, transport=None, runtime_factory=None,
                        toolkit=None, reader=None, settings=None, notifier=None):
    """
    Build the integration selected by config.use_toolkit.

    Raises:
        ValueError: the selected integration is missing its collaborator
    """
    if config.use_toolkit:
        if toolkit is None:
            raise ValueError("use_toolkit is set but no toolkit was provided")
        logger.info("Using external achievements toolkit")
        return ToolkitAchievements(config, toolkit, memory, reader)

    if runtime_factory is None or transport is None:
        raise ValueError("The built-in engine needs a runtime factory and a transport")
    return Achievements(
        config, runtime_factory, memory, transport,
        reader=reader, settings=settings, notifier=notifier,
    )
