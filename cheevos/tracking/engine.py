"""
Achievements Engine - composition root wired into the emulator.

The host calls into this from its emulation thread only:

    initialize() / shutdown() / update_settings()   lifecycle
    login() / login_async() / logout()              user session
    game_changed(crc, path)                         new content booted
    do_frame()                                      once per emulated frame
    save_state() / load_state(data)                 save-state hooks
    reset() / on_paused(paused)                     emulator events

Everything the engine mutates is owned by that thread; network completions
are delivered to it through SessionClient.poll() inside do_frame().
"""

import logging
import time
from dataclasses import fields, replace
from typing import Callable, Iterator, Optional

from ..config import (
    ERROR_NOTIFICATION_DURATION, KEY_LOGIN_TIMESTAMP, KEY_TOKEN, KEY_USERNAME, MAX_HASH_SIZE,
    SETTINGS_SECTION, AchievementsConfig,
)
from ..exceptions import ConfigError, ProtocolError
from ..identity import FileByteReader, GameIdentityResolver
from ..models import Achievement, Leaderboard, LeaderboardEntry, Session
from ..net.api import AchievementsApi, parse_response
from ..net.session_client import SessionClient
from ..notify.notifier import ErrorMessage, LoggingNotifier, Refreshed
from ..settings import SettingsStore
from .badges import BadgeCache
from .coordinator import TriggerCoordinator
from .fetcher import DefinitionFetcher, FetchState
from .leaderboards import LeaderboardEntriesQuery
from .registry import GameRegistry
from .savestate import SaveStateCodec
from .unlocks import UnlockPipeline

logger = logging.getLogger(__name__)


class Achievements:
    """
    Achievement tracking for one emulator instance.

    Args:
        config: User options (mutated in place by update_settings)
        runtime_factory: Creates a fresh evaluation runtime on initialize()
        memory: Accessor with peek(address, size) over emulated memory
        transport: HTTP transport with fetch(url, post_data, user_agent)
        reader: Byte reader used to hash executables
        settings: Persistent settings store for credentials
        notifier: Sink for user-facing notifications
        clock: Monotonic seconds, used for the heartbeat timer
    """

    def __init__(
        self,
        config: AchievementsConfig,
        runtime_factory: Callable,
        memory,
        transport,
        reader=None,
        settings: Optional[SettingsStore] = None,
        notifier=None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.runtime_factory = runtime_factory
        self.memory = memory
        self.transport = transport
        self.settings = settings if settings is not None else SettingsStore()
        self.notifier = notifier if notifier is not None else LoggingNotifier()
        self.clock = clock

        self.identity = GameIdentityResolver(reader if reader is not None else FileByteReader(), MAX_HASH_SIZE)
        self.session = Session()
        self.registry = GameRegistry()
        self.api = AchievementsApi(config.server_url, config.image_url)

        self.active = False
        self.runtime = None
        self.session_client: Optional[SessionClient] = None
        self.coordinator: Optional[TriggerCoordinator] = None
        self.unlocks: Optional[UnlockPipeline] = None
        self.fetcher: Optional[DefinitionFetcher] = None
        self.badges: Optional[BadgeCache] = None
        self.leaderboard_query: Optional[LeaderboardEntriesQuery] = None
        self.codec: Optional[SaveStateCodec] = None

        # Last content the host reported, so login/initialize can identify it
        self._game_crc = 0
        self._game_path = ""
        self._game_running = False
        self._login_pending = False
        self._login_succeeded = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def initialize(self) -> bool:
        if self.active:
            return True
        if not self.config.enabled:
            logger.warning("Achievements are disabled in settings")
            return False

        self.api = AchievementsApi(self.config.server_url, self.config.image_url)
        self.session_client = SessionClient(self.transport, self.config.user_agent, self.config.worker_count)
        self.runtime = self.runtime_factory()
        self.registry = GameRegistry()

        self.coordinator = TriggerCoordinator(
            self.runtime, self.memory, self.registry, self.session_client, self.api,
            self.session, self.notifier, self.config, self.clock,
        )
        self.unlocks = UnlockPipeline(
            self.registry, self.coordinator, self.session_client, self.api,
            self.session, self.identity, self.notifier, self.config,
        )
        self.coordinator.unlocks = self.unlocks
        self.badges = BadgeCache(self.config.cache_dir, self.session_client, self.api)
        self.fetcher = DefinitionFetcher(
            self.registry, self.coordinator, self.badges, self.session_client, self.api,
            self.session, self.notifier, self.config,
        )
        self.leaderboard_query = LeaderboardEntriesQuery(
            self.registry, self.session_client, self.api, self.session,
        )
        self.codec = SaveStateCodec(self.runtime)
        self.active = True

        self.session.username = self.settings.get_string(SETTINGS_SECTION, KEY_USERNAME)
        self.session.token = self.settings.get_string(SETTINGS_SECTION, KEY_TOKEN)
        logger.info(
            f"Achievements initialized (logged in: {self.session.logged_in}, "
            f"hardcore: {self.config.challenge_mode}, test mode: {self.config.test_mode})"
        )

        if self.session.logged_in and self._game_running:
            self._identify_game(self._game_crc, self._game_path)
        return True

    def shutdown(self) -> None:
        if not self.active:
            return

        self.session_client.wait_all()
        self.fetcher.cancel()
        self.coordinator.clear_game_info()
        self.identity.clear()
        self.session.clear()
        self._login_pending = False
        self.notifier.push(Refreshed(0))

        self.active = False
        self.session_client.close()
        self.session_client = None
        self.runtime = None
        self.coordinator = None
        self.unlocks = None
        self.fetcher = None
        self.badges = None
        self.leaderboard_query = None
        self.codec = None
        logger.info("Achievements shut down")

    def update_settings(self, new_config: AchievementsConfig) -> None:
        """
        Apply new options. Disabling shuts down, enabling initializes, and a
        change to any option in RESTART_FIELDS restarts the engine.
        """
        old_config = replace(self.config)
        for f in fields(new_config):
            setattr(self.config, f.name, getattr(new_config, f.name))

        if not self.config.enabled:
            self.shutdown()
            return

        if not self.active:
            self.initialize()
            return

        if self.config.needs_restart(old_config):
            logger.info("Achievement settings changed, restarting")
            self.shutdown()
            self.initialize()

    def reset(self) -> None:
        if not self.active:
            return
        logger.info("Resetting achievement runtime state")
        self.runtime.reset()

    def on_paused(self, paused: bool) -> None:
        logger.debug(f"Emulation {'paused' if paused else 'resumed'}")

    # =========================================================================
    # Session
    # =========================================================================

    def login(self, username: str, password: str) -> bool:
        """
        Log in synchronously, blocking until the server answers.

        Works while the engine is inactive too (a temporary client is used);
        the credentials are then only persisted.

        Raises:
            ConfigError: username or password is empty
        """
        if not username or not password:
            raise ConfigError("Username and password are required to log in")
        if self.session.logged_in or self._login_pending:
            logger.warning("Login rejected: already logged in or a login is in progress")
            return False

        if self.active:
            self.session_client.wait_all()
            self._send_login(self.session_client, username, password)
            self.session_client.wait_all()
            return self.session.logged_in

        with SessionClient(self.transport, self.config.user_agent, worker_count=1) as client:
            self._send_login(client, username, password)
            client.wait_all()
        return self._login_succeeded

    def login_async(self, username: str, password: str) -> bool:
        """Start a login; the result arrives through a later do_frame()."""
        if not self.active:
            return False
        if not username or not password or self.session.logged_in or self._login_pending:
            return False
        self._send_login(self.session_client, username, password)
        return True

    def _send_login(self, client: SessionClient, username: str, password: str) -> None:
        self._login_pending = True
        self._login_succeeded = False
        request = self.api.login(username, password)
        client.enqueue(request.url, self._on_login, request.post_data)

    def _on_login(self, status: int, data: bytes) -> None:
        self._login_pending = False
        try:
            doc = parse_response("Login", status, data)
        except ProtocolError as e:
            self._report_error(f"{e}")
            return

        username, token = doc.get("User"), doc.get("Token")
        if not isinstance(username, str) or not isinstance(token, str) or not username or not token:
            self._report_error("Login failed. Please check your user name and password, and try again.")
            return

        self.settings.set_string(SETTINGS_SECTION, KEY_USERNAME, username)
        self.settings.set_string(SETTINGS_SECTION, KEY_TOKEN, token)
        self.settings.set_string(SETTINGS_SECTION, KEY_LOGIN_TIMESTAMP, str(int(time.time())))
        self._login_succeeded = True
        self.settings.commit()
        logger.info(f"Logged in as {username}")

        if self.active:
            self.session.username = username
            self.session.token = token
            self.notifier.push(Refreshed(self.registry.context.game_id))
            if self._game_running:
                # The content was hashed while logged out; look it up now
                self.identity.clear()
                self._identify_game(self._game_crc, self._game_path)

    def logout(self) -> None:
        if self.active:
            # In-flight completions belong to the old session
            self.session_client.cancel_pending()
            self.fetcher.cancel()
            self._login_pending = False
            if self.session.logged_in:
                self.coordinator.clear_game_info()
                self.identity.clear()
                self.session.clear()
                self.notifier.push(Refreshed(0))

        self.settings.delete(SETTINGS_SECTION, KEY_USERNAME)
        self.settings.delete(SETTINGS_SECTION, KEY_TOKEN)
        self.settings.delete(SETTINGS_SECTION, KEY_LOGIN_TIMESTAMP)
        self.settings.commit()
        logger.info("Logged out")

    def _report_error(self, message: str) -> None:
        logger.error(message)
        self.notifier.push(ErrorMessage(message, ERROR_NOTIFICATION_DURATION))

    # =========================================================================
    # Game & Frame
    # =========================================================================

    def game_changed(self, crc: int, executable_path: str) -> None:
        """The host booted new content (crc 0 means BIOS / nothing)."""
        self._game_crc = crc
        self._game_path = executable_path
        self._game_running = True
        if not self.active:
            return
        self._identify_game(crc, executable_path)

    def _identify_game(self, crc: int, executable_path: str) -> None:
        # Avoid reading and hashing the executable if the crc hasn't changed
        if self.identity.crc_unchanged(crc):
            return

        game_hash = self.identity.resolve(executable_path)
        if game_hash and game_hash == self.identity.game_hash:
            self.identity.remember(crc, game_hash)
            return

        self.fetcher.cancel()
        self.coordinator.clear_game_info()
        self.identity.remember(crc, game_hash)

        if not game_hash:
            # Booting the BIOS has no executable to read
            if crc != 0:
                self.notifier.push(ErrorMessage(
                    "Failed to read executable from disc. Achievements disabled.",
                    ERROR_NOTIFICATION_DURATION,
                    key="achievements_disc_read_failed",
                ))
            return

        if not self.session.logged_in:
            logger.info("Not logged in, skipping achievement lookup")
            return

        self.fetcher.start(game_hash)

    def game_stopped(self) -> None:
        """The host shut the VM down."""
        self._game_running = False
        self._game_crc = 0
        self._game_path = ""
        if not self.active:
            return
        self.fetcher.cancel()
        self.coordinator.clear_game_info()
        self.identity.clear()

    def do_frame(self) -> None:
        """Per-frame hook: deliver completions, evaluate triggers, ping."""
        if not self.active:
            return
        self.coordinator.do_frame()

    vsync_update = do_frame

    def wait_for_requests(self) -> None:
        """Block until every outstanding request has been delivered."""
        if self.active:
            self.session_client.wait_all()

    # =========================================================================
    # Save States
    # =========================================================================

    def save_state(self) -> bytes:
        if not self.active:
            return b""
        return self.codec.serialize()

    def load_state(self, data: bytes) -> None:
        if not self.active:
            return
        self.codec.deserialize(data)

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def is_logged_in(self) -> bool:
        return self.session.logged_in

    @property
    def username(self) -> str:
        return self.session.username

    @property
    def has_active_game(self) -> bool:
        return self.registry.context.active

    @property
    def game_id(self) -> int:
        return self.registry.context.game_id

    @property
    def challenge_mode(self) -> bool:
        return self.active and self.config.challenge_mode

    @property
    def fetch_state(self) -> FetchState:
        return self.fetcher.state if self.fetcher is not None else FetchState.IDLE

    @property
    def game_title(self) -> str:
        return self.registry.context.title

    @property
    def game_developer(self) -> str:
        return self.registry.context.developer

    @property
    def game_publisher(self) -> str:
        return self.registry.context.publisher

    @property
    def game_release_date(self) -> str:
        return self.registry.context.release_date

    @property
    def game_icon(self) -> str:
        return self.registry.context.icon_path

    @property
    def rich_presence_string(self) -> str:
        return self.registry.context.rich_presence

    @property
    def achievement_count(self) -> int:
        return self.registry.achievement_count

    @property
    def unlocked_achievement_count(self) -> int:
        return self.registry.unlocked_count

    @property
    def maximum_points(self) -> int:
        return self.registry.max_points

    @property
    def current_points(self) -> int:
        return self.registry.current_points

    @property
    def leaderboard_count(self) -> int:
        return self.registry.leaderboard_count

    def enumerate_achievements(self) -> Iterator[Achievement]:
        return self.registry.iter_achievements()

    def enumerate_leaderboards(self) -> Iterator[Leaderboard]:
        return self.registry.iter_leaderboards()

    def get_achievement(self, achievement_id: int) -> Optional[Achievement]:
        return self.registry.get_achievement(achievement_id)

    def get_leaderboard(self, leaderboard_id: int) -> Optional[Leaderboard]:
        return self.registry.get_leaderboard(leaderboard_id)

    def get_achievement_progress(self, achievement: Achievement) -> tuple[int, int]:
        if self.runtime is None:
            return 0, 0
        return self.runtime.get_achievement_measured(achievement.id)

    def get_achievement_progress_text(self, achievement: Achievement) -> str:
        if self.runtime is None:
            return ""
        return self.runtime.format_achievement_measured(achievement.id)

    def is_leaderboard_time_type(self, leaderboard: Leaderboard) -> bool:
        return leaderboard.is_time_type

    def try_enumerate_leaderboard_entries(self, leaderboard_id: int) -> Optional[list[LeaderboardEntry]]:
        """Cached entries for the board, or None while they are being fetched."""
        if self.leaderboard_query is None:
            return None
        return self.leaderboard_query.try_enumerate(leaderboard_id)
