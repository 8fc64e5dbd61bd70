"""
Achievements Configuration - constants and user-facing options.

Module-level values are fixed protocol/engine constants. User options live
in AchievementsConfig, loaded from and saved to the settings store under the
"Achievements" section.
"""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .settings import SettingsStore

# =============================================================================
# Server Endpoints
# =============================================================================
DEFAULT_SERVER_URL = "https://retroachievements.org/dorequest.php"
DEFAULT_IMAGE_URL = "https://i.retroachievements.org"
USER_AGENT = "cheevos-sync/0.3"

# =============================================================================
# Settings Store Keys
# =============================================================================
SETTINGS_SECTION = "Achievements"
KEY_USERNAME = "Username"
KEY_TOKEN = "Token"
KEY_LOGIN_TIMESTAMP = "LoginTimestamp"

# =============================================================================
# Game Identity
# =============================================================================
# Executables larger than this are hashed on their first 64 MiB only
MAX_HASH_SIZE = 64 * 1024 * 1024

# =============================================================================
# Heartbeats
# =============================================================================
# Seconds between pings. Without rich presence there is nothing new to
# report, so the interval doubles.
RICH_PRESENCE_PING_FREQUENCY = 2 * 60
NO_RICH_PRESENCE_PING_FREQUENCY = RICH_PRESENCE_PING_FREQUENCY * 2

# Rich presence text buffer, including the terminator slot
RICH_PRESENCE_BUFFER_SIZE = 512

# =============================================================================
# Leaderboards
# =============================================================================
# Entries fetched around the user's own rank; no paging
LEADERBOARD_ENTRY_COUNT = 15

# =============================================================================
# Notifications
# =============================================================================
UNLOCK_NOTIFICATION_DURATION = 15.0
SUMMARY_NOTIFICATION_DURATION = 10.0
ERROR_NOTIFICATION_DURATION = 10.0


@dataclass
class AchievementsConfig:
    """User options for the achievements engine."""
    enabled: bool = False
    test_mode: bool = False
    unofficial_test_mode: bool = False
    rich_presence: bool = True
    challenge_mode: bool = False
    notifications: bool = True
    use_toolkit: bool = False

    server_url: str = DEFAULT_SERVER_URL
    image_url: str = DEFAULT_IMAGE_URL
    cache_dir: Path = Path("cache")
    worker_count: int = 2
    request_timeout: float = 30.0
    user_agent: str = USER_AGENT

    # Options whose change requires a full engine restart
    RESTART_FIELDS = (
        "test_mode", "unofficial_test_mode", "rich_presence", "challenge_mode",
    )

    # Maps dataclass fields to settings keys
    _SETTING_KEYS = {
        "enabled": "Enabled",
        "test_mode": "TestMode",
        "unofficial_test_mode": "UnofficialTestMode",
        "rich_presence": "RichPresence",
        "challenge_mode": "ChallengeMode",
        "notifications": "Notifications",
        "use_toolkit": "UseToolkit",
    }

    @classmethod
    def from_settings(cls, store: "SettingsStore", **overrides) -> "AchievementsConfig":
        """Build a config from the settings store, falling back to defaults."""
        config = cls()
        for attr, key in cls._SETTING_KEYS.items():
            setattr(config, attr, store.get_bool(SETTINGS_SECTION, key, getattr(config, attr)))
        config.server_url = store.get_string(SETTINGS_SECTION, "ServerURL", config.server_url)
        config.image_url = store.get_string(SETTINGS_SECTION, "ImageURL", config.image_url)
        cache_dir = store.get_string(SETTINGS_SECTION, "CacheDirectory", "")
        if cache_dir:
            config.cache_dir = Path(cache_dir)
        config.worker_count = store.get_int(SETTINGS_SECTION, "Workers", config.worker_count)
        return replace(config, **overrides)

    def to_settings(self, store: "SettingsStore") -> None:
        """Write user options back to the store (caller commits)."""
        for attr, key in self._SETTING_KEYS.items():
            store.set_bool(SETTINGS_SECTION, key, getattr(self, attr))
        store.set_string(SETTINGS_SECTION, "ServerURL", self.server_url)
        store.set_string(SETTINGS_SECTION, "ImageURL", self.image_url)
        store.set_string(SETTINGS_SECTION, "CacheDirectory", str(self.cache_dir))
        store.set_int(SETTINGS_SECTION, "Workers", self.worker_count)

    def needs_restart(self, old: "AchievementsConfig") -> bool:
        return any(getattr(self, name) != getattr(old, name) for name in self.RESTART_FIELDS)
