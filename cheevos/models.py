"""
Achievement Data Types.

Data structures for the achievements, leaderboards and game metadata the
server describes, and for the events the evaluation runtime reports back
each frame. Shared by the fetcher, coordinator and unlock pipeline.
"""

from dataclasses import dataclass
from enum import Enum, IntEnum


class AchievementCategory(IntEnum):
    """Achievement set flags as returned by the server."""

    LOCAL = 0
    CORE = 3
    UNOFFICIAL = 5


class ValueFormat(IntEnum):
    """Leaderboard value formats."""

    FRAMES = 0
    SECONDS = 1
    CENTISECS = 2
    SCORE = 3
    VALUE = 4
    MINUTES = 5
    SECONDS_AS_MINUTES = 6
    OTHER = 7


_FORMAT_NAMES = {
    "VALUE": ValueFormat.VALUE,
    "SECS": ValueFormat.SECONDS,
    "TIME": ValueFormat.FRAMES,
    "FRAMES": ValueFormat.FRAMES,
    "SCORE": ValueFormat.SCORE,
    "POINTS": ValueFormat.SCORE,
    # MILLISECS values count hundredths of a second
    "MILLISECS": ValueFormat.CENTISECS,
    "MINUTES": ValueFormat.MINUTES,
    "SECS_AS_MINS": ValueFormat.SECONDS_AS_MINUTES,
    "OTHER": ValueFormat.OTHER,
}


def parse_format(name: str) -> ValueFormat:
    """Map a server format string to a ValueFormat. Unknown names are VALUE."""
    return _FORMAT_NAMES.get(name.strip().upper(), ValueFormat.VALUE)


def format_value(value: int, fmt: ValueFormat) -> str:
    """
    Render a leaderboard value for display.

    Frame counts assume 60 frames per second.
    """
    if fmt == ValueFormat.FRAMES:
        value = max(value, 0)
        seconds, frames = divmod(value, 60)
        minutes, seconds = divmod(seconds, 60)
        centisecs = (frames * 100) // 60
        return f"{minutes:02d}:{seconds:02d}.{centisecs:02d}"
    if fmt == ValueFormat.SECONDS:
        minutes, seconds = divmod(max(value, 0), 60)
        return f"{minutes:02d}:{seconds:02d}"
    if fmt == ValueFormat.CENTISECS:
        seconds, centisecs = divmod(max(value, 0), 100)
        minutes, seconds = divmod(seconds, 60)
        return f"{minutes:02d}:{seconds:02d}.{centisecs:02d}"
    if fmt == ValueFormat.MINUTES:
        hours, minutes = divmod(max(value, 0), 60)
        return f"{hours}h{minutes:02d}"
    if fmt == ValueFormat.SECONDS_AS_MINUTES:
        hours, minutes = divmod(max(value, 0) // 60, 60)
        return f"{minutes}min" if hours == 0 else f"{hours}h{minutes:02d}"
    if fmt == ValueFormat.SCORE:
        return f"{value:06d}"
    return str(value)


@dataclass
class Achievement:
    """A single achievement definition plus its local unlock state."""
    id: int
    title: str
    memaddr: str
    description: str = ""
    points: int = 0
    category: AchievementCategory = AchievementCategory.CORE
    badge_name: str = ""
    locked_badge_path: str = ""
    unlocked_badge_path: str = ""

    # locked is owned by the unlock pipeline, active by the coordinator
    locked: bool = True
    active: bool = False

    @property
    def display_title(self) -> str:
        if self.category == AchievementCategory.LOCAL:
            return f"{self.title} (Local)"
        if self.category == AchievementCategory.UNOFFICIAL:
            return f"{self.title} (Unofficial)"
        return self.title


@dataclass
class Leaderboard:
    """A leaderboard definition. Always active in the runtime once defined."""
    id: int
    title: str
    memaddr: str
    description: str = ""
    format: ValueFormat = ValueFormat.VALUE

    @property
    def is_time_type(self) -> bool:
        return self.format not in (ValueFormat.SCORE, ValueFormat.VALUE)


@dataclass
class LeaderboardEntry:
    """One ranked row of a leaderboard query."""
    user: str
    rank: int
    formatted_score: str
    is_self: bool = False


@dataclass
class GameContext:
    """The game currently being tracked. game_id == 0 means none."""
    game_id: int = 0
    title: str = ""
    developer: str = ""
    publisher: str = ""
    release_date: str = ""
    icon_path: str = ""
    game_hash: str = ""
    has_rich_presence: bool = False
    rich_presence: str = ""

    @property
    def active(self) -> bool:
        return self.game_id != 0


@dataclass
class Session:
    """Logged-in user state, mirrored from the settings store."""
    username: str = ""
    token: str = ""

    @property
    def logged_in(self) -> bool:
        return bool(self.username) and bool(self.token)

    def clear(self):
        self.username = ""
        self.token = ""


# =============================================================================
# Runtime Events
# =============================================================================

class EventKind(Enum):
    """Events the evaluation runtime emits while advancing a frame."""

    ACHIEVEMENT_ACTIVATED = "activated"
    ACHIEVEMENT_PAUSED = "paused"
    ACHIEVEMENT_RESET = "reset"
    ACHIEVEMENT_TRIGGERED = "triggered"
    ACHIEVEMENT_PRIMED = "primed"
    ACHIEVEMENT_DISABLED = "disabled"
    LBOARD_STARTED = "leaderboard-started"
    LBOARD_CANCELED = "leaderboard-canceled"
    LBOARD_UPDATED = "leaderboard-updated"
    LBOARD_TRIGGERED = "leaderboard-triggered"
    LBOARD_DISABLED = "leaderboard-disabled"


@dataclass(frozen=True)
class RuntimeEvent:
    kind: EventKind
    id: int
    value: int = 0


@dataclass
class AchievementSummary:
    """Counts shown when a game's achievements finish loading."""
    title: str
    achievement_count: int = 0
    unlocked_count: int = 0
    points: int = 0
    max_points: int = 0
    leaderboard_count: int = 0
    challenge_mode: bool = False
    icon_path: str = ""

    def text(self) -> str:
        if self.achievement_count > 0:
            summary = (
                f"You have earned {self.unlocked_count} of {self.achievement_count} "
                f"achievements, and {self.points} of {self.max_points} points."
            )
        else:
            summary = "This game has no achievements."
        if self.leaderboard_count > 0:
            if self.challenge_mode:
                summary += "\nLeaderboards are enabled."
            else:
                summary += "\nLeaderboards are DISABLED because Hardcore Mode is off."
        return summary

    @property
    def heading(self) -> str:
        return f"{self.title} (Hardcore Mode)" if self.challenge_mode else self.title
