"""
Game Registry - the achievements, leaderboards and metadata of the game
currently being tracked.

Owned by the engine and only touched from the owner thread. Activation
state in the evaluation runtime is managed by the trigger coordinator; the
registry just holds the records.
"""

import logging
from typing import Iterator, Optional

from ..models import Achievement, AchievementSummary, GameContext, Leaderboard, LeaderboardEntry

logger = logging.getLogger(__name__)


class GameRegistry:
    """Per-game achievement and leaderboard records, keyed by id."""

    def __init__(self):
        self.context = GameContext()
        self.achievements: dict[int, Achievement] = {}
        self.leaderboards: dict[int, Leaderboard] = {}

        # Entries of the last queried leaderboard; None until its response arrives
        self.last_queried_leaderboard = 0
        self.leaderboard_entries: Optional[list[LeaderboardEntry]] = None

    # -------------------------------------------------------------------------
    # Records
    # -------------------------------------------------------------------------

    def add_achievement(self, achievement: Achievement) -> bool:
        """Add an achievement. Duplicate ids are rejected (first one wins)."""
        if achievement.id in self.achievements:
            logger.error(f"Achievement {achievement.id} already exists")
            return False
        self.achievements[achievement.id] = achievement
        return True

    def add_leaderboard(self, leaderboard: Leaderboard) -> bool:
        if leaderboard.id in self.leaderboards:
            logger.error(f"Leaderboard {leaderboard.id} already exists")
            return False
        self.leaderboards[leaderboard.id] = leaderboard
        return True

    def get_achievement(self, achievement_id: int) -> Optional[Achievement]:
        return self.achievements.get(achievement_id)

    def get_leaderboard(self, leaderboard_id: int) -> Optional[Leaderboard]:
        return self.leaderboards.get(leaderboard_id)

    def iter_achievements(self) -> Iterator[Achievement]:
        return iter(list(self.achievements.values()))

    def iter_leaderboards(self) -> Iterator[Leaderboard]:
        return iter(list(self.leaderboards.values()))

    @property
    def is_empty(self) -> bool:
        return not self.achievements and not self.leaderboards

    def invalidate_leaderboard_entries(self):
        self.last_queried_leaderboard = 0
        self.leaderboard_entries = None

    def reset_context(self):
        """Tear down the game context. Only valid once no records remain."""
        self.context = GameContext()

    # -------------------------------------------------------------------------
    # Counts
    # -------------------------------------------------------------------------

    @property
    def achievement_count(self) -> int:
        return len(self.achievements)

    @property
    def unlocked_count(self) -> int:
        return sum(1 for a in self.achievements.values() if not a.locked)

    @property
    def leaderboard_count(self) -> int:
        return len(self.leaderboards)

    @property
    def max_points(self) -> int:
        return sum(a.points for a in self.achievements.values())

    @property
    def current_points(self) -> int:
        return sum(a.points for a in self.achievements.values() if not a.locked)

    def summary(self, challenge_mode: bool) -> AchievementSummary:
        return AchievementSummary(
            title=self.context.title,
            achievement_count=self.achievement_count,
            unlocked_count=self.unlocked_count,
            points=self.current_points,
            max_points=self.max_points,
            leaderboard_count=self.leaderboard_count,
            challenge_mode=challenge_mode,
            icon_path=self.context.icon_path,
        )
