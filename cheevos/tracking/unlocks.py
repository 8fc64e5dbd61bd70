"""
Unlock/Submission Pipeline - turns triggered achievements and finished
leaderboard attempts into local state changes and server submissions.

An unlock always happens locally first. The server request that follows is
best-effort: its completion only logs, it never rolls the unlock back.
"""

import logging

from ..config import UNLOCK_NOTIFICATION_DURATION
from ..exceptions import ProtocolError
from ..models import AchievementCategory
from ..net.api import parse_response
from ..notify.notifier import AchievementUnlocked, Refreshed

logger = logging.getLogger(__name__)


class UnlockPipeline:
    """Local unlocks plus gated award and leaderboard submissions."""

    def __init__(self, registry, coordinator, session_client, api, session, identity, notifier, config):
        self.registry = registry
        self.coordinator = coordinator
        self.session_client = session_client
        self.api = api
        self.session = session
        self.identity = identity
        self.notifier = notifier
        self.config = config

        self.submitted_unlocks = 0
        self.submitted_scores = 0

    # -------------------------------------------------------------------------
    # Achievements
    # -------------------------------------------------------------------------

    def unlock(self, achievement_id: int) -> bool:
        """
        Unlock an achievement locally and, when policy allows, report it.

        Returns:
            True if the achievement went from locked to unlocked
        """
        achievement = self.registry.get_achievement(achievement_id)
        if achievement is None:
            logger.error(f"Attempting to unlock unknown achievement {achievement_id}")
            return False
        if not achievement.locked:
            logger.warning(
                f"Achievement {achievement_id} for game {self.registry.context.game_id} is already unlocked"
            )
            return False

        achievement.locked = False
        self.coordinator.deactivate_achievement(achievement)
        logger.info(
            f"Achievement {achievement.title} ({achievement_id}) for game "
            f"{self.registry.context.game_id} unlocked"
        )

        if self.config.notifications:
            self.notifier.push(AchievementUnlocked(
                achievement_id=achievement.id,
                title=achievement.display_title,
                description=achievement.description,
                badge_path=achievement.unlocked_badge_path,
                points=achievement.points,
                duration=UNLOCK_NOTIFICATION_DURATION,
            ))
        self.notifier.push(Refreshed(self.registry.context.game_id))

        if self.config.test_mode:
            logger.warning(f"Skipping sending achievement {achievement_id} unlock to server because of test mode")
            return True
        if achievement.category != AchievementCategory.CORE:
            logger.warning(
                f"Skipping sending achievement {achievement_id} unlock to server "
                f"because it's not from the core set"
            )
            return True

        request = self.api.award_achievement(
            self.session.username, self.session.token, achievement_id,
            self.config.challenge_mode, self.identity.game_hash,
        )
        self.session_client.enqueue(request.url, self._on_unlock_submitted, request.post_data)
        self.submitted_unlocks += 1
        return True

    def _on_unlock_submitted(self, status: int, data: bytes) -> None:
        try:
            parse_response("Award Cheevo", status, data)
        except ProtocolError as e:
            logger.error(f"{e}")

    # -------------------------------------------------------------------------
    # Leaderboards
    # -------------------------------------------------------------------------

    def submit_leaderboard(self, leaderboard_id: int, value: int) -> bool:
        if self.config.test_mode:
            logger.warning(
                f"Skipping sending leaderboard {leaderboard_id} result to server because of test mode"
            )
            return False
        if not self.config.challenge_mode:
            logger.warning(
                f"Skipping sending leaderboard {leaderboard_id} result to server because Challenge mode is off"
            )
            return False

        request = self.api.submit_leaderboard(self.session.username, self.session.token, leaderboard_id, value)
        self.session_client.enqueue(
            request.url,
            lambda status, data: self._on_leaderboard_submitted(leaderboard_id, status, data),
            request.post_data,
        )
        self.submitted_scores += 1
        logger.info(f"Submitting {value} to leaderboard {leaderboard_id}")
        return True

    def _on_leaderboard_submitted(self, leaderboard_id: int, status: int, data: bytes) -> None:
        # The next entry query must refetch so the new score shows up
        if self.registry.last_queried_leaderboard == leaderboard_id:
            self.registry.invalidate_leaderboard_entries()
        try:
            parse_response("Submit Leaderboard", status, data)
        except ProtocolError as e:
            logger.error(f"{e}")
