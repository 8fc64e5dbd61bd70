"""
Definition Fetcher - resolves a game hash to a game id, downloads the
game's achievement/leaderboard definitions and the user's unlock list, and
hands the result to the coordinator.

State machine:

    IDLE -> RESOLVING_ID -> FETCHING_DEFINITIONS -> FETCHING_UNLOCKS -> READY
                                                 \\-> READY (test mode)

Any failure, or a game with nothing to track, goes back to IDLE with the
registry cleared. Each game change bumps a generation number; completions
carrying an older generation are dropped, so a slow response for the
previous game can never populate the registry of the current one.
"""

import logging
from enum import Enum

from ..config import ERROR_NOTIFICATION_DURATION, SUMMARY_NOTIFICATION_DURATION
from ..exceptions import ProtocolError
from ..models import Achievement, AchievementCategory, Leaderboard, parse_format
from ..net.api import get_optional_string, get_optional_uint, is_uint, parse_response
from ..notify.notifier import ErrorMessage, Refreshed, SummaryReady

logger = logging.getLogger(__name__)


class FetchState(Enum):
    IDLE = "idle"
    RESOLVING_ID = "resolving-id"
    FETCHING_DEFINITIONS = "fetching-definitions"
    FETCHING_UNLOCKS = "fetching-unlocks"
    READY = "ready"


def parse_achievements(items, include_unofficial: bool) -> list[Achievement]:
    """
    Build achievement records from the PatchData "Achievements" array.

    Entries missing a required field are skipped. Local and unofficial
    achievements are dropped unless include_unofficial is set.
    """
    achievements = []
    if not isinstance(items, list):
        return achievements

    for item in items:
        if not isinstance(item, dict):
            continue
        if not is_uint(item.get("ID")) or not is_uint(item.get("Flags")):
            continue
        if not isinstance(item.get("MemAddr"), str) or not isinstance(item.get("Title"), str):
            continue

        try:
            category = AchievementCategory(item["Flags"])
        except ValueError:
            logger.warning(f"Skipping achievement {item['ID']} with unknown category {item['Flags']}")
            continue

        if not include_unofficial and category != AchievementCategory.CORE:
            logger.warning(f"Skipping unofficial achievement {item['ID']} ({item['Title']})")
            continue

        achievements.append(Achievement(
            id=item["ID"],
            title=item["Title"],
            memaddr=item["MemAddr"],
            description=get_optional_string(item, "Description"),
            points=get_optional_uint(item, "Points"),
            category=category,
            badge_name=get_optional_string(item, "BadgeName"),
        ))
    return achievements


def parse_leaderboards(items) -> list[Leaderboard]:
    leaderboards = []
    if not isinstance(items, list):
        return leaderboards

    for item in items:
        if not isinstance(item, dict) or not is_uint(item.get("ID")):
            continue
        if not all(isinstance(item.get(key), str) for key in ("Mem", "Title", "Format")):
            continue
        leaderboards.append(Leaderboard(
            id=item["ID"],
            title=item["Title"],
            memaddr=item["Mem"],
            description=get_optional_string(item, "Description"),
            format=parse_format(item["Format"]),
        ))
    return leaderboards


class DefinitionFetcher:
    """Drives the per-game fetch state machine."""

    def __init__(self, registry, coordinator, badges, session_client, api, session, notifier, config):
        self.registry = registry
        self.coordinator = coordinator
        self.badges = badges
        self.session_client = session_client
        self.api = api
        self.session = session
        self.notifier = notifier
        self.config = config

        self.state = FetchState.IDLE
        self.generation = 0
        self._game_hash = ""

    # -------------------------------------------------------------------------
    # Control
    # -------------------------------------------------------------------------

    def start(self, game_hash: str) -> None:
        """Begin identifying game_hash, superseding any fetch in progress."""
        self.generation += 1
        self._game_hash = game_hash
        self.state = FetchState.RESOLVING_ID

        generation = self.generation
        request = self.api.game_id(game_hash)
        self.session_client.enqueue(
            request.url, lambda status, data: self._on_game_id(generation, status, data), request.post_data
        )
        logger.info(f"Resolving game id for hash {game_hash}")

    def cancel(self) -> None:
        """Forget any fetch in progress; its completions become no-ops."""
        self.generation += 1
        self.state = FetchState.IDLE

    def _is_stale(self, generation: int, request_type: str) -> bool:
        if generation != self.generation:
            logger.debug(f"Dropping {request_type} response for a superseded game")
            return True
        return False

    def _fail(self, message: str) -> None:
        logger.error(message)
        self.notifier.push(ErrorMessage(message, ERROR_NOTIFICATION_DURATION, key="achievements_fetch"))
        self._to_idle()

    def _to_idle(self) -> None:
        self.state = FetchState.IDLE
        self.coordinator.clear_game_info()

    # -------------------------------------------------------------------------
    # Game id
    # -------------------------------------------------------------------------

    def _on_game_id(self, generation: int, status: int, data: bytes) -> None:
        if self._is_stale(generation, "Get Game ID"):
            return
        try:
            doc = parse_response("Get Game ID", status, data)
        except ProtocolError as e:
            self._fail(f"{e}")
            return

        game_id = get_optional_uint(doc, "GameID")
        logger.info(f"Server returned GameID {game_id}")
        if game_id == 0:
            # Not a game the server knows about
            self._to_idle()
            return

        self.state = FetchState.FETCHING_DEFINITIONS
        request = self.api.patch(self.session.username, self.session.token, game_id)
        self.session_client.enqueue(
            request.url, lambda status, data: self._on_patches(generation, status, data), request.post_data
        )

    # -------------------------------------------------------------------------
    # Definitions
    # -------------------------------------------------------------------------

    def _on_patches(self, generation: int, status: int, data: bytes) -> None:
        if self._is_stale(generation, "Get Patches"):
            return

        self.coordinator.clear_game_info()

        try:
            doc = parse_response("Get Patches", status, data)
        except ProtocolError as e:
            self._fail(f"{e}")
            return

        patch_data = doc.get("PatchData")
        if not isinstance(patch_data, dict):
            self._fail("No patch data returned from server.")
            return
        if not is_uint(patch_data.get("ID")) or patch_data["ID"] == 0:
            self._fail("Patch data is missing game ID")
            return

        # Parse everything before touching the registry
        achievements = parse_achievements(patch_data.get("Achievements"), self.config.unofficial_test_mode)
        leaderboards = parse_leaderboards(patch_data.get("Leaderboards"))
        rich_presence = patch_data.get("RichPresencePatch")

        context = self.registry.context
        context.game_id = patch_data["ID"]
        context.title = get_optional_string(patch_data, "Title")
        context.developer = get_optional_string(patch_data, "Developer")
        context.publisher = get_optional_string(patch_data, "Publisher")
        context.release_date = get_optional_string(patch_data, "Released")
        context.game_hash = self._game_hash
        context.icon_path = self.badges.game_icon_path(
            context.game_id, get_optional_string(patch_data, "ImageIcon")
        )

        for achievement in achievements:
            if not self.registry.add_achievement(achievement):
                continue
            if achievement.badge_name:
                achievement.locked_badge_path = self.badges.badge_path(achievement.badge_name, True)
                achievement.unlocked_badge_path = self.badges.badge_path(achievement.badge_name, False)

        for leaderboard in leaderboards:
            if leaderboard.id in self.registry.leaderboards:
                logger.error(f"Leaderboard {leaderboard.id} already exists")
                continue
            if self.coordinator.activate_leaderboard(leaderboard):
                self.registry.add_leaderboard(leaderboard)

        if self.config.rich_presence and isinstance(rich_presence, str) and rich_presence:
            self.coordinator.activate_rich_presence(rich_presence)

        logger.info(f"Game Title: {context.title}")
        logger.info(f"Game Developer: {context.developer}")
        logger.info(f"Game Publisher: {context.publisher}")
        logger.info(f"Achievements: {self.registry.achievement_count}")
        logger.info(f"Leaderboards: {self.registry.leaderboard_count}")

        if self.registry.achievements or context.has_rich_presence:
            if self.config.test_mode:
                self._enter_ready(report_activity=False)
            else:
                self._fetch_unlocks(generation)
        elif self.registry.leaderboards:
            self.state = FetchState.READY
            self.display_summary()
            self.notifier.push(Refreshed(context.game_id))
        else:
            logger.info(f"Game {context.game_id} has nothing to track")
            self._to_idle()

    # -------------------------------------------------------------------------
    # Unlocks
    # -------------------------------------------------------------------------

    def _fetch_unlocks(self, generation: int) -> None:
        self.state = FetchState.FETCHING_UNLOCKS
        request = self.api.unlocks(
            self.session.username, self.session.token,
            self.registry.context.game_id, self.config.challenge_mode,
        )
        self.session_client.enqueue(
            request.url, lambda status, data: self._on_unlocks(generation, status, data), request.post_data
        )

    def _on_unlocks(self, generation: int, status: int, data: bytes) -> None:
        if self._is_stale(generation, "Get User Unlocks"):
            return
        try:
            doc = parse_response("Get User Unlocks", status, data)
        except ProtocolError as e:
            self._fail(f"{e}")
            return

        game_id = get_optional_uint(doc, "GameID")
        expected = self.registry.context.game_id
        if game_id != expected:
            self._fail(f"GameID from user unlocks doesn't match (got {game_id} expected {expected})")
            return

        unlocked = doc.get("UserUnlocks")
        if isinstance(unlocked, list):
            for achievement_id in unlocked:
                if not is_uint(achievement_id):
                    continue
                achievement = self.registry.get_achievement(achievement_id)
                if achievement is None:
                    logger.error(f"Server returned unknown achievement {achievement_id}")
                    continue
                achievement.locked = False

        self._enter_ready(report_activity=True)

    # -------------------------------------------------------------------------
    # Ready
    # -------------------------------------------------------------------------

    def _enter_ready(self, report_activity: bool) -> None:
        self.state = FetchState.READY
        active = self.coordinator.activate_locked_achievements()
        logger.info(f"{active} achievement(s) active for game {self.registry.context.game_id}")

        self.display_summary()
        if report_activity:
            self.coordinator.send_playing()
            self.coordinator.update_rich_presence()
            self.coordinator.send_ping()
        self.notifier.push(Refreshed(self.registry.context.game_id))

    def display_summary(self) -> None:
        if not self.config.notifications:
            return
        summary = self.registry.summary(self.config.challenge_mode)
        self.notifier.push(SummaryReady(
            game_id=self.registry.context.game_id,
            title=summary.heading,
            summary=summary.text(),
            icon_path=summary.icon_path,
            duration=SUMMARY_NOTIFICATION_DURATION,
        ))
