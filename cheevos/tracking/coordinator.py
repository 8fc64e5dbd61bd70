"""
Trigger Coordinator - per-frame evaluation driver.

Each frame:
    1. Deliver completed requests (session_client.poll())
    2. Advance the evaluation runtime one frame over emulated memory
    3. Dispatch the runtime's events to the unlock pipeline
    4. Recompute rich presence
    5. Send the heartbeat ping when it is due

Also owns activation state: an achievement is active in the runtime exactly
when its registry record says active, and everything is deactivated in the
runtime before it is removed from the registry.
"""

import logging
import time
from typing import Callable

from ..config import (
    NO_RICH_PRESENCE_PING_FREQUENCY, RICH_PRESENCE_BUFFER_SIZE, RICH_PRESENCE_PING_FREQUENCY,
)
from ..exceptions import EngineError, ProtocolError
from ..models import Achievement, EventKind, Leaderboard, RuntimeEvent
from ..net.api import parse_response
from ..notify.notifier import PresenceChanged, Refreshed

logger = logging.getLogger(__name__)


class TriggerCoordinator:
    """Owns runtime activation, frame evaluation, rich presence and pings."""

    def __init__(
        self,
        runtime,
        memory,
        registry,
        session_client,
        api,
        session,
        notifier,
        config,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.runtime = runtime
        self.memory = memory
        self.registry = registry
        self.session_client = session_client
        self.api = api
        self.session = session
        self.notifier = notifier
        self.config = config
        self.clock = clock

        # Set by the engine once the unlock pipeline exists
        self.unlocks = None

        self.last_ping_time = clock()
        self.frame_count = 0

    # =========================================================================
    # Activation
    # =========================================================================

    def activate_achievement(self, achievement: Achievement) -> bool:
        if achievement.active:
            return True
        try:
            self.runtime.activate_achievement(achievement.id, achievement.memaddr)
        except EngineError as e:
            logger.error(f"Failed to activate achievement {achievement.id} '{achievement.title}': {e}")
            return False
        achievement.active = True
        logger.debug(f"Activated achievement {achievement.id} '{achievement.title}'")
        return True

    def deactivate_achievement(self, achievement: Achievement) -> None:
        if not achievement.active:
            return
        self.runtime.deactivate_achievement(achievement.id)
        achievement.active = False
        logger.debug(f"Deactivated achievement {achievement.id} '{achievement.title}'")

    def activate_locked_achievements(self) -> int:
        """Activate every achievement that is still locked. Returns how many are active."""
        count = 0
        for achievement in self.registry.iter_achievements():
            if achievement.locked and self.activate_achievement(achievement):
                count += 1
        return count

    def deactivate_achievements(self) -> None:
        for achievement in self.registry.iter_achievements():
            self.deactivate_achievement(achievement)

    def activate_leaderboard(self, leaderboard: Leaderboard) -> bool:
        try:
            self.runtime.activate_leaderboard(leaderboard.id, leaderboard.memaddr)
        except EngineError as e:
            logger.error(f"Failed to activate leaderboard {leaderboard.id} '{leaderboard.title}': {e}")
            return False
        logger.debug(f"Activated leaderboard {leaderboard.id} '{leaderboard.title}'")
        return True

    def activate_rich_presence(self, script: str) -> bool:
        try:
            self.runtime.activate_richpresence(script)
        except EngineError as e:
            logger.error(f"Failed to activate rich presence: {e}")
            return False
        self.registry.context.has_rich_presence = True
        logger.debug("Activated rich presence")
        return True

    def clear_game_info(self, clear_achievements: bool = True, clear_leaderboards: bool = True) -> None:
        """
        Deactivate and drop achievements and/or leaderboards. Once neither
        list has anything left, the game context itself is torn down.
        """
        had_game = self.registry.context.active

        if clear_achievements:
            self.deactivate_achievements()
            self.registry.achievements.clear()

        if clear_leaderboards:
            for leaderboard in self.registry.iter_leaderboards():
                self.runtime.deactivate_leaderboard(leaderboard.id)
            self.registry.leaderboards.clear()
            self.registry.invalidate_leaderboard_entries()

        if self.registry.is_empty:
            self.registry.reset_context()

        if had_game:
            self.notifier.push(Refreshed(self.registry.context.game_id))

    # =========================================================================
    # Frame
    # =========================================================================

    def do_frame(self) -> None:
        self.session_client.poll()

        context = self.registry.context
        if not context.active:
            return

        self.frame_count += 1
        try:
            events = self.runtime.do_frame(self.memory.peek)
        except EngineError as e:
            logger.error(f"Runtime failed to advance frame: {e}")
            return

        for event in events:
            self.dispatch(event)

        self.update_rich_presence()

        if not self.config.test_mode:
            frequency = (
                RICH_PRESENCE_PING_FREQUENCY if self.config.rich_presence
                else NO_RICH_PRESENCE_PING_FREQUENCY
            )
            if self.clock() - self.last_ping_time >= frequency:
                self.send_ping()

    def dispatch(self, event: RuntimeEvent) -> None:
        if event.kind == EventKind.ACHIEVEMENT_TRIGGERED:
            if self.registry.get_achievement(event.id) is None:
                logger.warning(f"Runtime triggered unknown achievement {event.id}")
                return
            self.unlocks.unlock(event.id)

        elif event.kind == EventKind.LBOARD_TRIGGERED:
            if self.registry.get_leaderboard(event.id) is None:
                logger.warning(f"Runtime triggered unknown leaderboard {event.id}")
                return
            self.unlocks.submit_leaderboard(event.id, event.value)

        elif event.kind in (EventKind.LBOARD_STARTED, EventKind.LBOARD_CANCELED):
            logger.debug(f"Leaderboard {event.id}: {event.kind.value}")

        else:
            logger.debug(f"Unhandled runtime event {event.kind.value} for {event.id}")

    # =========================================================================
    # Rich Presence & Activity
    # =========================================================================

    def update_rich_presence(self) -> None:
        context = self.registry.context
        if not context.has_rich_presence:
            return

        try:
            text = self.runtime.get_richpresence(self.memory.peek, RICH_PRESENCE_BUFFER_SIZE)
        except EngineError as e:
            logger.debug(f"Rich presence evaluation failed: {e}")
            text = ""
        text = text[:RICH_PRESENCE_BUFFER_SIZE - 1]

        if text == context.rich_presence:
            return
        context.rich_presence = text
        self.notifier.push(PresenceChanged(text))

    def send_playing(self) -> None:
        context = self.registry.context
        if not context.active or not self.session.logged_in:
            return
        request = self.api.post_playing(self.session.username, self.session.token, context.game_id)
        self.session_client.enqueue(request.url, self._on_playing, request.post_data)

    def _on_playing(self, status: int, data: bytes) -> None:
        try:
            parse_response("PostActivity", status, data)
        except ProtocolError as e:
            logger.error(f"{e}")
            return
        context = self.registry.context
        logger.info(f"Playing game updated to {context.game_id} ({context.title})")

    def send_ping(self) -> None:
        context = self.registry.context
        self.last_ping_time = self.clock()
        if not context.active or not self.session.logged_in:
            return
        request = self.api.ping(self.session.username, self.session.token, context.game_id, context.rich_presence)
        self.session_client.enqueue(request.url, self._on_ping, request.post_data)

    def _on_ping(self, status: int, data: bytes) -> None:
        try:
            parse_response("Ping", status, data)
        except ProtocolError as e:
            logger.error(f"{e}")

    def reset_ping_timer(self) -> None:
        self.last_ping_time = self.clock()
