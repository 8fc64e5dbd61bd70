"""
Notification events and basic sinks.

The engine pushes these fire-and-forget; a sink never acknowledges and must
not raise back into the engine. The UI (or stream overlay) decides how to
present them.
"""

import logging
from dataclasses import dataclass
from typing import Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AchievementUnlocked:
    achievement_id: int
    title: str
    description: str
    badge_path: str
    points: int
    duration: float


@dataclass(frozen=True)
class SummaryReady:
    game_id: int
    title: str
    summary: str
    icon_path: str
    duration: float


@dataclass(frozen=True)
class PresenceChanged:
    text: str


@dataclass(frozen=True)
class ErrorMessage:
    message: str
    duration: float
    key: str = ""


@dataclass(frozen=True)
class Refreshed:
    """Game info, login state or achievement lists changed."""
    game_id: int


Notification = Union[AchievementUnlocked, SummaryReady, PresenceChanged, ErrorMessage, Refreshed]


class LoggingNotifier:
    """Default sink: writes notifications to the log."""

    def push(self, event: Notification) -> None:
        if isinstance(event, AchievementUnlocked):
            logger.info(f"Achievement unlocked: {event.title} - {event.description} ({event.points} pts)")
        elif isinstance(event, SummaryReady):
            logger.info(f"{event.title}: {event.summary}")
        elif isinstance(event, PresenceChanged):
            logger.info(f"Rich presence: {event.text}")
        elif isinstance(event, ErrorMessage):
            logger.error(event.message)
        else:
            logger.debug(f"Notification: {event}")


class RecordingNotifier:
    """Keeps every notification in order; used by tests and the CLI status dump."""

    def __init__(self):
        self.events: list[Notification] = []

    def push(self, event: Notification) -> None:
        self.events.append(event)

    def of_type(self, event_type) -> list:
        return [e for e in self.events if isinstance(e, event_type)]

    def clear(self):
        self.events.clear()


class FanoutNotifier:
    """Forwards to several sinks; one failing sink does not stop the others."""

    def __init__(self, *sinks):
        self.sinks = list(sinks)

    def push(self, event: Notification) -> None:
        for sink in self.sinks:
            try:
                sink.push(event)
            except Exception as e:
                logger.error(f"Notification sink {type(sink).__name__} failed: {e}")
