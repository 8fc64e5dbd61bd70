"""
Mock evaluation runtime for running the engine without the real trigger
library.

Implements the runtime interface the engine consumes with a deliberately
tiny condition language, enough to drive unlocks, leaderboard attempts,
rich presence and save-state progress in tests and offline runs:

    achievement:    "<addr>=<value>"            triggers on the first frame it holds
                    "<addr>=<value>*<hits>"     triggers after <hits> frames it held
    leaderboard:    "<start cond>|<submit cond>|<value addr>"
    rich presence:  "Playing level {0x10}"      {addr} substitutes the byte at addr

Addresses are hex (0x..) or decimal; every read is one byte.
"""

import logging
import re
import struct
from dataclasses import dataclass
from typing import Callable, Optional

from ..exceptions import EngineError
from ..models import EventKind, RuntimeEvent

logger = logging.getLogger(__name__)

Peek = Callable[[int, int], int]

PROGRESS_MAGIC = b"MRTP"
_HEADER = struct.Struct("<4sII")        # magic, achievement count, leaderboard count
_ACHIEVEMENT_RECORD = struct.Struct("<II")
_LEADERBOARD_RECORD = struct.Struct("<IBi")

_CONDITION = re.compile(r"^\s*(0x[0-9a-fA-F]+|\d+)\s*=\s*(0x[0-9a-fA-F]+|\d+)\s*(?:\*\s*(\d+))?\s*$")
_PLACEHOLDER = re.compile(r"\{(0x[0-9a-fA-F]+|\d+)\}")

RC_OK = 0
RC_INVALID_MEMORY_OPERAND = -2
RC_INVALID_STATE = -30


@dataclass
class _Condition:
    address: int
    value: int
    target: int = 1

    def holds(self, peek: Peek) -> bool:
        return peek(self.address, 1) == self.value


@dataclass
class _Trigger:
    condition: _Condition
    hits: int = 0


@dataclass
class _LeaderboardTrigger:
    start: _Condition
    submit: _Condition
    value_address: int
    started: bool = False
    value: int = 0


def _parse_condition(text: str) -> _Condition:
    match = _CONDITION.match(text)
    if not match:
        raise EngineError(f"Invalid condition '{text}'", RC_INVALID_MEMORY_OPERAND)
    address, value, target = match.groups()
    return _Condition(int(address, 0), int(value, 0), int(target) if target else 1)


class MockRuntime:
    """Scripted stand-in for the trigger evaluation runtime."""

    def __init__(self):
        self.achievements: dict[int, _Trigger] = {}
        self.leaderboards: dict[int, _LeaderboardTrigger] = {}
        self.richpresence: Optional[str] = None
        self.frames = 0

    # -------------------------------------------------------------------------
    # Activation
    # -------------------------------------------------------------------------

    def activate_achievement(self, achievement_id: int, memaddr: str) -> None:
        self.achievements[achievement_id] = _Trigger(_parse_condition(memaddr))

    def deactivate_achievement(self, achievement_id: int) -> None:
        self.achievements.pop(achievement_id, None)

    def activate_leaderboard(self, leaderboard_id: int, memaddr: str) -> None:
        parts = memaddr.split("|")
        if len(parts) != 3:
            raise EngineError(f"Invalid leaderboard '{memaddr}'", RC_INVALID_MEMORY_OPERAND)
        start, submit, value = parts
        try:
            value_address = int(value.strip(), 0)
        except ValueError:
            raise EngineError(f"Invalid value address '{value}'", RC_INVALID_MEMORY_OPERAND)
        self.leaderboards[leaderboard_id] = _LeaderboardTrigger(
            _parse_condition(start), _parse_condition(submit), value_address
        )

    def deactivate_leaderboard(self, leaderboard_id: int) -> None:
        self.leaderboards.pop(leaderboard_id, None)

    def activate_richpresence(self, script: str) -> None:
        if not script.strip():
            raise EngineError("Empty rich presence script", RC_INVALID_STATE)
        self.richpresence = script

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def do_frame(self, peek: Peek) -> list[RuntimeEvent]:
        self.frames += 1
        events = []

        for achievement_id, trigger in list(self.achievements.items()):
            if not trigger.condition.holds(peek):
                continue
            trigger.hits += 1
            if trigger.hits >= trigger.condition.target:
                events.append(RuntimeEvent(EventKind.ACHIEVEMENT_TRIGGERED, achievement_id))

        for leaderboard_id, lboard in self.leaderboards.items():
            if not lboard.started:
                if lboard.start.holds(peek):
                    lboard.started = True
                    lboard.value = peek(lboard.value_address, 1)
                    events.append(RuntimeEvent(EventKind.LBOARD_STARTED, leaderboard_id, lboard.value))
                continue

            value = peek(lboard.value_address, 1)
            if value != lboard.value:
                lboard.value = value
                events.append(RuntimeEvent(EventKind.LBOARD_UPDATED, leaderboard_id, value))
            if lboard.submit.holds(peek):
                lboard.started = False
                events.append(RuntimeEvent(EventKind.LBOARD_TRIGGERED, leaderboard_id, value))

        return events

    def get_richpresence(self, peek: Peek, max_len: int = 0) -> str:
        if self.richpresence is None:
            return ""
        text = _PLACEHOLDER.sub(lambda m: str(peek(int(m.group(1), 0), 1)), self.richpresence)
        # max_len includes the terminator slot
        return text[:max_len - 1] if max_len > 0 else text

    def get_achievement_measured(self, achievement_id: int) -> tuple[int, int]:
        trigger = self.achievements.get(achievement_id)
        if trigger is None:
            return 0, 0
        return trigger.hits, trigger.condition.target

    def format_achievement_measured(self, achievement_id: int) -> str:
        current, target = self.get_achievement_measured(achievement_id)
        return f"{current}/{target}" if target > 1 else ""

    def reset(self) -> None:
        for trigger in self.achievements.values():
            trigger.hits = 0
        for lboard in self.leaderboards.values():
            lboard.started = False
            lboard.value = 0

    # -------------------------------------------------------------------------
    # Progress serialization
    # -------------------------------------------------------------------------

    def progress_size(self) -> int:
        return (
            _HEADER.size
            + _ACHIEVEMENT_RECORD.size * len(self.achievements)
            + _LEADERBOARD_RECORD.size * len(self.leaderboards)
        )

    def serialize_progress(self, buffer: bytearray) -> None:
        if len(buffer) < self.progress_size():
            raise EngineError("Progress buffer too small", RC_INVALID_STATE)

        _HEADER.pack_into(buffer, 0, PROGRESS_MAGIC, len(self.achievements), len(self.leaderboards))
        offset = _HEADER.size
        for achievement_id, trigger in self.achievements.items():
            _ACHIEVEMENT_RECORD.pack_into(buffer, offset, achievement_id, trigger.hits)
            offset += _ACHIEVEMENT_RECORD.size
        for leaderboard_id, lboard in self.leaderboards.items():
            _LEADERBOARD_RECORD.pack_into(buffer, offset, leaderboard_id, int(lboard.started), lboard.value)
            offset += _LEADERBOARD_RECORD.size

    def deserialize_progress(self, data: bytes) -> None:
        """
        Restore hit counts. Records for triggers that are not active are
        skipped. Nothing is modified unless the whole buffer validates.
        """
        if len(data) < _HEADER.size:
            raise EngineError("Progress data truncated", RC_INVALID_STATE)
        magic, achievement_count, leaderboard_count = _HEADER.unpack_from(data, 0)
        if magic != PROGRESS_MAGIC:
            raise EngineError("Progress data has bad magic", RC_INVALID_STATE)

        needed = (
            _HEADER.size
            + achievement_count * _ACHIEVEMENT_RECORD.size
            + leaderboard_count * _LEADERBOARD_RECORD.size
        )
        if needed > len(data):
            raise EngineError(
                f"Progress data claims {needed} bytes but only {len(data)} present",
                RC_INVALID_STATE,
            )

        hits = {}
        offset = _HEADER.size
        for _ in range(achievement_count):
            achievement_id, count = _ACHIEVEMENT_RECORD.unpack_from(data, offset)
            hits[achievement_id] = count
            offset += _ACHIEVEMENT_RECORD.size
        boards = {}
        for _ in range(leaderboard_count):
            leaderboard_id, started, value = _LEADERBOARD_RECORD.unpack_from(data, offset)
            boards[leaderboard_id] = (bool(started), value)
            offset += _LEADERBOARD_RECORD.size

        self.reset()
        for achievement_id, count in hits.items():
            trigger = self.achievements.get(achievement_id)
            if trigger is not None:
                trigger.hits = count
        for leaderboard_id, (started, value) in boards.items():
            lboard = self.leaderboards.get(leaderboard_id)
            if lboard is not None:
                lboard.started = started
                lboard.value = value
