"""
Tests for per-frame evaluation: unlock dispatch, rich presence and the
heartbeat ping schedule.
"""

from cheevos.models import EventKind, RuntimeEvent
from cheevos.notify.notifier import AchievementUnlocked, PresenceChanged

from conftest import GAME_CRC, GAME_PATH, make_achievement, make_patch


def frames(engine, count=1):
    for _ in range(count):
        engine.do_frame()
    engine.wait_for_requests()


class TestFrameUnlock:
    def test_condition_met_unlocks_once(self, ready_engine, transport):
        engine = ready_engine()
        engine.memory.poke(0x10, 1, 1)
        frames(engine)

        awards = transport.requests_of("awardachievement")
        assert len(awards) == 1
        assert awards[0]["a"] == "7"
        assert awards[0]["m"] == engine.identity.game_hash
        assert len(engine.notifier.of_type(AchievementUnlocked)) == 1
        assert not engine.get_achievement(7).locked
        assert not engine.get_achievement(7).active

        frames(engine, 5)
        assert len(transport.requests_of("awardachievement")) == 1
        assert len(engine.notifier.of_type(AchievementUnlocked)) == 1

    def test_condition_not_met(self, ready_engine, transport):
        engine = ready_engine()
        frames(engine, 3)
        assert transport.requests_of("awardachievement") == []
        assert engine.get_achievement(7).locked

    def test_hit_target_progress(self, make_engine, transport):
        transport.respond("patch", make_patch(achievements=[make_achievement(7, memaddr="0x10=1*3")]))
        engine = make_engine()
        engine.game_changed(GAME_CRC, GAME_PATH)
        engine.wait_for_requests()
        engine.memory.poke(0x10, 1, 1)

        frames(engine)
        achievement = engine.get_achievement(7)
        assert engine.get_achievement_progress(achievement) == (1, 3)
        assert engine.get_achievement_progress_text(achievement) == "1/3"
        assert achievement.locked

        frames(engine, 2)
        assert not achievement.locked

    def test_no_evaluation_without_game(self, make_engine):
        engine = make_engine()
        frames(engine, 3)
        assert engine.runtime.frames == 0

    def test_unknown_trigger_is_dropped(self, ready_engine, transport):
        engine = ready_engine()
        engine.coordinator.dispatch(RuntimeEvent(EventKind.ACHIEVEMENT_TRIGGERED, 999))
        engine.coordinator.dispatch(RuntimeEvent(EventKind.LBOARD_TRIGGERED, 999, 10))
        engine.wait_for_requests()
        assert transport.requests_of("awardachievement") == []
        assert transport.requests_of("submitlbentry") == []
        assert engine.notifier.of_type(AchievementUnlocked) == []


class TestRichPresence:
    def test_change_is_pushed(self, make_engine, transport):
        transport.respond("patch", make_patch(rich_presence="Level {0x20}"))
        engine = make_engine()
        engine.game_changed(GAME_CRC, GAME_PATH)
        engine.wait_for_requests()
        assert engine.rich_presence_string == "Level 0"

        engine.memory.poke(0x20, 1, 3)
        frames(engine, 2)
        texts = [e.text for e in engine.notifier.of_type(PresenceChanged)]
        assert texts == ["Level 0", "Level 3"]

    def test_truncated_to_buffer(self, make_engine, transport):
        transport.respond("patch", make_patch(rich_presence="x" * 600))
        engine = make_engine()
        engine.game_changed(GAME_CRC, GAME_PATH)
        engine.wait_for_requests()
        assert len(engine.rich_presence_string) == 511

    def test_ping_carries_presence(self, make_engine, transport):
        transport.respond("patch", make_patch(rich_presence="Level {0x20}"))
        engine = make_engine()
        engine.game_changed(GAME_CRC, GAME_PATH)
        engine.wait_for_requests()
        assert transport.requests_of("ping")[0]["m"] == "Level 0"


class TestPing:
    def test_ping_every_two_minutes(self, ready_engine, transport, clock):
        engine = ready_engine()
        assert len(transport.requests_of("ping")) == 1

        clock.advance(119)
        frames(engine)
        assert len(transport.requests_of("ping")) == 1

        clock.advance(1)
        frames(engine)
        assert len(transport.requests_of("ping")) == 2

        frames(engine)
        assert len(transport.requests_of("ping")) == 2

    def test_ping_interval_doubles_without_rich_presence(self, ready_engine, transport, clock):
        engine = ready_engine(rich_presence=False)
        clock.advance(120)
        frames(engine)
        assert len(transport.requests_of("ping")) == 1

        clock.advance(120)
        frames(engine)
        assert len(transport.requests_of("ping")) == 2

    def test_no_ping_in_test_mode(self, ready_engine, transport, clock):
        engine = ready_engine(test_mode=True)
        clock.advance(1000)
        frames(engine)
        assert transport.requests_of("ping") == []
