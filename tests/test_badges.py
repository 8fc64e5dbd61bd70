"""
Tests for the badge and game icon cache.
"""

import pytest

from cheevos.net.api import AchievementsApi
from cheevos.net.mock_transport import MockTransport
from cheevos.net.session_client import SessionClient
from cheevos.tracking.badges import BadgeCache, sanitize_file_name

from conftest import GAME_CRC, GAME_PATH, make_achievement, make_patch


@pytest.fixture
def image_transport():
    return MockTransport({"badge": (200, b"PNG"), "": (200, b"ICON")})


@pytest.fixture
def cache(image_transport, tmp_path):
    client = SessionClient(image_transport, "test-agent", worker_count=1)
    api = AchievementsApi("https://example.org/dorequest.php", "https://img.example.org")
    yield BadgeCache(tmp_path, client, api)
    image_transport.release()
    client.close()


class TestBadgeCache:
    def test_downloads_missing_badge(self, cache, tmp_path):
        path = cache.badge_path("12345", locked=True)
        assert path == str(tmp_path / "achievement_badge" / "12345_lock.png")
        cache.session_client.wait_all()
        assert (tmp_path / "achievement_badge" / "12345_lock.png").read_bytes() == b"PNG"
        assert cache.completed == 1
        assert cache.downloads_pending == 0

    def test_existing_file_not_refetched(self, cache, image_transport, tmp_path):
        badge_dir = tmp_path / "achievement_badge"
        badge_dir.mkdir()
        (badge_dir / "12345.png").write_bytes(b"old")
        cache.badge_path("12345", locked=False)
        cache.session_client.wait_all()
        assert image_transport.requests == []

    def test_duplicate_request_coalesced(self, cache, image_transport):
        image_transport.hold()
        cache.badge_path("12345", locked=False)
        cache.badge_path("12345", locked=False)
        assert cache.downloads_pending == 1
        image_transport.release()
        cache.session_client.wait_all()
        assert len(image_transport.requests) == 1

    def test_failed_download_counted(self, cache, image_transport, tmp_path):
        image_transport.respond("badge", (404, b""))
        cache.badge_path("12345", locked=False)
        cache.session_client.wait_all()
        assert cache.failed == 1
        assert not (tmp_path / "achievement_badge" / "12345.png").exists()

    def test_no_badge_name(self, cache):
        assert cache.badge_path("", locked=False) == ""

    def test_game_icon(self, cache, tmp_path):
        path = cache.game_icon_path(42, "/Images/000001.png")
        cache.session_client.wait_all()
        assert path == str(tmp_path / "achievement_gameicon" / "42.png")
        assert (tmp_path / "achievement_gameicon" / "42.png").read_bytes() == b"ICON"

    def test_sanitize(self):
        assert sanitize_file_name("../evil name") == ".._evil_name"


class TestFetchedBadges:
    def test_patch_assigns_badge_paths(self, make_engine, transport, tmp_path):
        transport.respond("patch", make_patch(achievements=[make_achievement(7, badge_name="00123")]))
        transport.respond("badge", (200, b"PNG"))
        engine = make_engine()
        engine.game_changed(GAME_CRC, GAME_PATH)
        engine.wait_for_requests()

        achievement = engine.get_achievement(7)
        assert achievement.locked_badge_path.endswith("00123_lock.png")
        assert achievement.unlocked_badge_path.endswith("00123.png")
        assert (tmp_path / "cache" / "achievement_badge" / "00123.png").exists()
