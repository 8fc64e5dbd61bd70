"""
Badge Cache - local copies of achievement badges and game icons.

Paths are handed out immediately; files that are not on disk yet are
downloaded through the session client and written when the completion is
delivered on the owner thread. A UI showing a path before its download
finishes just sees a missing image for a few frames.
"""

import logging
import re
from pathlib import Path

from ..net.transport import HTTP_OK

logger = logging.getLogger(__name__)

BADGE_DIRECTORY = "achievement_badge"
GAME_ICON_DIRECTORY = "achievement_gameicon"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


def sanitize_file_name(name: str) -> str:
    return _UNSAFE_CHARS.sub("_", name)


class BadgeCache:
    """Resolves and downloads badge and icon images under cache_dir."""

    def __init__(self, cache_dir: Path, session_client, api):
        self.cache_dir = Path(cache_dir)
        self.session_client = session_client
        self.api = api

        self.total = 0
        self.completed = 0
        self.failed = 0
        self._requested: set[Path] = set()

    @property
    def downloads_pending(self) -> int:
        return self.total - self.completed

    def badge_path(self, badge_name: str, locked: bool) -> str:
        """
        Path of the badge image, starting a download when it is missing.

        Returns "" when the achievement has no badge.
        """
        if not badge_name:
            return ""
        suffix = "_lock" if locked else ""
        path = self.cache_dir / BADGE_DIRECTORY / f"{sanitize_file_name(badge_name)}{suffix}.png"
        self._ensure(path, self.api.badge_image(badge_name, locked).url)
        return str(path)

    def game_icon_path(self, game_id: int, icon_name: str) -> str:
        if not icon_name:
            return ""
        path = self.cache_dir / GAME_ICON_DIRECTORY / f"{game_id}.png"
        self._ensure(path, self.api.game_icon(icon_name).url)
        return str(path)

    def _ensure(self, path: Path, url: str) -> None:
        if path in self._requested or path.exists():
            return
        self._requested.add(path)
        self.total += 1
        logger.debug(f"Downloading {url} -> {path}")
        self.session_client.enqueue(url, lambda status, data: self._on_downloaded(path, status, data))

    def _on_downloaded(self, path: Path, status: int, data: bytes) -> None:
        self.completed += 1
        self._requested.discard(path)
        if status != HTTP_OK or not data:
            self.failed += 1
            logger.warning(f"Failed to download {path.name} (HTTP {status})")
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            self.failed += 1
            logger.error(f"Failed to write {path}: {e}")
