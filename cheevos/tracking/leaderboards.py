"""
Leaderboard entry browsing.

Only one leaderboard's entries are cached at a time: the last one queried.
Asking for a different board discards the cache and starts a fixed-size
"entries near the user" request; a response for a board that is no longer
the last queried one is dropped.
"""

import logging
from typing import Optional

from ..config import LEADERBOARD_ENTRY_COUNT
from ..exceptions import ProtocolError
from ..models import LeaderboardEntry, format_value
from ..net.api import is_uint, parse_response

logger = logging.getLogger(__name__)


class LeaderboardEntriesQuery:
    def __init__(self, registry, session_client, api, session, entry_count: int = LEADERBOARD_ENTRY_COUNT):
        self.registry = registry
        self.session_client = session_client
        self.api = api
        self.session = session
        self.entry_count = entry_count

    def try_enumerate(self, leaderboard_id: int) -> Optional[list[LeaderboardEntry]]:
        """
        Entries for leaderboard_id if they have arrived, else None.

        The first call for a board starts the request; keep calling (once per
        frame or UI refresh) until the entries show up.
        """
        registry = self.registry
        if leaderboard_id == registry.last_queried_leaderboard:
            return registry.leaderboard_entries

        registry.last_queried_leaderboard = leaderboard_id
        registry.leaderboard_entries = None

        # Fixed window around the user's own rank, no paging
        request = self.api.leaderboard_entries_near_user(leaderboard_id, self.session.username, self.entry_count)
        self.session_client.enqueue(request.url, self._on_entries, request.post_data)
        return None

    def _on_entries(self, status: int, data: bytes) -> None:
        try:
            doc = parse_response("Get Leaderboard Info", status, data)
        except ProtocolError as e:
            logger.error(f"{e}")
            return

        lb_data = doc.get("LeaderboardData")
        if not isinstance(lb_data, dict):
            logger.error("No leaderboard returned from server.")
            return
        if not is_uint(lb_data.get("LBID")):
            logger.error("Leaderboard data is missing leaderboard ID")
            return

        leaderboard_id = lb_data["LBID"]
        if leaderboard_id != self.registry.last_queried_leaderboard:
            # Another board was requested in the meantime
            logger.debug(f"Dropping entries for leaderboard {leaderboard_id}")
            return

        items = lb_data.get("Entries")
        if not isinstance(items, list):
            return

        leaderboard = self.registry.get_leaderboard(leaderboard_id)
        if leaderboard is None:
            logger.error(f"Attempting to list unknown leaderboard {leaderboard_id}")
            return

        entries = []
        for item in items:
            if not isinstance(item, dict) or not isinstance(item.get("User"), str):
                continue
            score, rank = item.get("Score"), item.get("Rank")
            if not isinstance(score, int) or isinstance(score, bool) or not is_uint(rank):
                continue
            entries.append(LeaderboardEntry(
                user=item["User"],
                rank=rank,
                formatted_score=format_value(score, leaderboard.format),
                is_self=item["User"] == self.session.username,
            ))

        self.registry.leaderboard_entries = entries
        logger.debug(f"Received {len(entries)} entries for leaderboard {leaderboard_id}")
