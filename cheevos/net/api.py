"""
Achievements Server API - request URLs and response parsing.

All requests go to a single dorequest endpoint with the request type in the
"r" parameter. Responses are JSON documents with a boolean "Success" field
(except where noted) and an optional "Error" string.
"""

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import quote, urlencode

from ..exceptions import ProtocolError
from .transport import HTTP_OK

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiRequest:
    """A fully built request: URL plus optional form body."""
    url: str
    post_data: Optional[str] = None


class AchievementsApi:
    """Builds requests for the achievements server."""

    def __init__(self, server_url: str, image_url: str):
        self.server_url = server_url
        self.image_url = image_url.rstrip("/")

    def _get(self, **params) -> ApiRequest:
        return ApiRequest(f"{self.server_url}?{urlencode(params)}")

    def _post(self, **params) -> ApiRequest:
        return ApiRequest(self.server_url, urlencode(params))

    # -------------------------------------------------------------------------
    # Session
    # -------------------------------------------------------------------------

    def login(self, username: str, password: str) -> ApiRequest:
        # Password goes in the body so it never lands in a URL or log line
        return self._post(r="login", u=username, p=password)

    # -------------------------------------------------------------------------
    # Game data
    # -------------------------------------------------------------------------

    def game_id(self, game_hash: str) -> ApiRequest:
        return self._get(r="gameid", m=game_hash)

    def patch(self, username: str, token: str, game_id: int) -> ApiRequest:
        return self._get(r="patch", u=username, t=token, g=game_id)

    def unlocks(self, username: str, token: str, game_id: int, hardcore: bool) -> ApiRequest:
        return self._get(r="unlocks", u=username, t=token, g=game_id, h=int(hardcore))

    # -------------------------------------------------------------------------
    # Activity
    # -------------------------------------------------------------------------

    def post_playing(self, username: str, token: str, game_id: int) -> ApiRequest:
        return self._get(r="postactivity", u=username, t=token, a=3, m=game_id)

    def ping(self, username: str, token: str, game_id: int, rich_presence: str) -> ApiRequest:
        params = {"r": "ping", "u": username, "t": token, "g": game_id}
        if rich_presence:
            params["m"] = rich_presence
        return self._post(**params)

    # -------------------------------------------------------------------------
    # Submissions
    # -------------------------------------------------------------------------

    def award_achievement(self, username: str, token: str, achievement_id: int,
                          hardcore: bool, game_hash: str) -> ApiRequest:
        signature = _md5(f"{achievement_id}{username}{int(hardcore)}")
        return self._get(
            r="awardachievement", u=username, t=token, a=achievement_id,
            h=int(hardcore), m=game_hash, v=signature,
        )

    def submit_leaderboard(self, username: str, token: str, leaderboard_id: int,
                           value: int) -> ApiRequest:
        signature = _md5(f"{leaderboard_id}{username}{value}")
        return self._get(
            r="submitlbentry", u=username, t=token, i=leaderboard_id, s=value, v=signature,
        )

    def leaderboard_entries_near_user(self, leaderboard_id: int, username: str,
                                      count: int) -> ApiRequest:
        return self._get(r="lbinfo", i=leaderboard_id, u=username, c=count)

    # -------------------------------------------------------------------------
    # Images
    # -------------------------------------------------------------------------

    def badge_image(self, badge_name: str, locked: bool) -> ApiRequest:
        suffix = "_lock" if locked else ""
        return ApiRequest(f"{self.image_url}/Badge/{quote(badge_name)}{suffix}.png")

    def game_icon(self, icon_path: str) -> ApiRequest:
        if not icon_path.startswith("/"):
            icon_path = "/" + icon_path
        return ApiRequest(f"{self.image_url}{icon_path}")


def _md5(text: str) -> str:
    return hashlib.md5(text.encode("utf-8")).hexdigest()


def parse_response(request_type: str, status: int, data: bytes,
                   success_field: Optional[str] = "Success") -> dict:
    """
    Validate and decode a server response.

    Raises:
        ProtocolError: non-200 status, empty body, unparseable JSON, a
            non-object document, or a false/missing success field
    """
    if status != HTTP_OK or not data:
        raise ProtocolError(request_type, f"empty response (HTTP {status})", data)

    try:
        doc = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise ProtocolError(request_type, f"parse error: {e}", data) from e

    if not isinstance(doc, dict):
        raise ProtocolError(request_type, "response is not a JSON object", data)

    if success_field and doc.get(success_field) is not True:
        error = doc.get("Error")
        error = error if isinstance(error, str) else ""
        raise ProtocolError(request_type, f"Server returned an error: {error}", data)

    return doc


def get_optional_string(doc: dict, key: str) -> str:
    value = doc.get(key)
    return value if isinstance(value, str) else ""


def get_optional_uint(doc: dict, key: str) -> int:
    value = doc.get(key)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        return 0
    return value


def is_uint(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0
