"""
HTTP Transport - blocking request executor used by the session client's
worker threads.

A transport only has to provide:

    fetch(url, post_data, user_agent) -> (status_code, body_bytes)

It is called on a worker thread and may block; it must not raise for
ordinary network failures. Those are reported as a non-200 status
(HTTP_ERROR_STATUS when no HTTP status was received at all).
"""

import logging
import urllib.error
import urllib.request
from typing import Optional

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_ERROR_STATUS = -1


class UrllibTransport:
    """Transport backed by urllib.request."""

    def __init__(self, timeout: float = 30.0):
        self.timeout = timeout

    def fetch(self, url: str, post_data: Optional[str], user_agent: str) -> tuple[int, bytes]:
        headers = {"User-Agent": user_agent}
        data = None
        if post_data is not None:
            data = post_data.encode("utf-8")
            headers["Content-Type"] = "application/x-www-form-urlencoded"

        req = urllib.request.Request(url, data=data, headers=headers)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as resp:
                return resp.status, resp.read()
        except urllib.error.HTTPError as e:
            # Server answered; keep the body, the API puts error text in it
            try:
                body = e.read()
            except OSError:
                body = b""
            logger.debug(f"HTTP {e.code} for {_redact(url)}")
            return e.code, body
        except (urllib.error.URLError, OSError, ValueError) as e:
            logger.warning(f"Request to {_redact(url)} failed: {e}")
            return HTTP_ERROR_STATUS, b""


def _redact(url: str) -> str:
    """Drop the query string so passwords and tokens never hit the log."""
    return url.split("?", 1)[0]
