"""
Mock Transport for testing the request pipeline without a server.

Responds to requests with canned JSON keyed by the API request type (the
"r" parameter), records every request it sees, and can be held closed so
tests control exactly when results become available to poll().
"""

import json
import logging
import threading
from typing import Optional, Union
from urllib.parse import parse_qs, urlsplit

from .transport import HTTP_OK

logger = logging.getLogger(__name__)

Response = Union[dict, tuple[int, bytes]]


class MockTransport:
    """
    Canned-response transport.

    Responses are registered per request type. A dict is served as JSON
    with status 200; a (status, bytes) tuple is served verbatim. A list of
    responses is consumed in order, the last one repeating.
    """

    def __init__(self, responses: Optional[dict[str, Union[Response, list[Response]]]] = None):
        self._responses: dict[str, list[Response]] = {}
        self.requests: list[dict] = []
        self._lock = threading.Lock()
        self._gate = threading.Event()
        self._gate.set()
        for request_type, response in (responses or {}).items():
            self.respond(request_type, response)

    def respond(self, request_type: str, response: Union[Response, list[Response]]):
        if not isinstance(response, list):
            response = [response]
        with self._lock:
            self._responses[request_type] = list(response)

    def hold(self):
        """Block workers inside fetch() until release() is called."""
        self._gate.clear()

    def release(self):
        self._gate.set()

    def requests_of(self, request_type: str) -> list[dict]:
        with self._lock:
            return [r for r in self.requests if r["r"] == request_type]

    def fetch(self, url: str, post_data: Optional[str], user_agent: str) -> tuple[int, bytes]:
        params = {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}
        if post_data:
            params.update({k: v[0] for k, v in parse_qs(post_data).items()})
        request_type = params.get("r", "")
        if not request_type and "/Badge/" in url:
            request_type = "badge"
        params["r"] = request_type
        params["url"] = url

        with self._lock:
            self.requests.append(params)

        self._gate.wait()

        with self._lock:
            queue = self._responses.get(request_type)
            if not queue:
                logger.debug(f"MockTransport: no response for '{request_type}'")
                return 404, b""
            response = queue[0] if len(queue) == 1 else queue.pop(0)

        if isinstance(response, tuple):
            return response
        return HTTP_OK, json.dumps(response).encode("utf-8")
