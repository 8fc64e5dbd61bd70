"""
Session Client - queued HTTP requests with poll-driven completion delivery.

Architecture:
    Owner thread (emulation loop) = enqueue() / poll() / wait_all()
    Worker threads               = transport.fetch(), then push a
                                   RequestResult onto the completed queue

Workers never see callbacks or engine state. Callbacks stay in a dict
owned by the owner thread and are matched to results by request id when
poll() drains the completed queue, so every state mutation happens on the
thread that drives the frame loop.
"""

import collections
import logging
import queue
import threading
from dataclasses import dataclass
from typing import Callable, Optional

from .transport import HTTP_ERROR_STATUS

logger = logging.getLogger(__name__)

RequestCallback = Callable[[int, bytes], None]

DEFAULT_WORKER_COUNT = 2


@dataclass(frozen=True)
class RequestResult:
    """What a worker hands back to the owner thread."""
    request_id: int
    status: int
    data: bytes


class SessionClient:
    """
    Outbound request queue for the achievements engine.

    enqueue() never blocks and never invokes the callback itself; callbacks
    run exactly once, inside poll(), in the order requests completed.
    """

    def __init__(self, transport, user_agent: str, worker_count: int = DEFAULT_WORKER_COUNT):
        self.transport = transport
        self.user_agent = user_agent

        self._pending: "queue.Queue[Optional[tuple[int, str, Optional[str]]]]" = queue.Queue()
        self._completed: collections.deque[RequestResult] = collections.deque()
        self._cond = threading.Condition()

        # Owner-thread state
        self._callbacks: dict[int, tuple[RequestCallback, int]] = {}
        self._next_id = 1
        self._generation = 0
        self._in_poll = False
        self._closed = False

        self._workers = [
            threading.Thread(target=self._worker_loop, name=f"cheevos-http-{i}", daemon=True)
            for i in range(max(1, worker_count))
        ]
        for worker in self._workers:
            worker.start()

    # -------------------------------------------------------------------------
    # Owner-thread API
    # -------------------------------------------------------------------------

    def enqueue(self, url: str, callback: RequestCallback, post_data: Optional[str] = None) -> int:
        """Queue a request. Returns its id; the callback runs in a later poll()."""
        if self._closed:
            raise RuntimeError("SessionClient is closed")

        request_id = self._next_id
        self._next_id += 1
        self._callbacks[request_id] = (callback, self._generation)
        self._pending.put((request_id, url, post_data))
        return request_id

    def poll(self) -> int:
        """
        Deliver completed requests to their callbacks.

        Returns the number of callbacks invoked. Cheap and non-blocking when
        nothing has completed. Exceptions from callbacks are logged and
        swallowed so they never reach the frame loop.
        """
        if self._in_poll:
            return 0

        with self._cond:
            if not self._completed:
                return 0
            results = list(self._completed)
            self._completed.clear()

        delivered = 0
        self._in_poll = True
        try:
            for result in results:
                entry = self._callbacks.pop(result.request_id, None)
                if entry is None:
                    continue
                callback, generation = entry
                if generation != self._generation:
                    logger.debug(f"Dropping result of cancelled request {result.request_id}")
                    continue
                try:
                    callback(result.status, result.data)
                except Exception as e:
                    logger.exception(f"Request callback {result.request_id} raised: {e}")
                delivered += 1
        finally:
            self._in_poll = False
        return delivered

    def wait_all(self) -> None:
        """
        Block until every outstanding request has been delivered, including
        requests enqueued by the callbacks that run while waiting.

        Must not be called from inside a request callback.
        """
        if self._in_poll:
            raise RuntimeError("wait_all() called from inside a request callback")

        while self._callbacks:
            with self._cond:
                while not self._completed:
                    self._cond.wait()
            self.poll()

    def cancel_pending(self) -> None:
        """
        Turn the callbacks of all in-flight requests into no-ops.

        The requests themselves still run to completion on the workers.
        """
        if self._callbacks:
            logger.info(f"Cancelling {len(self._callbacks)} in-flight request(s)")
        self._generation += 1

    @property
    def outstanding(self) -> int:
        return len(self._callbacks)

    def close(self) -> None:
        """Stop the worker threads. Queued but unstarted requests are dropped."""
        if self._closed:
            return
        self._closed = True
        try:
            while True:
                self._pending.get_nowait()
        except queue.Empty:
            pass
        for _ in self._workers:
            self._pending.put(None)
        for worker in self._workers:
            worker.join(timeout=5.0)
        self._callbacks.clear()

    # -------------------------------------------------------------------------
    # Worker threads
    # -------------------------------------------------------------------------

    def _worker_loop(self) -> None:
        while True:
            item = self._pending.get()
            if item is None:
                return
            request_id, url, post_data = item
            try:
                status, data = self.transport.fetch(url, post_data, self.user_agent)
            except Exception as e:
                logger.error(f"Transport failed for request {request_id}: {e}")
                status, data = HTTP_ERROR_STATUS, b""

            with self._cond:
                self._completed.append(RequestResult(request_id, status, data or b""))
                self._cond.notify_all()

    def __enter__(self) -> "SessionClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
