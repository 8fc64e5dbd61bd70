"""
OBS Overlay Notifier - shows achievement popups on stream.

Pushes unlock, summary and rich presence text into OBS text sources over
obs-websocket. OBS being closed or a source missing must never disturb the
engine, so every request is guarded and failures are only logged.
"""

import logging
import threading
from typing import Optional

import obsws_python as obs

from .notifier import (
    AchievementUnlocked, ErrorMessage, Notification, PresenceChanged, SummaryReady,
)

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 4455

POPUP_SOURCE = "Achievement Popup"
PRESENCE_SOURCE = "Rich Presence"


class ObsOverlayNotifier:
    """
    Notification sink writing into OBS text (GDI+/FreeType) sources.

    The popup source is shown for the notification's duration and hidden
    again by a timer; the presence source always holds the latest text.
    """

    def __init__(
        self,
        scene: str,
        client=None,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        password: str = "",
        popup_source: str = POPUP_SOURCE,
        presence_source: str = PRESENCE_SOURCE,
    ):
        self.scene = scene
        self.host = host
        self.port = port
        self.password = password
        self.popup_source = popup_source
        self.presence_source = presence_source
        self._client = client
        self._lock = threading.Lock()
        self._hide_timer: Optional[threading.Timer] = None
        self._popup_item_id: Optional[int] = None

    # -------------------------------------------------------------------------
    # Connection
    # -------------------------------------------------------------------------

    def _get_client(self):
        if self._client is None:
            try:
                self._client = obs.ReqClient(host=self.host, port=self.port, password=self.password)
                logger.info(f"Connected to OBS at {self.host}:{self.port}")
            except Exception as e:
                logger.warning(f"OBS not reachable at {self.host}:{self.port}: {e}")
                return None
        return self._client

    def _find_item_id(self, client, source_name: str) -> Optional[int]:
        items = client.get_scene_item_list(self.scene)
        for item in items.scene_items:
            if item["sourceName"] == source_name:
                return item["sceneItemId"]
        return None

    # -------------------------------------------------------------------------
    # Sink
    # -------------------------------------------------------------------------

    def push(self, event: Notification) -> None:
        if isinstance(event, AchievementUnlocked):
            text = f"Achievement Unlocked!\n{event.title}\n{event.description}"
            self._show_popup(text, event.duration)
        elif isinstance(event, SummaryReady):
            self._show_popup(f"{event.title}\n{event.summary}", event.duration)
        elif isinstance(event, ErrorMessage):
            self._show_popup(event.message, event.duration)
        elif isinstance(event, PresenceChanged):
            self._set_text(self.presence_source, event.text)

    def _set_text(self, source_name: str, text: str) -> bool:
        with self._lock:
            client = self._get_client()
            if client is None:
                return False
            try:
                client.set_input_settings(source_name, {"text": text}, True)
                return True
            except Exception as e:
                logger.warning(f"Failed to update OBS source '{source_name}': {e}")
                # Reconnect on next push
                self._client = None
                self._popup_item_id = None
                return False

    def _set_popup_visible(self, visible: bool) -> None:
        with self._lock:
            client = self._get_client()
            if client is None:
                return
            try:
                if self._popup_item_id is None:
                    self._popup_item_id = self._find_item_id(client, self.popup_source)
                if self._popup_item_id is None:
                    logger.warning(f"OBS scene '{self.scene}' has no source '{self.popup_source}'")
                    return
                client.set_scene_item_enabled(self.scene, self._popup_item_id, visible)
            except Exception as e:
                logger.warning(f"Failed to toggle OBS popup: {e}")
                self._client = None
                self._popup_item_id = None

    def _show_popup(self, text: str, duration: float) -> None:
        if not self._set_text(self.popup_source, text):
            return
        self._set_popup_visible(True)

        if self._hide_timer is not None:
            self._hide_timer.cancel()
        self._hide_timer = threading.Timer(duration, self._set_popup_visible, args=(False,))
        self._hide_timer.daemon = True
        self._hide_timer.start()

    def close(self) -> None:
        if self._hide_timer is not None:
            self._hide_timer.cancel()
            self._hide_timer = None
        self._set_popup_visible(False)
        with self._lock:
            client = self._client
            self._client = None
        if client is not None:
            try:
                client.disconnect()
            except Exception as e:
                logger.debug(f"OBS disconnect failed: {e}")
