"""Control surface exposed to the embedded web application."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Callable

from hotcode.services.rollout import RolloutController

logger = logging.getLogger(__name__)

Listener = Callable[[dict], None]


class HotCodePushPlugin:
    """Plugin methods and event listeners backed by a rollout controller.

    Methods return plain dicts, mirroring what the host bridge hands back to
    the web application.
    """

    def __init__(self, controller: RolloutController) -> None:
        self._controller = controller
        self._listeners: dict[str, list[Listener]] = {}
        self._lock = Lock()
        controller.emit = self.notify_listeners

    def check_for_updates(self) -> dict:
        """Start a background update check.

        Raises:
            ConfigMissing: If no root URL is configured
        """
        self._controller.check_for_updates()
        return {}

    def startup_did_complete(self) -> dict:
        self._controller.startup_did_complete()
        return {}

    def get_current_version(self) -> dict:
        return {"version": self._controller.current_version}

    def is_update_available(self) -> dict:
        return {"available": self._controller.update_available}

    def reload(self) -> dict:
        """Switch to the pending version and wait for the switch.

        Resolves without a pending version. Raises MaterializationError when
        the pending bundle could not be organized for serving.
        """
        self._controller.reload().result()
        return {}

    def add_listener(self, event: str, callback: Listener) -> None:
        with self._lock:
            self._listeners.setdefault(event, []).append(callback)

    def remove_all_listeners(self) -> None:
        with self._lock:
            self._listeners.clear()

    def notify_listeners(self, event: str, payload: dict) -> None:
        with self._lock:
            listeners = list(self._listeners.get(event, ()))
        if not listeners:
            logger.debug("No listeners for %s event", event)
        for listener in listeners:
            try:
                listener(dict(payload))
            except Exception:
                logger.exception("Listener for %s event failed", event)
