"""Push notifications - message + image to an HTTP notify endpoint with a bearer token."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path
from typing import Protocol, runtime_checkable

import requests

logger = logging.getLogger(__name__)


@runtime_checkable
class NotifierIO(Protocol):
    def notify(self, message: str, image_path: str | Path | None = None) -> bool: ...

    def notify_async(self, message: str, image_path: str | Path | None = None) -> None: ...


class Notifier:
    """Posts multipart message + imageFile. Fails gracefully if the endpoint is down or unconfigured."""

    def __init__(self, endpoint: str, token: str, timeout: int = 10) -> None:
        self._endpoint = endpoint
        self._token = token
        self._timeout = timeout
        self._enabled = bool(endpoint and token)
        self._last_error_log: float = 0.0
        self._error_log_interval_s: float = 60.0

    def notify(self, message: str, image_path: str | Path | None = None) -> bool:
        """POST message (and image if readable). Returns False if disabled or the request fails."""
        if not self._enabled:
            logger.debug("Notifier disabled, dropped: %s", message)
            return False
        headers = {"Authorization": f"Bearer {self._token}"}
        data = {"message": message}
        files = None
        if image_path is not None:
            try:
                files = {"imageFile": (Path(image_path).name, Path(image_path).read_bytes(), "image/jpeg")}
            except OSError as e:
                logger.warning("Notification image %s unreadable: %s", image_path, e)
        try:
            resp = requests.post(self._endpoint, headers=headers, data=data, files=files, timeout=self._timeout)
            if resp.ok:
                logger.info("Notification sent: %s", message)
            else:
                logger.warning("Notification rejected: %s %s", resp.status_code, resp.text[:200])
            return resp.ok
        except requests.RequestException as e:
            now = time.monotonic()
            if now - self._last_error_log >= self._error_log_interval_s:
                logger.warning("Notify endpoint unreachable: %s", e)
                self._last_error_log = now
            return False

    def notify_async(self, message: str, image_path: str | Path | None = None) -> None:
        """Post on a daemon thread so the caller never waits on HTTP."""
        threading.Thread(target=self.notify, args=(message, image_path), daemon=True).start()
