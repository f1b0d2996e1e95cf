from __future__ import annotations

import logging
import subprocess
import sys

from plyer import notification

logger = logging.getLogger(__name__)


class NotificationFailure(RuntimeError):
    pass


def _applescript_quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


class Notifier:
    """Desktop notifications: osascript on macOS, plyer elsewhere."""

    def __init__(self, app_name: str = "Timer", timeout: int = 10):
        self.app_name = app_name
        self.timeout = timeout

    def deliver(self, title: str, body: str, sound_enabled: bool = True) -> None:
        logger.info("Delivering notification: %s - %s (sound=%s)", title, body, sound_enabled)
        try:
            if sys.platform == "darwin":
                self._deliver_osascript(title, body, sound_enabled)
            else:
                notification.notify(title=title, message=body, app_name=self.app_name, timeout=self.timeout)
        except NotificationFailure:
            raise
        except Exception as exc:
            raise NotificationFailure(f"Notification could not be delivered: {exc}") from exc

    def _deliver_osascript(self, title: str, body: str, sound_enabled: bool) -> None:
        script = f"display notification {_applescript_quote(body)} with title {_applescript_quote(title)}"
        if sound_enabled:
            script += ' sound name "default"'
        result = subprocess.run(["osascript", "-e", script], capture_output=True, text=True, timeout=10)
        if result.returncode != 0:
            raise NotificationFailure(result.stderr.strip() or f"osascript exited with {result.returncode}")
