from __future__ import annotations

import logging
import threading
from typing import Iterable

import requests

from db import NotificationRepository, SettingsRepository
from playback import NotificationSink

logger = logging.getLogger(__name__)


class RepositoryNotificationSink(NotificationSink):
    """Store messages in the notifications table."""

    def __init__(
        self,
        repo: NotificationRepository,
        settings_repo: SettingsRepository | None = None,
    ) -> None:
        self.repo = repo
        self.settings = settings_repo

    def is_enabled(self) -> bool:
        if self.settings is None:
            return True
        return self.settings.get_bool("notifications_enabled", True)

    def notify(self, message: str) -> None:
        if not self.is_enabled():
            return
        self.repo.add(message)


class WebhookNotificationSink(NotificationSink):
    """POST messages as JSON to a webhook from a background thread."""

    def __init__(self, url: str, timeout: float = 5.0, background: bool = True) -> None:
        self.url = url
        self.timeout = timeout
        self.background = background

    def _post(self, message: str) -> None:
        try:
            resp = requests.post(self.url, json={"text": message}, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.error(f"Webhook notification failed: {e}")

    def notify(self, message: str) -> None:
        if self.background:
            threading.Thread(target=self._post, args=(message,), daemon=True).start()
        else:
            self._post(message)


class CompositeNotificationSink(NotificationSink):
    """Fan a message out to several sinks."""

    def __init__(self, sinks: Iterable[NotificationSink]) -> None:
        self.sinks = list(sinks)

    def notify(self, message: str) -> None:
        for sink in self.sinks:
            sink.notify(message)


def build_notifier(
    repo: NotificationRepository, settings_repo: SettingsRepository
) -> NotificationSink:
    """Return the sink configured in settings."""
    sinks: list[NotificationSink] = [RepositoryNotificationSink(repo, settings_repo)]
    url = settings_repo.get_text("notification_webhook_url", "")
    if url and url.startswith(("http://", "https://")):
        sinks.append(WebhookNotificationSink(url))
    if len(sinks) == 1:
        return sinks[0]
    return CompositeNotificationSink(sinks)
