"""Convenience factory for wiring notifier adapters from config."""

from __future__ import annotations

from netalert.core.config import NotificationsConfig
from netalert.monitor.channels import (
    ChannelNotifier,
    EmailRelayNotifier,
    LogNotifier,
    Notifier,
    SlackWebhookNotifier,
)


def create_notifier(config: NotificationsConfig) -> Notifier:
    """Build a notifier covering every enabled channel.

    With no channel enabled the notifier only logs, so a fresh install
    still shows what would have been sent.
    """
    adapters: dict[str, Notifier] = {}

    if config.email.enabled:
        adapters["email"] = EmailRelayNotifier(config.email)

    if config.slack.enabled:
        adapters["slack"] = SlackWebhookNotifier(config.slack)

    if not adapters:
        return LogNotifier()
    return ChannelNotifier(adapters)
