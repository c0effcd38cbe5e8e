"""Notification delivery — notifier adapters, dispatch backlog, formatting."""

from netalert.monitor.channels import (
    ChannelNotifier,
    EmailRelayNotifier,
    LogNotifier,
    Notifier,
    SlackWebhookNotifier,
)
from netalert.monitor.dispatcher import NotificationDispatcher
from netalert.monitor.factory import create_notifier
from netalert.monitor.formatters import format_incident

__all__ = [
    "ChannelNotifier",
    "EmailRelayNotifier",
    "LogNotifier",
    "NotificationDispatcher",
    "Notifier",
    "SlackWebhookNotifier",
    "create_notifier",
    "format_incident",
]
