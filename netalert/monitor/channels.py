"""Notifier adapters — Slack webhook and email relay delivery."""

from __future__ import annotations

import abc
from collections.abc import Mapping

import aiohttp
import structlog

from netalert.core.config import EmailConfig, SlackConfig
from netalert.core.types import NotificationPayload, Severity

logger = structlog.get_logger(__name__)

# Slack attachment colours keyed by severity.
_SLACK_COLORS: dict[Severity, str] = {
    Severity.INFO: "#2ECC71",      # green
    Severity.WARNING: "#F39C12",   # orange
    Severity.CRITICAL: "#E74C3C",  # red
}

_TIMEOUT = aiohttp.ClientTimeout(total=10)


class Notifier(abc.ABC):
    """Outbound delivery capability used by the engine.

    Implementations own transport and retries; the engine only needs to
    know whether the attempt succeeded.
    """

    @abc.abstractmethod
    async def notify(
        self, channel: str, recipient: str, payload: NotificationPayload,
    ) -> bool:
        """Deliver *payload* to *recipient* over *channel*. True on success."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Release resources (HTTP sessions, etc.)."""


class _HttpNotifier(Notifier):
    def __init__(self) -> None:
        self._session: aiohttp.ClientSession | None = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=_TIMEOUT)
        return self._session

    async def _post(self, url: str, payload: dict, name: str) -> bool:
        try:
            session = self._get_session()
            async with session.post(url, json=payload) as resp:
                if resp.status in (200, 201, 202, 204):
                    return True
                body = await resp.text()
                logger.warning(
                    f"{name}_send_failed",
                    status=resp.status,
                    body=body[:200],
                )
                return False
        except Exception:
            logger.exception(f"{name}_send_error")
            return False

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None


class SlackWebhookNotifier(_HttpNotifier):
    """Delivers notifications via a Slack incoming webhook.

    The recipient is passed as the target channel or user (``#noc``,
    ``@oncall``).
    """

    def __init__(self, config: SlackConfig) -> None:
        super().__init__()
        self._webhook_url = config.webhook_url.get_secret_value()
        self._username = config.username

    async def notify(
        self, channel: str, recipient: str, payload: NotificationPayload,
    ) -> bool:
        attachment: dict = {
            "color": _SLACK_COLORS.get(payload.severity, "#95A5A6"),
            "title": f"[{payload.severity.name}] {payload.title}",
            "fields": [
                {"title": k, "value": v, "short": True}
                for k, v in payload.fields.items()
            ],
        }
        if payload.body:
            attachment["text"] = payload.body
        body = {
            "channel": recipient,
            "username": self._username,
            "text": payload.title,
            "attachments": [attachment],
        }
        return await self._post(self._webhook_url, body, "slack")


class EmailRelayNotifier(_HttpNotifier):
    """Hands notifications to an HTTP mail relay as JSON messages."""

    def __init__(self, config: EmailConfig) -> None:
        super().__init__()
        self._relay_url = config.relay_url.get_secret_value()
        self._sender = config.sender

    async def notify(
        self, channel: str, recipient: str, payload: NotificationPayload,
    ) -> bool:
        lines = [payload.body] if payload.body else []
        lines.extend(f"{k}: {v}" for k, v in payload.fields.items())
        message = {
            "from": self._sender,
            "to": [recipient],
            "subject": f"[{payload.severity.name}] {payload.title}",
            "text": "\n".join(lines),
            "headers": {"X-Incident-Id": payload.incident_id},
        }
        return await self._post(self._relay_url, message, "email")


class LogNotifier(Notifier):
    """Writes notifications to the log instead of delivering them."""

    async def notify(
        self, channel: str, recipient: str, payload: NotificationPayload,
    ) -> bool:
        logger.info(
            "notification",
            channel=channel,
            recipient=recipient,
            severity=payload.severity.name,
            title=payload.title,
            incident_id=payload.incident_id,
            level=payload.level_key,
        )
        return True

    async def close(self) -> None:
        pass


class ChannelNotifier(Notifier):
    """Routes each notification to the adapter registered for its channel."""

    def __init__(self, adapters: Mapping[str, Notifier]) -> None:
        self._adapters = dict(adapters)

    @property
    def channels(self) -> list[str]:
        return list(self._adapters)

    async def notify(
        self, channel: str, recipient: str, payload: NotificationPayload,
    ) -> bool:
        adapter = self._adapters.get(channel)
        if adapter is None:
            logger.warning("notifier_unknown_channel", channel=channel)
            return False
        return await adapter.notify(channel, recipient, payload)

    async def close(self) -> None:
        for name, adapter in self._adapters.items():
            try:
                await adapter.close()
            except Exception:
                logger.exception("notifier_close_error", channel=name)
