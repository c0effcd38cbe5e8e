"""Pydantic settings loaded from YAML configuration."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    SecretStr,
    ValidationError,
    field_validator,
    model_validator,
)

from netalert.core.exceptions import ConfigError
from netalert.core.types import (
    BusinessService,
    Contact,
    Direction,
    EscalationChain,
    EscalationLevel,
    Severity,
    Threshold,
    ThresholdKind,
)

_settings: Settings | None = None

_DEFAULT_CONFIG_PATH = Path("config/settings.yaml")


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class EngineConfig(_Frozen):
    """Time windows and pipeline sizing."""

    correlation_window_secs: float = 3600.0
    deduplication_window_secs: float = 300.0
    sweep_interval_secs: float = 30.0
    queue_size: int = 10000
    workers: int = 4
    dispatch_backlog: int = 1000
    state_path: str | None = None

    @field_validator(
        "correlation_window_secs",
        "deduplication_window_secs",
        "sweep_interval_secs",
    )
    @classmethod
    def _positive_window(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("windows must be positive")
        return v

    @field_validator("queue_size", "workers", "dispatch_backlog")
    @classmethod
    def _positive_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v


class ThresholdConfig(_Frozen):
    """Bounds for one metric as written in YAML (metric name is the key)."""

    kind: ThresholdKind = ThresholdKind.NUMERIC
    warning: float | str
    critical: float | str
    unit: str = ""
    direction: Direction = Direction.ABOVE
    window_secs: float | None = None
    levels: list[str] = []

    @model_validator(mode="after")
    def _check_bounds(self) -> ThresholdConfig:
        if self.kind == ThresholdKind.CATEGORICAL:
            if not self.levels:
                raise ValueError("categorical threshold needs ordered levels")
            for bound in (self.warning, self.critical):
                if str(bound) not in self.levels:
                    raise ValueError(f"bound {bound!r} not in levels")
            if self.levels.index(str(self.warning)) > self.levels.index(str(self.critical)):
                raise ValueError("warning level ranks above critical level")
            return self

        if isinstance(self.warning, str) or isinstance(self.critical, str):
            raise ValueError("numeric bounds must be numbers")
        if self.direction == Direction.ABOVE and self.warning > self.critical:
            raise ValueError("warning bound exceeds critical bound")
        if self.direction == Direction.BELOW and self.warning < self.critical:
            raise ValueError("warning bound below critical bound")
        if self.kind == ThresholdKind.COUNT and not self.window_secs:
            raise ValueError("count threshold needs window_secs")
        if self.window_secs is not None and self.window_secs <= 0:
            raise ValueError("window_secs must be positive")
        return self

    def to_threshold(self, metric: str) -> Threshold:
        return Threshold(
            metric=metric,
            kind=self.kind,
            warning=self.warning,
            critical=self.critical,
            unit=self.unit,
            direction=self.direction,
            window_secs=self.window_secs,
            levels=tuple(self.levels),
        )


def _default_thresholds() -> dict[str, ThresholdConfig]:
    return {
        "bandwidth_utilization": ThresholdConfig(warning=70, critical=85, unit="%"),
        "cpu_utilization": ThresholdConfig(warning=80, critical=95, unit="%"),
        "memory_utilization": ThresholdConfig(warning=80, critical=95, unit="%"),
        "interface_errors": ThresholdConfig(warning=10, critical=100, unit="errors"),
        "packet_loss": ThresholdConfig(warning=1, critical=5, unit="%"),
        "latency_ms": ThresholdConfig(warning=100, critical=250, unit="ms"),
        "auth_failures": ThresholdConfig(
            kind=ThresholdKind.COUNT,
            warning=5,
            critical=10,
            unit="events",
            window_secs=300,
        ),
        "fan_status": ThresholdConfig(
            kind=ThresholdKind.CATEGORICAL,
            warning="degraded",
            critical="failed",
            levels=["ok", "degraded", "failed"],
        ),
    }


def _default_chains() -> dict[str, EscalationChain]:
    return {
        "warning": EscalationChain(
            levels=(EscalationLevel(name="noc"),),
            timeout_secs=1800,
        ),
        "critical": EscalationChain(
            levels=(
                EscalationLevel(name="noc"),
                EscalationLevel(name="network-engineering"),
                EscalationLevel(name="it-management"),
            ),
            timeout_secs=900,
        ),
    }


class EmailConfig(_Frozen):
    """Email relay (HTTP mail API) delivery."""

    enabled: bool = False
    relay_url: SecretStr = SecretStr("")
    sender: str = "netalert@localhost"


class SlackConfig(_Frozen):
    """Slack incoming-webhook delivery."""

    enabled: bool = False
    webhook_url: SecretStr = SecretStr("")
    username: str = "netalert"


class NotificationsConfig(_Frozen):
    """Channel enablement and severity → contact mapping."""

    email: EmailConfig = EmailConfig()
    slack: SlackConfig = SlackConfig()
    severity_contacts: dict[str, list[Contact]] = {}
    include_service_contacts: bool = False

    @field_validator("severity_contacts")
    @classmethod
    def _known_severities(
        cls, v: dict[str, list[Contact]],
    ) -> dict[str, list[Contact]]:
        return {Severity.from_label(k).label: contacts for k, contacts in v.items()}

    @property
    def enabled_channels(self) -> list[str]:
        channels: list[str] = []
        if self.email.enabled:
            channels.append("email")
        if self.slack.enabled:
            channels.append("slack")
        return channels

    def contacts_for(self, severity: Severity) -> list[Contact]:
        return list(self.severity_contacts.get(severity.label, []))


class ApiConfig(_Frozen):
    """Acknowledgement / reporting HTTP API."""

    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 8088
    username: str = ""
    password: SecretStr = SecretStr("")


class LoggingConfig(_Frozen):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "json"


class Settings(_Frozen):
    """Root settings container."""

    engine: EngineConfig = EngineConfig()
    thresholds: dict[str, ThresholdConfig] = _default_thresholds()
    escalation: dict[str, EscalationChain] = _default_chains()
    business_services: list[BusinessService] = []
    notifications: NotificationsConfig = NotificationsConfig()
    api: ApiConfig = ApiConfig()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("thresholds")
    @classmethod
    def _require_thresholds(
        cls, v: dict[str, ThresholdConfig],
    ) -> dict[str, ThresholdConfig]:
        if not v:
            raise ValueError("at least one threshold is required")
        return v

    @field_validator("escalation")
    @classmethod
    def _check_chains(
        cls, v: dict[str, EscalationChain],
    ) -> dict[str, EscalationChain]:
        chains = {Severity.from_label(k).label: chain for k, chain in v.items()}
        for required in (Severity.WARNING, Severity.CRITICAL):
            if required.label not in chains:
                raise ValueError(f"missing escalation chain for {required.label}")
        for label, chain in chains.items():
            if not chain.levels:
                raise ValueError(f"escalation chain {label!r} has no levels")
            if chain.timeout_secs <= 0:
                raise ValueError(f"escalation chain {label!r} timeout must be positive")
            for level in chain.levels:
                if level.timeout_secs is not None and level.timeout_secs <= 0:
                    raise ValueError(
                        f"level {level.name!r} timeout must be positive",
                    )
        return chains

    @field_validator("business_services")
    @classmethod
    def _unique_services(cls, v: list[BusinessService]) -> list[BusinessService]:
        names = [svc.name for svc in v]
        if len(names) != len(set(names)):
            raise ValueError("business service names must be unique")
        return v

    def threshold_table(self) -> dict[str, Threshold]:
        return {
            metric: cfg.to_threshold(metric)
            for metric, cfg in self.thresholds.items()
        }

    def escalation_chains(self) -> dict[Severity, EscalationChain]:
        return {
            Severity.from_label(label): chain
            for label, chain in self.escalation.items()
        }


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file and cache globally.

    Args:
        path: Path to YAML config. Defaults to config/settings.yaml.

    Returns:
        Parsed Settings instance.

    Raises:
        ConfigError: The file is not valid YAML or fails validation.
    """
    global _settings  # noqa: PLW0603

    config_path = Path(path) if path else _DEFAULT_CONFIG_PATH

    data: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            try:
                raw = yaml.safe_load(f)
            except yaml.YAMLError as exc:
                raise ConfigError(f"{config_path}: invalid YAML: {exc}") from exc
        if raw is not None and not isinstance(raw, dict):
            raise ConfigError(f"{config_path}: top level must be a mapping")
        if isinstance(raw, dict):
            data = raw

    try:
        _settings = Settings(**data)
    except ValidationError as exc:
        raise ConfigError(f"{config_path}: {exc}") from exc
    return _settings


def get_settings() -> Settings:
    """Return the cached settings, loading defaults if not yet loaded."""
    global _settings  # noqa: PLW0603
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Reset the cached settings (useful for testing)."""
    global _settings  # noqa: PLW0603
    _settings = None
