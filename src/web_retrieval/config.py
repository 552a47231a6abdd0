"""Configuration handling for recurring web retrieval."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, List

import yaml

from web_retrieval.fetcher import DEFAULT_FAILURE_THRESHOLD
from web_retrieval.retrieval import (
    DEFAULT_MAX_REDIRECTS,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
    RetrievalConfig,
)


class ConfigError(ValueError):
    """Raised when configuration files are invalid or incomplete."""


@dataclass
class RetrievalSettings:
    """HTTP request configuration section."""

    timeout_seconds: float = DEFAULT_TIMEOUT.total_seconds()
    user_agent: str = DEFAULT_USER_AGENT
    max_redirects: int = DEFAULT_MAX_REDIRECTS

    def to_config(self) -> RetrievalConfig:
        return RetrievalConfig(
            timeout=timedelta(seconds=self.timeout_seconds),
            user_agent=self.user_agent,
            max_redirects=self.max_redirects,
        )


@dataclass
class FetcherSettings:
    """Recurring fetch configuration section."""

    urls: List[str] = field(default_factory=list)
    preferred_interval_seconds: int | None = None
    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD


@dataclass
class AlertsSettings:
    """Alerting configuration section."""

    slack_webhook_url: str | None = None


@dataclass
class LoggingSettings:
    """Logging configuration section."""

    level: str = "INFO"
    json: bool = False


@dataclass
class Settings:
    """Container for all runtime settings."""

    retrieval: RetrievalSettings = field(default_factory=RetrievalSettings)
    fetcher: FetcherSettings = field(default_factory=FetcherSettings)
    alerts: AlertsSettings = field(default_factory=AlertsSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def _section(raw: Dict[str, Any], name: str) -> Dict[str, Any]:
    section = raw.get(name)
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ConfigError(f"{name} section must be a mapping.")
    return section


def _number(section: Dict[str, Any], key: str, default: Any, context: str) -> Any:
    value = section.get(key, default)
    if value is None:
        return None
    try:
        return type(default)(value) if default is not None else int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{context}.{key} must be a number, got {value!r}") from exc


def _load_urls(section: Dict[str, Any]) -> List[str]:
    raw_urls = section.get("urls") or []
    if isinstance(raw_urls, str):
        raw_urls = [raw_urls]
    if not isinstance(raw_urls, list):
        raise ConfigError("fetcher.urls must be a list of URLs.")

    urls: List[str] = []
    for idx, item in enumerate(raw_urls):
        if not isinstance(item, str) or not item.strip():
            raise ConfigError(f"URL entry at index {idx} must be a non-empty string.")
        urls.append(item.strip())
    return urls


def load_settings(path: str) -> Settings:
    """Load application settings from a YAML file."""
    raw = yaml.safe_load(_read_file(path)) or {}
    if not isinstance(raw, dict):
        raise ConfigError("Settings YAML must be a mapping/object.")

    retrieval_section = _section(raw, "retrieval")
    fetcher_section = _section(raw, "fetcher")
    alerts_section = _section(raw, "alerts")
    logging_section = _section(raw, "logging")

    defaults = Settings()
    retrieval_settings = RetrievalSettings(
        timeout_seconds=_number(
            retrieval_section, "timeout_seconds", defaults.retrieval.timeout_seconds, "retrieval"
        ),
        user_agent=str(retrieval_section.get("user_agent") or defaults.retrieval.user_agent),
        max_redirects=_number(retrieval_section, "max_redirects", defaults.retrieval.max_redirects, "retrieval"),
    )
    fetcher_settings = FetcherSettings(
        urls=_load_urls(fetcher_section),
        preferred_interval_seconds=_number(
            fetcher_section, "preferred_interval_seconds", defaults.fetcher.preferred_interval_seconds, "fetcher"
        ),
        failure_threshold=_number(
            fetcher_section, "failure_threshold", defaults.fetcher.failure_threshold, "fetcher"
        ),
    )
    alerts_settings = AlertsSettings(slack_webhook_url=alerts_section.get("slack_webhook_url"))
    logging_settings = LoggingSettings(
        level=str(logging_section.get("level", defaults.logging.level)).upper(),
        json=bool(logging_section.get("json", defaults.logging.json)),
    )

    return Settings(
        retrieval=retrieval_settings,
        fetcher=fetcher_settings,
        alerts=alerts_settings,
        logging=logging_settings,
    )


def _read_file(path: str) -> str:
    try:
        with open(path, "r", encoding="utf-8") as handle:
            return handle.read()
    except FileNotFoundError as exc:
        raise ConfigError(f"Configuration file not found: {path}") from exc
