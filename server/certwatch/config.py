"""
certwatch Configuration

Centralized configuration. All environment variables are read here;
command-line flags in certwatch.main override these values.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Optional

from certwatch.core.types import ConfigurationError, ReconnectionState
from certwatch.notify.stdout import OUTPUT_MODES
from certwatch.notify.webhook import WEBHOOK_FORMATS

DEFAULT_REGEX_FILE = "regexes.txt"
DEFAULT_FEED_URL = "ws://127.0.0.1:4000/"


def _optional_env(name: str, default: str = "") -> str:
    """Get an optional environment variable with a default."""
    return os.environ.get(name, default)


def _optional_env_int(name: str, default: int) -> int:
    """Get an optional integer environment variable with a default."""
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigurationError(f"Invalid integer value for {name}: {value}")


def _optional_env_float(name: str, default: float) -> float:
    """Get an optional float environment variable with a default."""
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"Invalid number value for {name}: {value}")


def _optional_env_bool(name: str, default: bool) -> bool:
    """Get an optional boolean environment variable with a default."""
    value = os.environ.get(name)
    if not value:
        return default
    return value.lower() in ("true", "1", "yes")


def _optional_env_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = os.environ.get(name) or default
    if value not in choices:
        raise ConfigurationError(
            f"Invalid value for {name}: {value} (expected one of {', '.join(choices)})"
        )
    return value


def default_concurrency() -> int:
    """One in-flight message per available CPU."""
    return os.cpu_count() or 1


@dataclass(frozen=True)
class FeedConfig:
    """certstream WebSocket configuration."""
    url: str = DEFAULT_FEED_URL
    concurrency: int = 1  # 0 = unbounded
    ping_interval: float = 20.0
    ping_timeout: float = 20.0


@dataclass(frozen=True)
class ReconnectConfig:
    """Backoff for failed connection attempts."""
    initial_delay_seconds: float = 1.0
    max_delay_seconds: float = 60.0
    max_retries: int = 0  # 0 = retry forever

    def new_state(self) -> ReconnectionState:
        return ReconnectionState(
            initial_delay_seconds=self.initial_delay_seconds,
            max_delay_seconds=self.max_delay_seconds,
        )


@dataclass(frozen=True)
class OutputConfig:
    """stdout sink configuration."""
    mode: str = "pattern"


@dataclass(frozen=True)
class WebhookConfig:
    """Webhook sink configuration. Disabled when url is None."""
    url: Optional[str] = None
    format: str = "slack"
    timeout_seconds: float = 10.0

    @property
    def enabled(self) -> bool:
        return bool(self.url)


@dataclass(frozen=True)
class Settings:
    """Root configuration container."""
    regex_file: str
    feed: FeedConfig
    reconnect: ReconnectConfig
    output: OutputConfig
    webhook: WebhookConfig
    debug: bool = False

    def with_overrides(
        self,
        *,
        regex_file: Optional[str] = None,
        url: Optional[str] = None,
        webhook_url: Optional[str] = None,
        webhook_format: Optional[str] = None,
        output_mode: Optional[str] = None,
        concurrency: Optional[int] = None,
        debug: Optional[bool] = None,
    ) -> Settings:
        """Return a copy with command-line values applied (None = keep)."""
        if concurrency is not None and concurrency < 0:
            raise ConfigurationError(f"Concurrency must be >= 0, got {concurrency}")

        feed = self.feed
        if url is not None or concurrency is not None:
            feed = replace(
                feed,
                url=url if url is not None else feed.url,
                concurrency=concurrency if concurrency is not None else feed.concurrency,
            )

        webhook = replace(
            self.webhook,
            url=webhook_url if webhook_url is not None else self.webhook.url,
            format=webhook_format or self.webhook.format,
        )
        output = replace(self.output, mode=output_mode or self.output.mode)

        return replace(
            self,
            regex_file=regex_file if regex_file is not None else self.regex_file,
            feed=feed,
            webhook=webhook,
            output=output,
            debug=self.debug if debug is None else debug,
        )


def load_settings() -> Settings:
    """Load all settings from environment variables.

    Nothing is required: every value has a default so the monitor can run
    against a local feed with only a pattern file.
    """
    concurrency = _optional_env_int("CERTWATCH_CONCURRENCY", default_concurrency())
    if concurrency < 0:
        raise ConfigurationError(f"CERTWATCH_CONCURRENCY must be >= 0, got {concurrency}")

    feed = FeedConfig(
        url=_optional_env("CERTWATCH_FEED_URL", DEFAULT_FEED_URL),
        concurrency=concurrency,
        ping_interval=_optional_env_float("CERTWATCH_PING_INTERVAL", 20.0),
        ping_timeout=_optional_env_float("CERTWATCH_PING_TIMEOUT", 20.0),
    )

    reconnect = ReconnectConfig(
        initial_delay_seconds=_optional_env_float("CERTWATCH_RECONNECT_INITIAL_DELAY", 1.0),
        max_delay_seconds=_optional_env_float("CERTWATCH_RECONNECT_MAX_DELAY", 60.0),
        max_retries=_optional_env_int("CERTWATCH_RECONNECT_MAX_RETRIES", 0),
    )

    output = OutputConfig(
        mode=_optional_env_choice("CERTWATCH_OUTPUT_MODE", "pattern", OUTPUT_MODES),
    )

    webhook = WebhookConfig(
        url=_optional_env("CERTWATCH_WEBHOOK_URL") or None,
        format=_optional_env_choice("CERTWATCH_WEBHOOK_FORMAT", "slack", WEBHOOK_FORMATS),
        timeout_seconds=_optional_env_float("CERTWATCH_WEBHOOK_TIMEOUT", 10.0),
    )

    return Settings(
        regex_file=_optional_env("CERTWATCH_REGEX_FILE", DEFAULT_REGEX_FILE),
        feed=feed,
        reconnect=reconnect,
        output=output,
        webhook=webhook,
        debug=_optional_env_bool("CERTWATCH_DEBUG", False),
    )
