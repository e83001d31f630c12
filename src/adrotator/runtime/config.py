"""
Rotator configuration.

Defines RotatorConfig, the options recognised by the rotation runtime. All
intervals and timeouts are expressed in milliseconds.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import TYPE_CHECKING, Any
from urllib.parse import urljoin

from adrotator.infra.exceptions import ConfigError

if TYPE_CHECKING:
    from adrotator.infra.settings import Settings


@dataclass(frozen=True)
class RotatorConfig:
    """
    Options for one rotator instance.

    slot_selector is an fnmatch pattern matched against slot ids; api is the
    AdSource endpoint. analytics_endpoint may be relative, in which case it is
    resolved against api.
    """
    slot_selector: str = "ad-banner*"
    api: str = "/api/v1/ad"
    default_interval: int = 30_000
    fetch_timeout: int = 8_000
    max_retries: int = 3
    backoff_factor: float = 2.0
    retry_base_delay: int = 300
    min_video_play_visibility: float = 0.5
    recently_shown_limit: int = 20
    recent_penalty: float = 0.2
    stagger_start_max: int = 2_000
    stagger_step: int = 1_000
    hidden_interval_multiplier: float = 4.0
    error_backoff_cap: float = 16.0
    min_display_interval: int = 3_000
    fetch_count: int = 1
    analytics_endpoint: str = "/api/v1/ad/event"
    storage_key: str = "ads.lastShown"
    progress_bar: bool = True
    placeholder_image: str = "/images/default.jpg"
    allow_video_on_slow_connection: bool = False
    low_bandwidth_threshold: float = 0.5  # Mbps

    def __post_init__(self) -> None:
        if self.default_interval <= 0:
            raise ConfigError("default_interval must be greater than zero")
        if self.fetch_timeout <= 0:
            raise ConfigError("fetch_timeout must be greater than zero")
        if self.max_retries < 0:
            raise ConfigError("max_retries must be non-negative")
        if self.backoff_factor < 1.0:
            raise ConfigError("backoff_factor must be at least 1")
        if self.retry_base_delay < 0:
            raise ConfigError("retry_base_delay must be non-negative")
        if not 0.0 <= self.min_video_play_visibility <= 1.0:
            raise ConfigError("min_video_play_visibility must be within [0, 1]")
        if self.recently_shown_limit < 0:
            raise ConfigError("recently_shown_limit must be non-negative")
        if not 0.0 <= self.recent_penalty <= 1.0:
            raise ConfigError("recent_penalty must be within [0, 1]")
        if self.stagger_start_max < 0 or self.stagger_step < 0:
            raise ConfigError("stagger offsets must be non-negative")
        if self.hidden_interval_multiplier <= 0 or self.error_backoff_cap <= 0:
            raise ConfigError("interval multipliers must be greater than zero")
        if self.fetch_count < 1:
            raise ConfigError("fetch_count must be at least 1")
        if not self.api:
            raise ConfigError("api endpoint is required")

    @property
    def analytics_url(self) -> str:
        return urljoin(self.api, self.analytics_endpoint)

    @property
    def hidden_interval(self) -> int:
        """Re-arm delay used when the page is hidden."""
        return int(self.default_interval * self.hidden_interval_multiplier)

    @property
    def error_backoff(self) -> int:
        """Re-arm delay after an exhausted fetch; the same for every failure."""
        return int(min(self.default_interval * self.backoff_factor,
                       self.default_interval * self.error_backoff_cap))

    def stagger_offset(self, index: int) -> int:
        """Initial delay for the slot at ``index``."""
        return min(self.stagger_step * index, self.stagger_start_max)

    def with_overrides(self, **overrides: Any) -> RotatorConfig:
        return replace(self, **overrides)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RotatorConfig:
        """
        Build a config from a dict, accepting snake_case or camelCase keys.

        Unknown keys raise ConfigError so typos do not silently fall back to
        defaults.
        """
        known = {f.name for f in fields(cls)}
        aliases = {_camel(name): name for name in known}
        kwargs: dict[str, Any] = {}
        for key, value in data.items():
            name = key if key in known else aliases.get(key)
            if name is None:
                raise ConfigError(f"Unknown rotator option: {key}")
            kwargs[name] = value
        return cls(**kwargs)

    @classmethod
    def from_settings(cls, settings: Settings, **overrides: Any) -> RotatorConfig:
        config = cls(
            slot_selector=settings.slot_selector,
            api=settings.ad_api,
            default_interval=settings.default_interval_ms,
            fetch_timeout=settings.fetch_timeout_ms,
            max_retries=settings.max_retries,
            backoff_factor=settings.backoff_factor,
            min_video_play_visibility=settings.min_video_play_visibility,
            recently_shown_limit=settings.recently_shown_limit,
            stagger_start_max=settings.stagger_start_max_ms,
            analytics_endpoint=settings.analytics_endpoint,
            storage_key=settings.storage_key,
        )
        return config.with_overrides(**overrides) if overrides else config


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)
