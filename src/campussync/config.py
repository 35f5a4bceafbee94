"""Client configuration for campussync."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Union

from dotenv import dotenv_values

ENV_PREFIX = "CAMPUSSYNC_"

DEFAULT_API_BASE_URL = "http://localhost:8080/api"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(slots=True, frozen=True)
class ClientConfig:
    """
    Connection settings shared by the REST client and the realtime stream.

    Attributes:
        api_base_url: Base URL of the booking REST API.
        realtime_url: Websocket endpoint of the change stream
            (e.g. wss://<project>.supabase.co/realtime/v1/websocket).
        api_key: Project key sent as `apikey` when opening the websocket.
        timeout: REST request timeout in seconds.
        heartbeat_interval: Seconds between realtime heartbeats.
        join_timeout: Seconds to wait for a channel join reply.
        events_per_second: Server-side event rate limit requested on connect.
        schema: Database schema the change stream listens on.
        log_level: Level used by the CLI when configuring logging.
    """

    api_base_url: str = DEFAULT_API_BASE_URL
    realtime_url: Optional[str] = None
    api_key: Optional[str] = None
    timeout: float = 10.0
    heartbeat_interval: float = 25.0
    join_timeout: float = 10.0
    events_per_second: int = 10
    schema: str = "public"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if not isinstance(self.api_base_url, str) or not self.api_base_url.strip():
            raise ValueError("api_base_url must be a non-empty string")
        if self.realtime_url is not None and not self.realtime_url.startswith(
            ("ws://", "wss://")
        ):
            raise ValueError("realtime_url must start with ws:// or wss://")
        for name in ("timeout", "heartbeat_interval", "join_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.events_per_second <= 0:
            raise ValueError("events_per_second must be positive")
        if self.log_level.upper() not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")

    @classmethod
    def from_env(
        cls,
        env_file: Optional[Union[str, Path]] = None,
        *,
        environ: Optional[Mapping[str, str]] = None,
    ) -> ClientConfig:
        """
        Load configuration from CAMPUSSYNC_* variables.

        Values from `env_file` (parsed with python-dotenv) are used as
        defaults; the process environment (or `environ`) takes precedence.
        """
        values: dict[str, str] = {}
        if env_file is not None:
            for key, value in dotenv_values(env_file).items():
                if value is not None:
                    values[key] = value
        values.update(os.environ if environ is None else environ)

        def _get(name: str) -> Optional[str]:
            raw = values.get(ENV_PREFIX + name)
            if raw is None or not raw.strip():
                return None
            return raw.strip()

        kwargs: dict[str, object] = {}
        if (url := _get("API_URL")) is not None:
            kwargs["api_base_url"] = url
        if (url := _get("REALTIME_URL")) is not None:
            kwargs["realtime_url"] = url
        if (key := _get("API_KEY")) is not None:
            kwargs["api_key"] = key
        if (schema := _get("SCHEMA")) is not None:
            kwargs["schema"] = schema
        if (level := _get("LOG_LEVEL")) is not None:
            kwargs["log_level"] = level.upper()

        for name, env_name in (
            ("timeout", "TIMEOUT"),
            ("heartbeat_interval", "HEARTBEAT_INTERVAL"),
            ("join_timeout", "JOIN_TIMEOUT"),
        ):
            raw = _get(env_name)
            if raw is not None:
                kwargs[name] = _parse_number(env_name, raw, float)

        raw_eps = _get("EVENTS_PER_SECOND")
        if raw_eps is not None:
            kwargs["events_per_second"] = _parse_number("EVENTS_PER_SECOND", raw_eps, int)

        return cls(**kwargs)  # type: ignore[arg-type]


def _parse_number(name: str, raw: str, kind: type) -> float | int:
    try:
        return kind(raw)
    except ValueError as exc:
        raise ValueError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}") from exc
