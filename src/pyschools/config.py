"""Client configuration for pyschools."""

from __future__ import annotations

import dataclasses
import os
from typing import Any
from urllib.parse import urlencode, urlsplit

from pyschools._constants import DEFAULT_SCHEMA, DEFAULT_TABLE, REALTIME_PATH, REALTIME_VSN, REST_PATH
from pyschools.exceptions import SchoolsConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class SchoolsConfig:
    """Client configuration.

    Parameters
    ----------
    url : str
        Supabase project URL (e.g. ``"https://abc.supabase.co"``).
    anon_key : str
        Project anon (public) API key. Sent as ``apikey`` and bearer token.
    schema : str
        Database schema holding the records table.
    table : str
        Records table name.
    request_timeout : float
        Total timeout in seconds for a single REST request.
    realtime_enabled : bool
        Allow change-feed subscriptions over the realtime websocket.
    realtime_events_per_second : int
        Server-side throttle requested for realtime events.
    realtime_heartbeat_interval : float
        Seconds between Phoenix heartbeats on the realtime socket.
    realtime_join_timeout : float
        Seconds to wait for a channel join reply.
    """

    url: str
    anon_key: str
    schema: str = DEFAULT_SCHEMA
    table: str = DEFAULT_TABLE
    request_timeout: float = 10.0
    realtime_enabled: bool = True
    realtime_events_per_second: int = 2
    realtime_heartbeat_interval: float = 25.0
    realtime_join_timeout: float = 10.0

    def __post_init__(self) -> None:
        url = (self.url or "").strip().rstrip("/")
        if not url:
            raise SchoolsConfigError("url must be non-empty")
        if urlsplit(url).scheme not in {"http", "https"}:
            raise SchoolsConfigError(f"url must start with http:// or https://, got {url!r}")
        if not (self.anon_key or "").strip():
            raise SchoolsConfigError("anon_key must be non-empty")
        if not self.table.strip():
            raise SchoolsConfigError("table must be non-empty")
        object.__setattr__(self, "url", url)

    @property
    def rest_url(self) -> str:
        """Base URL of the PostgREST endpoint."""
        return f"{self.url}{REST_PATH}"

    @property
    def realtime_url(self) -> str:
        """Websocket URL of the realtime endpoint, including query parameters."""
        parts = urlsplit(self.url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        query = urlencode(
            {
                "apikey": self.anon_key,
                "eventsPerSecond": str(self.realtime_events_per_second),
                "vsn": REALTIME_VSN,
            }
        )
        return f"{scheme}://{parts.netloc}{parts.path}{REALTIME_PATH}?{query}"

    @classmethod
    def from_env(cls, **overrides: Any) -> SchoolsConfig:
        """Create configuration from environment variables.

        Reads ``SUPABASE_URL``, ``SUPABASE_ANON_KEY`` and optional
        ``SCHOOLS_*`` variables. Explicit keyword arguments override
        environment values.

        Raises
        ------
        SchoolsConfigError
            When the URL or key is missing, or a numeric variable is malformed.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "SUPABASE_URL": "url",
            "SUPABASE_ANON_KEY": "anon_key",
            "SCHOOLS_SCHEMA": "schema",
            "SCHOOLS_TABLE": "table",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        _ENV_NUMERIC_MAP: dict[str, tuple[str, type]] = {
            "SCHOOLS_REQUEST_TIMEOUT": ("request_timeout", float),
            "SCHOOLS_REALTIME_EVENTS_PER_SECOND": ("realtime_events_per_second", int),
            "SCHOOLS_REALTIME_HEARTBEAT_INTERVAL": ("realtime_heartbeat_interval", float),
            "SCHOOLS_REALTIME_JOIN_TIMEOUT": ("realtime_join_timeout", float),
        }
        for env_key, (field_name, kind) in _ENV_NUMERIC_MAP.items():
            val = env.get(env_key)
            if val is None or field_name in overrides:
                continue
            try:
                config_kwargs[field_name] = kind(val)
            except ValueError as exc:
                raise SchoolsConfigError(f"{env_key} is not a valid {kind.__name__}: {val!r}") from exc

        if "realtime_enabled" not in overrides:
            config_kwargs["realtime_enabled"] = _env_bool(env.get("SCHOOLS_REALTIME_ENABLED"), True)

        config_kwargs.update(overrides)

        if "url" not in config_kwargs or "anon_key" not in config_kwargs:
            raise SchoolsConfigError("SUPABASE_URL and SUPABASE_ANON_KEY must be set")

        return cls(**config_kwargs)
