from __future__ import annotations

import pytest

from pyschools.config import SchoolsConfig
from pyschools.exceptions import SchoolsConfigError

_ENV_KEYS = (
    "SUPABASE_URL",
    "SUPABASE_ANON_KEY",
    "SCHOOLS_SCHEMA",
    "SCHOOLS_TABLE",
    "SCHOOLS_REQUEST_TIMEOUT",
    "SCHOOLS_REALTIME_ENABLED",
    "SCHOOLS_REALTIME_EVENTS_PER_SECOND",
    "SCHOOLS_REALTIME_HEARTBEAT_INTERVAL",
    "SCHOOLS_REALTIME_JOIN_TIMEOUT",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_from_env_reads_variables(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://demo.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    monkeypatch.setenv("SCHOOLS_TABLE", "schools")
    monkeypatch.setenv("SCHOOLS_REQUEST_TIMEOUT", "2.5")
    monkeypatch.setenv("SCHOOLS_REALTIME_ENABLED", "off")
    monkeypatch.setenv("SCHOOLS_REALTIME_EVENTS_PER_SECOND", "10")

    config = SchoolsConfig.from_env()

    assert config.url == "https://demo.supabase.co"
    assert config.anon_key == "anon-key"
    assert config.table == "schools"
    assert config.schema == "public"
    assert config.request_timeout == 2.5
    assert config.realtime_enabled is False
    assert config.realtime_events_per_second == 10


def test_overrides_win_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://demo.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    monkeypatch.setenv("SCHOOLS_REQUEST_TIMEOUT", "2.5")

    config = SchoolsConfig.from_env(request_timeout=30.0, table="colegio")

    assert config.request_timeout == 30.0
    assert config.table == "colegio"


def test_from_env_requires_url_and_key() -> None:
    with pytest.raises(SchoolsConfigError):
        SchoolsConfig.from_env()


def test_from_env_rejects_malformed_number(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SUPABASE_URL", "https://demo.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    monkeypatch.setenv("SCHOOLS_REALTIME_HEARTBEAT_INTERVAL", "soon")

    with pytest.raises(SchoolsConfigError, match="SCHOOLS_REALTIME_HEARTBEAT_INTERVAL"):
        SchoolsConfig.from_env()


@pytest.mark.parametrize(
    ("url", "key"),
    [("", "anon-key"), ("demo.supabase.co", "anon-key"), ("https://demo.supabase.co", " ")],
)
def test_invalid_values_rejected(url: str, key: str) -> None:
    with pytest.raises(SchoolsConfigError):
        SchoolsConfig(url=url, anon_key=key)


def test_derived_urls() -> None:
    config = SchoolsConfig(url="https://demo.supabase.co/", anon_key="anon-key", realtime_events_per_second=2)

    assert config.rest_url == "https://demo.supabase.co/rest/v1"
    assert config.realtime_url == (
        "wss://demo.supabase.co/realtime/v1/websocket?apikey=anon-key&eventsPerSecond=2&vsn=1.0.0"
    )


def test_plain_http_uses_ws_scheme() -> None:
    config = SchoolsConfig(url="http://localhost:54321", anon_key="anon-key")

    assert config.realtime_url.startswith("ws://localhost:54321/realtime/v1/websocket?")
