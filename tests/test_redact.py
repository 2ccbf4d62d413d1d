from __future__ import annotations

from pyschools._redact import redact_for_log, redact_url


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "topic": "realtime:public:escuela",
        "apikey": "anon-key",
        "config": {"postgres_changes": [{"event": "*"}]},
        "access_token": "jwt",
        "headers": {"Authorization": "Bearer jwt"},
    }

    redacted = redact_for_log(payload)
    assert redacted["apikey"] == "<redacted>"
    assert redacted["access_token"] == "<redacted>"
    assert redacted["headers"]["Authorization"] == "<redacted>"
    assert redacted["config"] == {"postgres_changes": [{"event": "*"}]}


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_redact_url_hides_api_key() -> None:
    url = "wss://demo.supabase.co/realtime/v1/websocket?apikey=secret&vsn=1.0.0"

    redacted = redact_url(url)

    assert "secret" not in redacted
    assert redacted.endswith("apikey=<redacted>&vsn=1.0.0")
    assert redact_url("https://demo.supabase.co") == "https://demo.supabase.co"


def test_redact_for_log_masks_join_payload_and_keeps_row_data() -> None:
    frame = {
        "topic": "realtime:public:escuela",
        "payload": {
            "config": {"postgres_changes": [{"event": "*", "schema": "public", "table": "escuela"}]},
            "ApiKey": "anon-key",
            "access_token": "anon-key",
        },
        "rows": [{"id": 1, "name": "Lincoln", "email": "info@lincoln.edu", "phone": "555-0101"}],
        "raw": b"\x00\x01",
    }

    redacted = redact_for_log(frame)

    assert redacted["payload"]["ApiKey"] == "<redacted>"
    assert redacted["payload"]["access_token"] == "<redacted>"
    assert redacted["payload"]["config"] == frame["payload"]["config"]
    assert redacted["rows"] == frame["rows"]
    assert redacted["raw"] == "<bytes:2b>"
