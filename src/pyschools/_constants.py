"""Internal constants shared across the library."""

USER_AGENT = "pyschools/0 (aiohttp)"

DEFAULT_SCHEMA = "public"
DEFAULT_TABLE = "escuela"

REST_PATH = "/rest/v1"
REALTIME_PATH = "/realtime/v1/websocket"

#: Phoenix channel protocol version spoken by Supabase Realtime.
REALTIME_VSN = "1.0.0"

PHOENIX_TOPIC = "phoenix"
PHX_JOIN = "phx_join"
PHX_LEAVE = "phx_leave"
PHX_REPLY = "phx_reply"
PHX_ERROR = "phx_error"
PHX_CLOSE = "phx_close"
HEARTBEAT = "heartbeat"
POSTGRES_CHANGES = "postgres_changes"
SYSTEM = "system"

# ------------------------------------------------------------------
# Channel status values passed to ``on_status`` callbacks
# ------------------------------------------------------------------

STATUS_SUBSCRIBED = "SUBSCRIBED"
STATUS_CHANNEL_ERROR = "CHANNEL_ERROR"
STATUS_TIMED_OUT = "TIMED_OUT"
STATUS_CLOSED = "CLOSED"


def realtime_topic(schema: str, table: str) -> str:
    """Channel topic used for change notifications of *schema*.*table*."""
    return f"realtime:{schema}:{table}"
