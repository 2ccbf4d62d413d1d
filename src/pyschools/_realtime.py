"""Internal realtime websocket runtime, message codec and channel bookkeeping.

Supabase Realtime speaks the Phoenix channel protocol (v1 JSON frames:
``{"topic", "event", "payload", "ref", "join_ref"}``). Only the subset
needed for ``postgres_changes`` subscriptions is implemented.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from dataclasses import dataclass
from typing import Any

import aiohttp

from pyschools._constants import (
    HEARTBEAT,
    PHOENIX_TOPIC,
    PHX_CLOSE,
    PHX_ERROR,
    PHX_JOIN,
    PHX_LEAVE,
    PHX_REPLY,
    POSTGRES_CHANGES,
    STATUS_CHANNEL_ERROR,
    STATUS_CLOSED,
    STATUS_SUBSCRIBED,
    STATUS_TIMED_OUT,
    SYSTEM,
    realtime_topic,
)
from pyschools._redact import redact_for_log, redact_url
from pyschools.config import SchoolsConfig
from pyschools.exceptions import SchoolsApiError, SchoolsTransportError
from pyschools.store import ChangeHandler, StatusHandler


@dataclass(frozen=True)
class RealtimeMessage:
    """One decoded Phoenix frame."""

    topic: str
    event: str
    payload: dict[str, Any]
    ref: str | None = None
    join_ref: str | None = None


@dataclass(eq=False)
class RealtimeChannel:
    """Subscription handle returned by :meth:`RealtimeRuntime.join`."""

    topic: str
    table: str
    join_ref: str
    on_change: ChangeHandler
    on_status: StatusHandler | None = None
    joined: bool = False


def decode_realtime_message(text: str | bytes) -> RealtimeMessage:
    """Parse a text frame into a :class:`RealtimeMessage`."""
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise SchoolsTransportError(f"Realtime frame is not JSON: {str(text)[:64]}") from exc
    if not isinstance(parsed, dict):
        raise SchoolsTransportError("Realtime frame is not an object")

    topic = parsed.get("topic")
    event = parsed.get("event")
    if not isinstance(topic, str) or not isinstance(event, str):
        raise SchoolsTransportError("Realtime frame missing topic/event")

    payload = parsed.get("payload")
    ref = parsed.get("ref")
    join_ref = parsed.get("join_ref")
    return RealtimeMessage(
        topic=topic,
        event=event,
        payload=payload if isinstance(payload, dict) else {},
        ref=str(ref) if ref is not None else None,
        join_ref=str(join_ref) if join_ref is not None else None,
    )


def encode_realtime_message(
    topic: str,
    event: str,
    payload: dict[str, Any],
    *,
    ref: str | None = None,
    join_ref: str | None = None,
) -> str:
    return json.dumps(
        {"topic": topic, "event": event, "payload": payload, "ref": ref, "join_ref": join_ref},
        separators=(",", ":"),
    )


def build_join_payload(config: SchoolsConfig, table: str, event: str = "*") -> dict[str, Any]:
    """Join payload subscribing to ``postgres_changes`` of one table."""
    return {
        "config": {
            "broadcast": {"ack": False, "self": False},
            "presence": {"key": ""},
            "postgres_changes": [{"event": event, "schema": config.schema, "table": table}],
            "private": False,
        },
        "access_token": config.anon_key,
    }


def _reply_reason(reply: dict[str, Any]) -> str:
    response = reply.get("response")
    if isinstance(response, dict):
        for key in ("reason", "message", "error"):
            value = response.get(key)
            if value:
                return str(value)
    if response:
        return str(response)
    return f"status={reply.get('status')!r}"


class RealtimeRuntime:
    """Single-socket realtime client running on the caller's event loop.

    One reader task dispatches frames in receipt order; change handlers are
    invoked synchronously from it. A heartbeat task keeps the socket alive.
    There is no automatic reconnect: when the socket drops every channel is
    reported ``CLOSED`` and forgotten.
    """

    def __init__(
        self,
        config: SchoolsConfig,
        http_session: aiohttp.ClientSession,
        *,
        logger: logging.Logger | None = None,
    ) -> None:
        self._config = config
        self._http = http_session
        self._logger = logger or logging.getLogger(__name__)
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._heartbeat_task: asyncio.Task[None] | None = None
        self._channels: dict[str, RealtimeChannel] = {}
        self._pending: dict[str, asyncio.Future[dict[str, Any]]] = {}
        self._ref = 0
        self._connect_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    @property
    def channels(self) -> tuple[RealtimeChannel, ...]:
        return tuple(self._channels.values())

    def _next_ref(self) -> str:
        self._ref += 1
        return str(self._ref)

    # ------------------------------------------------------------------
    # Socket lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Open the websocket and start the reader/heartbeat tasks."""
        async with self._connect_lock:
            if self.is_connected:
                return
            url = self._config.realtime_url
            self._logger.debug("Realtime connect url=%s", redact_url(url))
            try:
                ws = await self._http.ws_connect(url, autoping=True)
            except (aiohttp.ClientError, TimeoutError) as exc:
                raise SchoolsTransportError(f"Realtime connect failed: {exc}", endpoint="/realtime") from exc

            self._ws = ws
            self._reader_task = asyncio.create_task(self._read_loop(ws), name="pyschools-realtime-reader")
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(ws), name="pyschools-realtime-heartbeat")
            self._logger.debug("Realtime socket open")

    async def close(self) -> None:
        """Close the socket, stop background tasks and drop every channel."""
        ws = self._ws
        self._ws = None
        current = asyncio.current_task()
        for task in (self._heartbeat_task, self._reader_task):
            if task is None or task.done() or task is current:
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._heartbeat_task = None
        self._reader_task = None

        if ws is not None and not ws.closed:
            await ws.close()
            self._logger.debug("Realtime socket closed")

        self._fail_pending(SchoolsTransportError("Realtime socket closed", endpoint="/realtime"))
        self._drop_channels(None)

    def _fail_pending(self, error: Exception) -> None:
        pending = list(self._pending.values())
        self._pending.clear()
        for fut in pending:
            if not fut.done():
                fut.set_exception(error)

    def _drop_channels(self, error: Exception | None) -> None:
        channels = list(self._channels.values())
        self._channels.clear()
        for channel in channels:
            channel.joined = False
            self._notify_status(channel, STATUS_CLOSED, error)

    def _on_socket_lost(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        if self._ws is not ws:
            return
        self._ws = None
        task = self._heartbeat_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._heartbeat_task = None
        error = SchoolsTransportError("Realtime socket closed by server", endpoint="/realtime")
        self._logger.info("Realtime socket lost close_code=%s", ws.close_code)
        self._fail_pending(error)
        self._drop_channels(error)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def _send(
        self,
        topic: str,
        event: str,
        payload: dict[str, Any],
        *,
        ref: str | None = None,
        join_ref: str | None = None,
    ) -> str:
        ws = self._ws
        if ws is None or ws.closed:
            raise SchoolsTransportError("Realtime socket is not connected", endpoint="/realtime")
        ref = ref or self._next_ref()
        self._logger.debug(
            "Realtime send topic=%s event=%s ref=%s payload=%s",
            topic,
            event,
            ref,
            redact_for_log(payload),
        )
        try:
            await ws.send_str(encode_realtime_message(topic, event, payload, ref=ref, join_ref=join_ref))
        except (ConnectionError, aiohttp.ClientError) as exc:
            raise SchoolsTransportError(f"Realtime send failed: {exc}", endpoint="/realtime") from exc
        return ref

    async def _request(
        self,
        topic: str,
        event: str,
        payload: dict[str, Any],
        *,
        ref: str,
        join_ref: str | None = None,
        timeout: float,
    ) -> dict[str, Any]:
        """Send a frame and wait for its ``phx_reply``."""
        fut: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[ref] = fut
        try:
            await self._send(topic, event, payload, ref=ref, join_ref=join_ref)
            return await asyncio.wait_for(fut, timeout)
        finally:
            self._pending.pop(ref, None)

    async def _heartbeat_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        interval = self._config.realtime_heartbeat_interval
        while not ws.closed:
            await asyncio.sleep(interval)
            try:
                await self._request(PHOENIX_TOPIC, HEARTBEAT, {}, ref=self._next_ref(), timeout=interval)
            except TimeoutError:
                self._logger.warning("Realtime heartbeat not acknowledged within %ss, dropping socket", interval)
                self._on_socket_lost(ws)
                await ws.close()
                return
            except SchoolsTransportError:
                self._logger.debug("Realtime heartbeat failed", exc_info=True)
                return

    # ------------------------------------------------------------------
    # Channels
    # ------------------------------------------------------------------

    async def join(
        self,
        table: str,
        on_change: ChangeHandler,
        *,
        event: str = "*",
        on_status: StatusHandler | None = None,
    ) -> RealtimeChannel:
        """Subscribe to ``postgres_changes`` of *table* and wait for the join reply.

        Raises
        ------
        SchoolsTransportError
            Socket failure or join timeout.
        SchoolsApiError
            The server refused the join.
        """
        topic = realtime_topic(self._config.schema, table)
        if topic in self._channels:
            raise SchoolsApiError(f"Already subscribed to {topic}", code="duplicate_join", endpoint=topic)

        await self.connect()

        ref = self._next_ref()
        channel = RealtimeChannel(
            topic=topic,
            table=table,
            join_ref=ref,
            on_change=on_change,
            on_status=on_status,
        )
        self._channels[topic] = channel
        try:
            reply = await self._request(
                topic,
                PHX_JOIN,
                build_join_payload(self._config, table, event),
                ref=ref,
                join_ref=ref,
                timeout=self._config.realtime_join_timeout,
            )
        except TimeoutError as exc:
            self._forget(channel)
            self._notify_status(channel, STATUS_TIMED_OUT, exc)
            raise SchoolsTransportError(
                f"Join of {topic} timed out after {self._config.realtime_join_timeout}s",
                endpoint=topic,
            ) from exc
        except SchoolsTransportError:
            self._forget(channel)
            raise

        if reply.get("status") != "ok":
            self._forget(channel)
            error = SchoolsApiError(f"Join of {topic} refused: {_reply_reason(reply)}", code="join_refused", endpoint=topic)
            self._notify_status(channel, STATUS_CHANNEL_ERROR, error)
            raise error

        channel.joined = True
        self._logger.debug("Realtime joined topic=%s", topic)
        self._notify_status(channel, STATUS_SUBSCRIBED, None)
        return channel

    async def leave(self, channel: RealtimeChannel) -> None:
        """Leave *channel*; closes the socket once no channel is left."""
        if self._channels.get(channel.topic) is not channel:
            return
        self._forget(channel)
        try:
            if self.is_connected:
                await self._send(channel.topic, PHX_LEAVE, {}, join_ref=channel.join_ref)
        finally:
            channel.joined = False
            self._notify_status(channel, STATUS_CLOSED, None)
            if not self._channels:
                await self.close()

    def _forget(self, channel: RealtimeChannel) -> None:
        if self._channels.get(channel.topic) is channel:
            del self._channels[channel.topic]

    def _notify_status(self, channel: RealtimeChannel, status: str, error: Exception | None) -> None:
        if channel.on_status is None:
            return
        try:
            channel.on_status(status, error)
        except Exception:
            self._logger.debug("Realtime status callback failed", exc_info=True)

    # ------------------------------------------------------------------
    # Receiving
    # ------------------------------------------------------------------

    async def _read_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        try:
            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self.handle_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.BINARY:
                    self._logger.debug("Ignoring binary realtime frame (%d bytes)", len(msg.data))
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    self._logger.warning("Realtime socket error: %s", ws.exception())
                    break
        finally:
            self._on_socket_lost(ws)

    def handle_frame(self, text: str | bytes) -> None:
        """Decode and dispatch one text frame."""
        try:
            message = decode_realtime_message(text)
        except SchoolsTransportError:
            self._logger.debug("Ignoring undecodable realtime frame", exc_info=True)
            return
        self._dispatch(message)

    def _dispatch(self, message: RealtimeMessage) -> None:
        self._logger.debug(
            "Realtime recv topic=%s event=%s ref=%s payload=%s",
            message.topic,
            message.event,
            message.ref,
            redact_for_log(message.payload),
        )

        if message.event == PHX_REPLY:
            fut = self._pending.get(message.ref) if message.ref is not None else None
            if fut is not None and not fut.done():
                fut.set_result(message.payload)
            return

        channel = self._channels.get(message.topic)
        if channel is None:
            return

        if message.event == POSTGRES_CHANGES:
            data = message.payload.get("data")
            if not isinstance(data, dict):
                self._logger.debug("postgres_changes frame without data on %s", message.topic)
                return
            try:
                channel.on_change(data)
            except Exception:
                self._logger.exception("Change handler failed for %s", message.topic)
            return

        if message.event == PHX_ERROR:
            self._logger.warning("Realtime channel error on %s", message.topic)
            self._forget(channel)
            channel.joined = False
            self._notify_status(
                channel,
                STATUS_CHANNEL_ERROR,
                SchoolsApiError(f"Channel {message.topic} errored", code="channel_error", endpoint=message.topic),
            )
            return

        if message.event == PHX_CLOSE:
            self._logger.info("Realtime channel closed by server: %s", message.topic)
            self._forget(channel)
            channel.joined = False
            self._notify_status(channel, STATUS_CLOSED, None)
            return

        if message.event == SYSTEM:
            status = message.payload.get("status")
            text = message.payload.get("message")
            if status == "error":
                self._logger.warning("Realtime system error on %s: %s", message.topic, text)
                self._forget(channel)
                channel.joined = False
                self._notify_status(
                    channel,
                    STATUS_CHANNEL_ERROR,
                    SchoolsApiError(str(text or "realtime system error"), code="system", endpoint=message.topic),
                )
            else:
                self._logger.info("Realtime system message on %s: %s", message.topic, text)
