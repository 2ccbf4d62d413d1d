"""High-level async client for the schools backend."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import aiohttp

from pyschools._realtime import RealtimeChannel, RealtimeRuntime
from pyschools._transport import RestTransport, Transport, build_match_params, build_order_param, expect_rows
from pyschools.config import SchoolsConfig
from pyschools.engine import ReconciliationEngine
from pyschools.exceptions import SchoolsConfigError, SchoolsError
from pyschools.store import ChangeHandler, StatusHandler

_logger = logging.getLogger(__name__)

_RETURN_REPRESENTATION = "return=representation"


class SchoolsClient:
    """Async record-store client for a Supabase project.

    Implements :class:`pyschools.store.RecordStore` on top of PostgREST
    (queries and mutations) and Supabase Realtime (change feed).

    Usage::

        async with SchoolsClient(SchoolsConfig.from_env()) as client:
            async with client.create_engine() as engine:
                print(engine.items.get())
    """

    def __init__(
        self,
        config: SchoolsConfig,
        *,
        session: aiohttp.ClientSession | None = None,
        transport: Transport | None = None,
    ) -> None:
        self._config = config
        self._external_session = session is not None
        self._http_session = session
        self._transport: Transport | None = transport
        self._external_transport = transport is not None
        self._realtime: RealtimeRuntime | None = None

    @property
    def config(self) -> SchoolsConfig:
        return self._config

    # ------------------------------------------------------------------
    # Context manager lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SchoolsClient:
        if self._http_session is None:
            self._http_session = aiohttp.ClientSession()
        if self._transport is None:
            self._transport = RestTransport(self._config, self._http_session)
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the realtime socket and the owned HTTP session."""
        runtime = self._realtime
        self._realtime = None
        if runtime is not None:
            try:
                await runtime.close()
            except Exception:
                _logger.debug("Realtime shutdown failed", exc_info=True)
        if not self._external_session and self._http_session is not None:
            await self._http_session.close()
            self._http_session = None
        if not self._external_transport:
            self._transport = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise SchoolsError("Client not initialized. Use 'async with SchoolsClient(...) as client:'")
        return self._transport

    def _require_realtime(self) -> RealtimeRuntime:
        if not self._config.realtime_enabled:
            raise SchoolsConfigError("Realtime is disabled (realtime_enabled=False)")
        if self._realtime is None:
            if self._http_session is None:
                raise SchoolsError("Client not initialized. Use 'async with SchoolsClient(...) as client:'")
            self._realtime = RealtimeRuntime(self._config, self._http_session, logger=_logger)
        return self._realtime

    # ------------------------------------------------------------------
    # Queries and mutations
    # ------------------------------------------------------------------

    async def select(
        self,
        table: str,
        *,
        order_by: str | None = None,
        ascending: bool = True,
        match: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch rows of *table*, optionally ordered and filtered by equality."""
        params: dict[str, str] = {"select": "*"}
        if order_by:
            params["order"] = build_order_param(order_by, ascending)
        params.update(build_match_params(match))
        result = await self._require_transport().request("GET", table, params=params)
        return expect_rows(result, f"/{table}")

    async def insert(self, table: str, fields: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Insert one row; returns the inserted row(s) as echoed by the server."""
        result = await self._require_transport().request(
            "POST",
            table,
            params={"select": "*"},
            body=dict(fields),
            prefer=_RETURN_REPRESENTATION,
        )
        return expect_rows(result, f"/{table}")

    async def update(
        self,
        table: str,
        patch: Mapping[str, Any],
        *,
        match: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        """Patch matching rows; returns the updated row(s)."""
        if not match:
            raise ValueError("update requires a non-empty match filter")
        params = {"select": "*", **build_match_params(match)}
        result = await self._require_transport().request(
            "PATCH",
            table,
            params=params,
            body=dict(patch),
            prefer=_RETURN_REPRESENTATION,
        )
        return expect_rows(result, f"/{table}")

    async def delete(self, table: str, *, match: Mapping[str, Any]) -> None:
        """Delete matching rows."""
        if not match:
            raise ValueError("delete requires a non-empty match filter")
        await self._require_transport().request("DELETE", table, params=build_match_params(match))

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------

    async def subscribe_changes(
        self,
        table: str,
        on_change: ChangeHandler,
        *,
        event: str = "*",
        on_status: StatusHandler | None = None,
    ) -> RealtimeChannel:
        """Subscribe to row changes of *table*; returns the channel handle."""
        runtime = self._require_realtime()
        return await runtime.join(table, on_change, event=event, on_status=on_status)

    async def unsubscribe(self, handle: RealtimeChannel) -> None:
        """Cancel a subscription returned by :meth:`subscribe_changes`."""
        if not isinstance(handle, RealtimeChannel):
            raise TypeError(f"expected RealtimeChannel, got {type(handle).__name__}")
        runtime = self._realtime
        if runtime is None:
            return
        await runtime.leave(handle)

    # ------------------------------------------------------------------
    # Engine
    # ------------------------------------------------------------------

    def create_engine(self, table: str | None = None) -> ReconciliationEngine:
        """Build a reconciliation engine bound to this client."""
        return ReconciliationEngine(self, table=table or self._config.table)
