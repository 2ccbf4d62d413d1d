"""Reconciliation engine.

Keeps one ordered, duplicate-free collection of records consistent while
three sources write to it: full refreshes, change-feed events and the
results of local mutations. All writes are whole-value replacements of an
immutable tuple, applied on the event loop thread, so readers never see a
partially merged collection.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from enum import StrEnum
from typing import Any

from pyschools._constants import DEFAULT_TABLE, STATUS_CHANNEL_ERROR, STATUS_CLOSED, STATUS_TIMED_OUT
from pyschools.exceptions import FetchError, MutationError, SchoolsError, SubscriptionError
from pyschools.models.changes import RecordCreated, RecordDeleted, RecordUpdated, parse_change_payload
from pyschools.models.school import School
from pyschools.state.collection import (
    apply_change,
    normalize_records,
    remove_record,
    replace_record,
    upsert_record,
)
from pyschools.state.signal import ReadonlySignal, Signal
from pyschools.store import RecordStore

_logger = logging.getLogger(__name__)


class EngineState(StrEnum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    LIVE = "live"
    SHUT_DOWN = "shut_down"


def _error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class ReconciliationEngine:
    """Authoritative in-memory view of a records table.

    The collection is exposed as a read-only reactive value; every change
    goes through :meth:`refresh`, :meth:`on_change_event` or one of the
    mutation methods. Errors are never raised to callers: they are logged
    and published on :attr:`last_error`.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        table: str = DEFAULT_TABLE,
        record_model: type[School] = School,
    ) -> None:
        self._store = store
        self._table = table
        self._model = record_model
        self._items: Signal[tuple[School, ...]] = Signal(())
        self._loading: Signal[bool] = Signal(False)
        self._last_error: Signal[SchoolsError | None] = Signal(None)
        # Pending-input buffer: name typed for the next record to create.
        self.pending_name: Signal[str] = Signal("")
        self._state = EngineState.UNINITIALIZED
        self._subscription: Any = None
        self._subscribing = False
        self._refreshes_in_flight = 0

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def items(self) -> ReadonlySignal[tuple[School, ...]]:
        return self._items.readonly()

    @property
    def loading(self) -> ReadonlySignal[bool]:
        return self._loading.readonly()

    @property
    def last_error(self) -> ReadonlySignal[SchoolsError | None]:
        return self._last_error.readonly()

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def table(self) -> str:
        return self._table

    @property
    def feed_open(self) -> bool:
        return self._subscription is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> ReconciliationEngine:
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.shutdown()

    async def start(self) -> None:
        """Load the collection and open the change feed concurrently."""
        await asyncio.gather(self.refresh(), self.open_change_feed())

    async def shutdown(self) -> None:
        """Cancel the change feed and clear the collection. Safe to call twice."""
        if self._state is EngineState.SHUT_DOWN:
            return
        self._state = EngineState.SHUT_DOWN

        handle = self._subscription
        self._subscription = None
        if handle is not None:
            await self._release_subscription(handle)

        self._items.set(())
        self._loading.set(False)
        self.pending_name.set("")
        _logger.debug("Engine for %s shut down", self._table)

    async def _release_subscription(self, handle: Any) -> None:
        try:
            await self._store.unsubscribe(handle)
        except Exception:
            _logger.warning("Failed to remove change feed for %s", self._table, exc_info=True)

    def _discard_after_shutdown(self, what: str) -> bool:
        if self._state is EngineState.SHUT_DOWN:
            _logger.debug("Discarding %s result for %s: engine shut down", what, self._table)
            return True
        return False

    def _report(self, error: SchoolsError, cause: BaseException | None = None) -> None:
        if cause is not None:
            error.__cause__ = cause
        _logger.error("%s", error)
        self._last_error.set(error)

    # ------------------------------------------------------------------
    # Full refresh
    # ------------------------------------------------------------------

    async def refresh(self) -> None:
        """Replace the collection with a fresh ``select`` ordered by id.

        On failure the collection is emptied rather than left stale.
        """
        if self._discard_after_shutdown("refresh"):
            return
        if self._state is EngineState.UNINITIALIZED:
            self._state = EngineState.LOADING
        self._refreshes_in_flight += 1
        self._loading.set(True)
        try:
            rows = await self._store.select(self._table, order_by="id", ascending=True)
            records = normalize_records(self._model.model_validate(row) for row in rows)
        except Exception as exc:
            if not self._discard_after_shutdown("refresh"):
                self._items.set(())
                self._report(FetchError(_error_message(exc), operation="refresh"), exc)
        else:
            if not self._discard_after_shutdown("refresh"):
                self._items.set(records)
                _logger.debug("Loaded %d records from %s", len(records), self._table)
        finally:
            self._refreshes_in_flight -= 1
            if self._state is not EngineState.SHUT_DOWN:
                if self._refreshes_in_flight == 0:
                    self._loading.set(False)
                if self._state is EngineState.LOADING:
                    self._state = EngineState.LIVE

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------

    async def open_change_feed(self) -> None:
        """Subscribe to all change events of the table. No-op if already open."""
        if self._discard_after_shutdown("subscribe"):
            return
        if self._subscription is not None or self._subscribing:
            return
        self._subscribing = True
        try:
            handle = await self._store.subscribe_changes(
                self._table,
                self._handle_change_payload,
                event="*",
                on_status=self._on_feed_status,
            )
        except Exception as exc:
            if not self._discard_after_shutdown("subscribe"):
                self._report(SubscriptionError(_error_message(exc), operation="subscribe"), exc)
            return
        finally:
            self._subscribing = False

        if self._state is EngineState.SHUT_DOWN:
            await self._release_subscription(handle)
            return
        self._subscription = handle
        _logger.info("Change feed open for %s", self._table)

    def _on_feed_status(self, status: str, error: Exception | None) -> None:
        if status not in (STATUS_CLOSED, STATUS_CHANNEL_ERROR, STATUS_TIMED_OUT):
            _logger.info("Change feed status for %s: %s", self._table, status)
            return
        if self._subscription is None:
            # Join failures surface through open_change_feed().
            _logger.debug("Change feed status for %s: %s (%s)", self._table, status, error)
            return
        # The channel is gone; open_change_feed() may be called again.
        self._subscription = None
        if error is None:
            _logger.warning("Change feed for %s closed by the server", self._table)
            return
        self._report(SubscriptionError(f"{status}: {_error_message(error)}", operation="subscribe"), error)

    def _handle_change_payload(self, payload: dict[str, Any]) -> None:
        try:
            event = parse_change_payload(payload, model=self._model)
        except ValueError as exc:
            _logger.warning("Dropping invalid change payload for %s: %s", self._table, exc)
            return
        self.on_change_event(event)

    def on_change_event(self, event: RecordCreated | RecordUpdated | RecordDeleted) -> None:
        """Merge one change-feed event. Idempotent under redelivery."""
        if self._discard_after_shutdown(f"{event.kind.value} event"):
            return
        _logger.debug("Applying %s for id=%s on %s", event.kind.value, event.record_id, self._table)
        self._items.update(lambda records: apply_change(records, event))

    # ------------------------------------------------------------------
    # Local mutations
    # ------------------------------------------------------------------

    async def create_record(self, fields: Mapping[str, Any] | None = None) -> tuple[School, ...]:
        """Insert a record and merge the echoed row(s).

        ``fields`` defaults to ``{"name": pending_name}``. A missing or empty
        name is rejected without contacting the backend. Returns the created records.
        """
        payload = dict(fields) if fields is not None else {"name": self.pending_name.get()}
        name = payload.get("name")
        if not isinstance(name, str) or not name:
            _logger.debug("create_record rejected: name is empty")
            return ()

        try:
            rows = await self._store.insert(self._table, payload)
            created = tuple(self._model.model_validate(row) for row in rows)
        except Exception as exc:
            if not self._discard_after_shutdown("insert"):
                self._report(MutationError(_error_message(exc), operation="insert"), exc)
            return ()

        if self._discard_after_shutdown("insert"):
            return created
        if not created:
            _logger.warning("Insert into %s echoed no rows; waiting for the change feed", self._table)
        else:

            def merge(records: tuple[School, ...]) -> tuple[School, ...]:
                for record in created:
                    records = upsert_record(records, record)
                return records

            self._items.update(merge)
        self.pending_name.set("")
        return created

    async def update_record(self, record_id: int, patch: Mapping[str, Any]) -> School | None:
        """Patch one record and replace it in place with the echoed row.

        When the backend echoes nothing the row is re-fetched by id.
        """
        try:
            rows = await self._store.update(self._table, dict(patch), match={"id": record_id})
            if not rows:
                _logger.warning("Update of %s id=%s echoed no rows; re-fetching", self._table, record_id)
                rows = await self._store.select(self._table, match={"id": record_id})
            updated = self._model.model_validate(rows[0]) if rows else None
        except Exception as exc:
            if not self._discard_after_shutdown("update"):
                self._report(MutationError(_error_message(exc), operation="update"), exc)
            return None

        if updated is None:
            _logger.warning("Record %s id=%s not found after update", self._table, record_id)
            return None
        if self._discard_after_shutdown("update"):
            return updated
        self._items.update(lambda records: replace_record(records, updated))
        return updated

    async def delete_record(self, record_id: int) -> bool:
        """Delete one record; returns whether the backend accepted it."""
        try:
            await self._store.delete(self._table, match={"id": record_id})
        except Exception as exc:
            if not self._discard_after_shutdown("delete"):
                self._report(MutationError(_error_message(exc), operation="delete"), exc)
            return False

        if not self._discard_after_shutdown("delete"):
            self._items.update(lambda records: remove_record(records, record_id))
        return True
