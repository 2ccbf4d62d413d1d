"""Record store collaborator interface.

The reconciliation engine only depends on this structural protocol.
:class:`pyschools.client.SchoolsClient` is the production implementation;
tests pass an in-memory double.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any, Protocol

ChangeHandler = Callable[[dict[str, Any]], None]
StatusHandler = Callable[[str, Exception | None], None]


class RecordStore(Protocol):
    async def select(
        self,
        table: str,
        *,
        order_by: str | None = None,
        ascending: bool = True,
        match: Mapping[str, Any] | None = None,
    ) -> list[dict[str, Any]]: ...

    async def insert(self, table: str, fields: Mapping[str, Any]) -> list[dict[str, Any]]:
        """Insert one row and return the inserted row(s)."""
        ...

    async def update(
        self,
        table: str,
        patch: Mapping[str, Any],
        *,
        match: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        """Update matching rows and return the updated row(s)."""
        ...

    async def delete(self, table: str, *, match: Mapping[str, Any]) -> None: ...

    async def subscribe_changes(
        self,
        table: str,
        on_change: ChangeHandler,
        *,
        event: str = "*",
        on_status: StatusHandler | None = None,
    ) -> Any:
        """Open a change feed; returns an opaque subscription handle."""
        ...

    async def unsubscribe(self, handle: Any) -> None: ...
