"""Deterministic merge rules for the record collection.

A collection is an immutable tuple of records, sorted ascending by ``id``
and free of duplicate ids. Every function here takes a collection and
returns a collection that keeps both invariants. When nothing changes the
input tuple itself is returned, so callers can detect no-ops by identity.
"""

from __future__ import annotations

from bisect import bisect_left
from collections.abc import Iterable
from typing import TypeVar

from pyschools.models.changes import RecordCreated, RecordDeleted, RecordUpdated
from pyschools.models.school import School

R = TypeVar("R", bound=School)


def _index_of(records: tuple[R, ...], record_id: int) -> int | None:
    ids = [record.id for record in records]
    pos = bisect_left(ids, record_id)
    if pos < len(records) and records[pos].id == record_id:
        return pos
    return None


def normalize_records(rows: Iterable[R]) -> tuple[R, ...]:
    """Sort by id, keeping the last occurrence of a duplicated id."""
    by_id: dict[int, R] = {}
    for row in rows:
        by_id[row.id] = row
    return tuple(by_id[key] for key in sorted(by_id))


def find_record(records: tuple[R, ...], record_id: int) -> R | None:
    pos = _index_of(records, record_id)
    return records[pos] if pos is not None else None


def insert_record(records: tuple[R, ...], record: R) -> tuple[R, ...]:
    """Insert *record* at its sorted position unless its id is already present."""
    if _index_of(records, record.id) is not None:
        return records
    pos = bisect_left([r.id for r in records], record.id)
    return records[:pos] + (record,) + records[pos:]


def replace_record(records: tuple[R, ...], record: R) -> tuple[R, ...]:
    """Replace the record with the same id in place; no-op when absent."""
    pos = _index_of(records, record.id)
    if pos is None or records[pos] == record:
        return records
    return records[:pos] + (record,) + records[pos + 1 :]


def upsert_record(records: tuple[R, ...], record: R) -> tuple[R, ...]:
    """Replace when present, otherwise insert at the sorted position."""
    if _index_of(records, record.id) is None:
        return insert_record(records, record)
    return replace_record(records, record)


def remove_record(records: tuple[R, ...], record_id: int) -> tuple[R, ...]:
    pos = _index_of(records, record_id)
    if pos is None:
        return records
    return records[:pos] + records[pos + 1 :]


def apply_change(
    records: tuple[R, ...],
    event: RecordCreated | RecordUpdated | RecordDeleted,
) -> tuple[R, ...]:
    """Merge one change-feed event.

    Created rows are only inserted when new (a local create may already
    have added them). Updates for unknown ids are dropped rather than
    materialized. Deletes of unknown ids are ignored.
    """
    if isinstance(event, RecordCreated):
        return insert_record(records, event.record)  # type: ignore[arg-type]
    if isinstance(event, RecordUpdated):
        return replace_record(records, event.record)  # type: ignore[arg-type]
    if isinstance(event, RecordDeleted):
        return remove_record(records, event.record_id)
    raise TypeError(f"unsupported change event: {type(event).__name__}")
