"""Typed change-feed events.

The realtime socket delivers loosely shaped dicts. They are validated here,
at the boundary, into a tagged union before anything is merged into the
collection:

* :class:`RecordCreated` and :class:`RecordUpdated` carry the full new row.
* :class:`RecordDeleted` only carries the key of the removed row, since the
  old row usually holds nothing but the primary key.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from pyschools.models.school import School


class ChangeKind(StrEnum):
    CREATED = "INSERT"
    UPDATED = "UPDATE"
    DELETED = "DELETE"


class _ChangeBase(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    commit_timestamp: str | None = None


class RecordCreated(_ChangeBase):
    kind: Literal[ChangeKind.CREATED] = ChangeKind.CREATED
    record: School

    @property
    def record_id(self) -> int:
        return self.record.id


class RecordUpdated(_ChangeBase):
    kind: Literal[ChangeKind.UPDATED] = ChangeKind.UPDATED
    record: School

    @property
    def record_id(self) -> int:
        return self.record.id


class RecordDeleted(_ChangeBase):
    kind: Literal[ChangeKind.DELETED] = ChangeKind.DELETED
    record_id: int


ChangeEvent = Annotated[RecordCreated | RecordUpdated | RecordDeleted, Field(discriminator="kind")]

_CHANGE_ADAPTER: TypeAdapter[RecordCreated | RecordUpdated | RecordDeleted] = TypeAdapter(ChangeEvent)


def _first_mapping(payload: Mapping[str, Any], *keys: str) -> Mapping[str, Any] | None:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, Mapping) and value:
            return value
    return None


def parse_change_payload(
    payload: Mapping[str, Any],
    *,
    model: type[School] = School,
) -> RecordCreated | RecordUpdated | RecordDeleted:
    """Validate a raw change notification into a typed event.

    Accepts both the realtime wire shape (``type``/``record``/``old_record``)
    and the client-library shape (``eventType``/``new``/``old``).

    Raises
    ------
    ValueError
        Unknown kind, missing row, or a row without a valid ``id``
        (:class:`pydantic.ValidationError` is a ``ValueError``).
    """
    if not isinstance(payload, Mapping):
        raise ValueError(f"change payload must be an object, got {type(payload).__name__}")

    raw_kind = payload.get("type") or payload.get("eventType")
    try:
        kind = ChangeKind(str(raw_kind).upper())
    except ValueError:
        raise ValueError(f"unknown change kind: {raw_kind!r}") from None

    commit_ts = payload.get("commit_timestamp")
    data: dict[str, Any] = {"kind": kind, "commit_timestamp": commit_ts if isinstance(commit_ts, str) else None}

    if kind is ChangeKind.DELETED:
        old = _first_mapping(payload, "old_record", "old")
        if old is None:
            raise ValueError("DELETE change without old row")
        data["record_id"] = old.get("id")
        return _CHANGE_ADAPTER.validate_python(data)

    new = _first_mapping(payload, "record", "new")
    if new is None:
        raise ValueError(f"{kind.value} change without new row")
    data["record"] = model.model_validate(dict(new))
    return _CHANGE_ADAPTER.validate_python(data)
