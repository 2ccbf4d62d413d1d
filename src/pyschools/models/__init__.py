"""Data models for school records and change-feed events."""

from pyschools.models.changes import (
    ChangeEvent,
    ChangeKind,
    RecordCreated,
    RecordDeleted,
    RecordUpdated,
    parse_change_payload,
)
from pyschools.models.school import School

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "RecordCreated",
    "RecordDeleted",
    "RecordUpdated",
    "School",
    "parse_change_payload",
]
