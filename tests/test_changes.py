from __future__ import annotations

from datetime import date

import pytest

from pyschools.models.changes import (
    ChangeKind,
    RecordCreated,
    RecordDeleted,
    RecordUpdated,
    parse_change_payload,
)
from pyschools.models.school import School


def test_parse_wire_shape_insert() -> None:
    payload = {
        "schema": "public",
        "table": "escuela",
        "commit_timestamp": "2026-01-01T00:00:00Z",
        "type": "INSERT",
        "record": {"id": 1, "name": "Lincoln"},
        "old_record": None,
        "errors": None,
    }

    event = parse_change_payload(payload)

    assert isinstance(event, RecordCreated)
    assert event.kind is ChangeKind.CREATED
    assert event.record == School(id=1, name="Lincoln")
    assert event.record_id == 1
    assert event.commit_timestamp == "2026-01-01T00:00:00Z"


def test_parse_client_shape_update() -> None:
    payload = {"eventType": "UPDATE", "new": {"id": 4, "name": "Renamed"}, "old": {"id": 4}}

    event = parse_change_payload(payload)

    assert isinstance(event, RecordUpdated)
    assert event.record.name == "Renamed"


def test_parse_delete_uses_old_key_only() -> None:
    event = parse_change_payload({"type": "DELETE", "record": {}, "old_record": {"id": 9}})

    assert isinstance(event, RecordDeleted)
    assert event.record_id == 9


def test_parse_keeps_extension_and_unknown_columns() -> None:
    payload = {
        "type": "INSERT",
        "record": {
            "id": 2,
            "name": "Central",
            "locality": "Rosario",
            "founded_on": "1905-03-01",
            "principal": "M. Ruiz",
        },
    }

    event = parse_change_payload(payload)

    assert isinstance(event, RecordCreated)
    assert event.record.locality == "Rosario"
    assert event.record.founded_on == date(1905, 3, 1)
    assert event.record.model_dump()["principal"] == "M. Ruiz"


def test_lowercase_kind_accepted() -> None:
    assert isinstance(parse_change_payload({"eventType": "delete", "old": {"id": 1}}), RecordDeleted)


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "TRUNCATE"},
        {"type": "INSERT"},
        {"type": "INSERT", "record": {"name": "no id"}},
        {"type": "UPDATE", "record": {"id": "not-a-number", "name": "x"}},
        {"type": "DELETE", "old_record": {}},
        {},
    ],
)
def test_invalid_payloads_raise_value_error(payload: dict[str, object]) -> None:
    with pytest.raises(ValueError):
        parse_change_payload(payload)


def test_school_model_is_frozen() -> None:
    school = School(id=1, name="A")
    with pytest.raises(ValueError):
        school.name = "B"  # type: ignore[misc]
