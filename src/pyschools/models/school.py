"""School record model."""

from __future__ import annotations

from datetime import date

from pydantic import BaseModel, ConfigDict, Field


class School(BaseModel):
    """One row of the schools table.

    Only ``id`` carries meaning for the reconciliation engine; every other
    column is opaque payload. Columns not declared here are kept as extra
    fields so a row survives a round-trip through the collection unchanged.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="allow",
        populate_by_name=True,
    )

    id: int = Field(..., description="Primary key")
    name: str = ""
    address: str | None = None
    locality: str | None = None
    phone: str | None = None
    email: str | None = None
    founded_on: date | None = None
