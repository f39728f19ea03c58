"""Shared base fields for all models."""

import time

from sqlmodel import Field, SQLModel


def now_millis() -> str:
    """Current time as a string of epoch milliseconds (the stored timestamp format)."""
    return str(int(time.time() * 1000))


class TimestampMixin(SQLModel):
    """Created / updated timestamps injected into every table.

    Stored as strings of epoch millis; rows written by older clients may
    leave them empty, so readers go through ``created`` / ``updated``.
    """

    created_at: str = Field(default_factory=now_millis, nullable=False, max_length=20)
    updated_at: str = Field(default_factory=now_millis, nullable=False, max_length=20)

    @property
    def created(self) -> str:
        return self.created_at or now_millis()

    @property
    def updated(self) -> str:
        return self.updated_at or now_millis()

    def touch(self) -> None:
        self.updated_at = now_millis()
