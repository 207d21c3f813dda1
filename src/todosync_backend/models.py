# basedpyright: reportAssignmentType=false
# basedpyright: reportIncompatibleVariableOverride=false

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import Column
from sqlalchemy.types import JSON as SAJSON
from sqlmodel import Field, SQLModel


SCHEMA_VERSION = 1


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SyncMeta(SQLModel, table=True):
    __tablename__ = "sync_meta"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    key: str = Field(primary_key=True, max_length=64)
    value: Any = Field(default=None, sa_column=Column(SAJSON, nullable=True))


class ClientGroup(SQLModel, table=True):
    __tablename__ = "sync_client_groups"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    id: str = Field(primary_key=True, min_length=1, max_length=36)
    # The user that first pulled/pushed through this group; other users are refused.
    user_id: Optional[str] = Field(default=None, index=True, max_length=36)
    # Bumped on every pull; doubles as the cookie handed to the client.
    cvr_version: int = Field(default=0)
    # Bumped on every processed mutation.
    client_version: int = Field(default=0)
    last_modified: datetime = Field(default_factory=utc_now)


class Client(SQLModel, table=True):
    __tablename__ = "sync_clients"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    id: str = Field(primary_key=True, min_length=1, max_length=36)
    client_group_id: str = Field(index=True, min_length=1, max_length=36)
    last_mutation_id: int = Field(default=0)
    client_version: int = Field(default=0, index=True)
    last_modified: datetime = Field(default_factory=utc_now)


class VersionedRow(SQLModel):
    row_version: int = Field(default=1)
    last_modified: datetime = Field(default_factory=utc_now)

    def touch(self) -> None:
        self.row_version += 1
        self.last_modified = utc_now()


class TodoList(VersionedRow, table=True):
    __tablename__ = "lists"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    id: str = Field(primary_key=True, min_length=1, max_length=36)
    owner_id: str = Field(index=True, min_length=1, max_length=36)
    name: str = Field(default="")


class Share(VersionedRow, table=True):
    __tablename__ = "shares"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    id: str = Field(primary_key=True, min_length=1, max_length=36)
    list_id: str = Field(index=True, min_length=1, max_length=36)
    user_id: str = Field(index=True, min_length=1, max_length=36)


class TodoItem(VersionedRow, table=True):
    __tablename__ = "items"  # pyright: ignore[reportAssignmentType,reportIncompatibleVariableOverride]

    id: str = Field(primary_key=True, min_length=1, max_length=36)
    list_id: str = Field(index=True, min_length=1, max_length=36)
    text: str = Field(default="")
    completed: bool = Field(default=False)
    sort_order: int = Field(default=0, index=True)
