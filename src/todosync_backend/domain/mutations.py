"""Closed set of mutation kinds accepted by push.

Each kind pairs its wire ``name`` with a typed argument payload. Adding a
kind means adding a model here and a handler in the push service.
"""

from __future__ import annotations

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from todosync_backend.domain.errors import MutationArgsError


EntityID = Annotated[str, Field(min_length=1, max_length=36)]


class _Args(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ListArgs(_Args):
    id: EntityID
    owner_id: EntityID = Field(alias="ownerID")
    name: str = Field(max_length=500)


class ListUpdateArgs(_Args):
    id: EntityID
    name: str | None = Field(default=None, max_length=500)


class TodoCreateArgs(_Args):
    # Any client-sent sort is ignored: new todos always land last in their list.
    id: EntityID
    list_id: EntityID = Field(alias="listID")
    text: str = Field(max_length=10000)
    completed: bool = False


class TodoUpdateArgs(_Args):
    id: EntityID
    list_id: EntityID | None = Field(default=None, alias="listID")
    text: str | None = Field(default=None, max_length=10000)
    completed: bool | None = None
    sort_order: int | None = Field(default=None, alias="sort")


class ShareArgs(_Args):
    id: EntityID
    list_id: EntityID = Field(alias="listID")
    user_id: EntityID = Field(alias="userID")


class CreateList(BaseModel):
    name: Literal["createList"]
    args: ListArgs


class UpdateList(BaseModel):
    name: Literal["updateList"]
    args: ListUpdateArgs


class DeleteList(BaseModel):
    name: Literal["deleteList"]
    args: EntityID


class CreateTodo(BaseModel):
    name: Literal["createTodo"]
    args: TodoCreateArgs


class UpdateTodo(BaseModel):
    name: Literal["updateTodo"]
    args: TodoUpdateArgs


class DeleteTodo(BaseModel):
    name: Literal["deleteTodo"]
    args: EntityID


class CreateShare(BaseModel):
    name: Literal["createShare"]
    args: ShareArgs


class DeleteShare(BaseModel):
    name: Literal["deleteShare"]
    args: EntityID


MutationCommand = Annotated[
    Union[
        CreateList,
        UpdateList,
        DeleteList,
        CreateTodo,
        UpdateTodo,
        DeleteTodo,
        CreateShare,
        DeleteShare,
    ],
    Field(discriminator="name"),
]

_command_adapter: TypeAdapter[MutationCommand] = TypeAdapter(MutationCommand)


def parse_mutation(name: str, args: Any) -> MutationCommand:
    """Validate a raw ``(name, args)`` pair into a typed command.

    Raises ``MutationArgsError`` for unknown names or malformed args; both
    fail only the mutation, never the batch.
    """
    try:
        return _command_adapter.validate_python({"name": name, "args": args})
    except ValidationError as exc:
        errors = exc.errors(include_url=False)
        first = errors[0]["msg"] if errors else "invalid mutation"
        raise MutationArgsError(f"invalid mutation {name}: {first}") from exc
