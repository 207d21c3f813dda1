"""Domain operations over lists, todos and shares.

Every operation runs inside the caller's transaction, validates and
authorizes first, and only then writes. A ``MutationError`` raised here
therefore leaves the session without pending changes.

Each operation returns the ``Affected`` scope used for poke fan-out.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlmodel.ext.asyncio.session import AsyncSession

from todosync_backend.domain.errors import (
    AuthorizationError,
    EntityConflictError,
    EntityNotFoundError,
    MutationArgsError,
)
from todosync_backend.domain.mutations import (
    ListArgs,
    ListUpdateArgs,
    ShareArgs,
    TodoCreateArgs,
    TodoUpdateArgs,
)
from todosync_backend.models import Share, TodoItem, TodoList
from todosync_backend.repositories import entities_repo


@dataclass
class Affected:
    list_ids: set[str] = field(default_factory=set)
    user_ids: set[str] = field(default_factory=set)

    def merge(self, other: Affected) -> None:
        self.list_ids |= other.list_ids
        self.user_ids |= other.user_ids

    def channels(self) -> list[str]:
        return [f"list/{i}" for i in sorted(self.list_ids)] + [
            f"user/{i}" for i in sorted(self.user_ids)
        ]


async def require_access(session: AsyncSession, *, list_id: str, user_id: str) -> None:
    if not await entities_repo.has_access(session, list_id=list_id, user_id=user_id):
        raise AuthorizationError(f"user {user_id} cannot access list {list_id}")


async def _require_list_access(session: AsyncSession, *, list_id: str, user_id: str) -> TodoList:
    row = await entities_repo.get_list(session, list_id)
    if row is None:
        raise EntityNotFoundError(f"list {list_id} doesn't exist")
    await require_access(session, list_id=list_id, user_id=user_id)
    return row


# --- lists ---


async def create_list(session: AsyncSession, user_id: str, args: ListArgs) -> Affected:
    if user_id != args.owner_id:
        raise AuthorizationError("cannot create list for other user")
    if await entities_repo.get_list(session, args.id) is not None:
        raise EntityConflictError(f"list {args.id} already exists")

    session.add(TodoList(id=args.id, owner_id=args.owner_id, name=args.name))
    return Affected(user_ids={args.owner_id})


async def update_list(session: AsyncSession, user_id: str, args: ListUpdateArgs) -> Affected:
    row = await _require_list_access(session, list_id=args.id, user_id=user_id)
    accessors = await entities_repo.get_accessors(session, args.id)

    if args.name is not None:
        row.name = args.name
    row.touch()
    session.add(row)
    return Affected(user_ids=set(accessors))


async def delete_list(session: AsyncSession, user_id: str, list_id: str) -> Affected:
    row = await _require_list_access(session, list_id=list_id, user_id=user_id)
    accessors = await entities_repo.get_accessors(session, list_id)

    await entities_repo.delete_list_children(session, list_id)
    await session.delete(row)
    return Affected(user_ids=set(accessors))


# --- todos ---


async def create_todo(session: AsyncSession, user_id: str, args: TodoCreateArgs) -> Affected:
    await require_access(session, list_id=args.list_id, user_id=user_id)
    if await entities_repo.get_todo(session, args.id) is not None:
        raise EntityConflictError(f"todo {args.id} already exists")

    sort_order = await entities_repo.max_sort_order(session, args.list_id) + 1
    session.add(
        TodoItem(
            id=args.id,
            list_id=args.list_id,
            text=args.text,
            completed=args.completed,
            sort_order=sort_order,
        )
    )
    return Affected(list_ids={args.list_id})


async def update_todo(session: AsyncSession, user_id: str, args: TodoUpdateArgs) -> Affected:
    row = await entities_repo.get_todo(session, args.id)
    if row is None:
        raise EntityNotFoundError(f"todo {args.id} doesn't exist")
    if args.list_id is not None and args.list_id != row.list_id:
        raise MutationArgsError(f"todo {args.id} cannot move to another list")
    await require_access(session, list_id=row.list_id, user_id=user_id)

    # Sparse patch: fields the client left out keep their stored value.
    if args.text is not None:
        row.text = args.text
    if args.completed is not None:
        row.completed = args.completed
    if args.sort_order is not None:
        row.sort_order = args.sort_order
    row.touch()
    session.add(row)
    return Affected(list_ids={row.list_id})


async def delete_todo(session: AsyncSession, user_id: str, todo_id: str) -> Affected:
    row = await entities_repo.get_todo(session, todo_id)
    if row is None:
        raise EntityNotFoundError(f"todo {todo_id} doesn't exist")
    await require_access(session, list_id=row.list_id, user_id=user_id)

    list_id = row.list_id
    await session.delete(row)
    return Affected(list_ids={list_id})


# --- shares ---


async def create_share(session: AsyncSession, user_id: str, args: ShareArgs) -> Affected:
    await require_access(session, list_id=args.list_id, user_id=user_id)
    if await entities_repo.get_share(session, args.id) is not None:
        raise EntityConflictError(f"share {args.id} already exists")

    session.add(Share(id=args.id, list_id=args.list_id, user_id=args.user_id))
    return Affected(list_ids={args.list_id}, user_ids={args.user_id})


async def delete_share(session: AsyncSession, user_id: str, share_id: str) -> Affected:
    row = await entities_repo.get_share(session, share_id)
    if row is None:
        raise EntityNotFoundError(f"share {share_id} doesn't exist")
    await require_access(session, list_id=row.list_id, user_id=user_id)

    affected = Affected(list_ids={row.list_id}, user_ids={row.user_id})
    await session.delete(row)
    return affected
