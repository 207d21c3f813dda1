from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy import func, or_
from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..domain.cvr import RowVersion
from ..models import Share, TodoItem, TodoList


def _shared_list_ids(user_id: str):
    return select(Share.list_id).where(Share.user_id == user_id)


async def get_list(session: AsyncSession, list_id: str) -> TodoList | None:
    return (await session.exec(select(TodoList).where(TodoList.id == list_id))).first()


async def get_todo(session: AsyncSession, todo_id: str) -> TodoItem | None:
    return (await session.exec(select(TodoItem).where(TodoItem.id == todo_id))).first()


async def get_share(session: AsyncSession, share_id: str) -> Share | None:
    return (await session.exec(select(Share).where(Share.id == share_id))).first()


async def has_access(session: AsyncSession, *, list_id: str, user_id: str) -> bool:
    stmt = (
        select(TodoList.id)
        .where(TodoList.id == list_id)
        .where(
            or_(
                TodoList.owner_id == user_id,
                col(TodoList.id).in_(_shared_list_ids(user_id)),
            )
        )
        .limit(1)
    )
    return (await session.exec(stmt)).first() is not None


async def get_accessors(session: AsyncSession, list_id: str) -> list[str]:
    """Owner plus every user the list is shared with (owner first)."""
    owner = (await session.exec(select(TodoList.owner_id).where(TodoList.id == list_id))).first()
    shared = (
        await session.exec(
            select(Share.user_id).where(Share.list_id == list_id).order_by(col(Share.user_id))
        )
    ).all()
    out: list[str] = [owner] if owner is not None else []
    for user_id in shared:
        if user_id not in out:
            out.append(user_id)
    return out


async def max_sort_order(session: AsyncSession, list_id: str) -> int:
    stmt = select(func.max(TodoItem.sort_order)).where(TodoItem.list_id == list_id)
    value = (await session.exec(stmt)).first()
    return int(value or 0)


async def delete_list_children(session: AsyncSession, list_id: str) -> None:
    await session.exec(sa.delete(TodoItem).where(col(TodoItem.list_id) == list_id))
    await session.exec(sa.delete(Share).where(col(Share.list_id) == list_id))


# --- diff projections: {id, row_version} only, never payloads ---


async def search_lists(session: AsyncSession, *, accessible_by_user_id: str) -> list[RowVersion]:
    stmt = (
        select(TodoList.id, TodoList.row_version)
        .where(
            or_(
                TodoList.owner_id == accessible_by_user_id,
                col(TodoList.id).in_(_shared_list_ids(accessible_by_user_id)),
            )
        )
        .order_by(col(TodoList.id))
    )
    return [RowVersion(id=i, row_version=v) for i, v in (await session.exec(stmt)).all()]


async def search_todos(session: AsyncSession, *, list_ids: Sequence[str]) -> list[RowVersion]:
    if not list_ids:
        return []
    stmt = (
        select(TodoItem.id, TodoItem.row_version)
        .where(col(TodoItem.list_id).in_(list_ids))
        .order_by(col(TodoItem.id))
    )
    return [RowVersion(id=i, row_version=v) for i, v in (await session.exec(stmt)).all()]


async def search_shares(session: AsyncSession, *, list_ids: Sequence[str]) -> list[RowVersion]:
    if not list_ids:
        return []
    stmt = (
        select(Share.id, Share.row_version)
        .where(col(Share.list_id).in_(list_ids))
        .order_by(col(Share.id))
    )
    return [RowVersion(id=i, row_version=v) for i, v in (await session.exec(stmt)).all()]


# --- payload fetch for ids found to differ ---


async def get_lists(session: AsyncSession, ids: Sequence[str]) -> list[TodoList]:
    if not ids:
        return []
    stmt = select(TodoList).where(col(TodoList.id).in_(ids)).order_by(col(TodoList.id))
    return list((await session.exec(stmt)).all())


async def get_todos(session: AsyncSession, ids: Sequence[str]) -> list[TodoItem]:
    if not ids:
        return []
    stmt = select(TodoItem).where(col(TodoItem.id).in_(ids)).order_by(col(TodoItem.id))
    return list((await session.exec(stmt)).all())


async def get_shares(session: AsyncSession, ids: Sequence[str]) -> list[Share]:
    if not ids:
        return []
    stmt = select(Share).where(col(Share.id).in_(ids)).order_by(col(Share.id))
    return list((await session.exec(stmt)).all())
