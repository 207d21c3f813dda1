from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlmodel.ext.asyncio.session import AsyncSession

from todosync_backend.config import settings
from todosync_backend.cvr_cache import CVRCache
from todosync_backend.db import transact
from todosync_backend.domain.cvr import (
    COLLECTIONS,
    ClientViewData,
    ClientViewRecord,
    CollectionDiff,
    diff_size,
)
from todosync_backend.domain.errors import ClientGroupAccessError
from todosync_backend.models import Share, TodoItem, TodoList
from todosync_backend.repositories import clients_repo, entities_repo
from todosync_backend.schemas import (
    PatchClear,
    PatchDel,
    PatchOperation,
    PatchPut,
    PullRequest,
    PullResponse,
)

logger = logging.getLogger(__name__)


def serialize_list(row: TodoList) -> dict[str, object]:
    return {"id": row.id, "ownerID": row.owner_id, "name": row.name}


def serialize_share(row: Share) -> dict[str, object]:
    return {"id": row.id, "listID": row.list_id, "userID": row.user_id}


def serialize_todo(row: TodoItem) -> dict[str, object]:
    return {
        "id": row.id,
        "listID": row.list_id,
        "text": row.text,
        "completed": row.completed,
        "sort": row.sort_order,
    }


def _cookie_version(cookie: Any) -> int | None:
    # bool is an int subclass; a JSON true/false is not a cookie we issued.
    if isinstance(cookie, bool) or not isinstance(cookie, int):
        return None
    return cookie


@dataclass(frozen=True)
class _Snapshot:
    cvr_version: int
    next_cvr: ClientViewRecord
    reset: bool
    dels: dict[str, list[str]]
    puts: dict[str, list[dict[str, object]]]
    last_mutation_id_changes: dict[str, int]


async def _compute(
    session: AsyncSession,
    *,
    user_id: str,
    client_group_id: str,
    prev_cvr: ClientViewRecord | None,
) -> _Snapshot:
    base_cvr = prev_cvr or ClientViewRecord.empty()

    # Locking read: client_version must be observed atomically with the entity scan.
    group = await clients_repo.get_client_group(session, client_group_id, for_update=True)
    if group.user_id is not None and group.user_id != user_id:
        raise ClientGroupAccessError(f"client group {client_group_id} belongs to another user")

    client_changes = await clients_repo.search_clients(
        session,
        client_group_id=client_group_id,
        since_client_version=base_cvr.client_version,
    )
    list_meta = await entities_repo.search_lists(session, accessible_by_user_id=user_id)
    list_ids = [m.id for m in list_meta]
    todo_meta = await entities_repo.search_todos(session, list_ids=list_ids)
    share_meta = await entities_repo.search_shares(session, list_ids=list_ids)

    next_views = {
        "list": ClientViewData.from_search_result(list_meta),
        "share": ClientViewData.from_search_result(share_meta),
        "todo": ClientViewData.from_search_result(todo_meta),
    }
    candidate = ClientViewRecord(client_version=group.client_version, **next_views)
    diff = candidate.diff(base_cvr)

    reset = prev_cvr is None
    if not reset and diff_size(diff) > settings.pull_reset_threshold:
        logger.info(
            "diff too large, sending reset client_group_id=%s changed=%d threshold=%d",
            client_group_id,
            diff_size(diff),
            settings.pull_reset_threshold,
        )
        reset = True
    if reset:
        diff = {name: CollectionDiff(puts=next_views[name].ids()) for name in COLLECTIONS}

    lists = await entities_repo.get_lists(session, diff["list"].puts)
    shares = await entities_repo.get_shares(session, diff["share"].puts)
    todos = await entities_repo.get_todos(session, diff["todo"].puts)

    # A put whose row vanished before the fetch was never sent: record what the
    # client actually holds (prev version, or nothing after a reset) so the next
    # pull still emits the del or the fresh put.
    held = ClientViewRecord.empty() if reset else base_cvr
    fetched = {
        "list": {r.id for r in lists},
        "share": {r.id for r in shares},
        "todo": {r.id for r in todos},
    }
    for name in COLLECTIONS:
        missing = [i for i in diff[name].puts if i not in fetched[name]]
        if missing:
            logger.info(
                "rows vanished during pull client_group_id=%s collection=%s ids=%s",
                client_group_id,
                name,
                missing,
            )
            next_views[name] = next_views[name].reverted(missing, held.collection(name))
    next_cvr = ClientViewRecord(client_version=group.client_version, **next_views)

    group.cvr_version += 1
    group.user_id = user_id
    clients_repo.put_client_group(session, group)

    return _Snapshot(
        cvr_version=group.cvr_version,
        next_cvr=next_cvr,
        reset=reset,
        dels={name: ([] if reset else diff[name].dels) for name in COLLECTIONS},
        puts={
            "list": [serialize_list(r) for r in lists],
            "share": [serialize_share(r) for r in shares],
            "todo": [serialize_todo(r) for r in todos],
        },
        last_mutation_id_changes={c.id: c.last_mutation_id for c in client_changes},
    )


def build_patch(
    *, reset: bool, dels: dict[str, list[str]], puts: dict[str, list[dict[str, object]]]
) -> list[PatchOperation]:
    patch: list[PatchOperation] = []
    if reset:
        patch.append(PatchClear())
    for name in COLLECTIONS:
        for entity_id in dels.get(name, []):
            patch.append(PatchDel(key=f"{name}/{entity_id}"))
        for value in puts.get(name, []):
            patch.append(PatchPut(key=f"{name}/{value['id']}", value=value))
    return patch


async def pull(*, user_id: str, req: PullRequest, cvr_cache: CVRCache) -> PullResponse:
    """Compute the patch that brings a client from its cookie to current state.

    An absent or unknown cookie yields a full reset (``clear`` + puts). The
    cache is only an optimization; correctness never depends on a hit.
    """
    client_group_id = req.client_group_id
    cookie = _cookie_version(req.cookie)
    prev_cvr = cvr_cache.get(client_group_id, cookie) if cookie is not None else None
    if req.cookie is not None and prev_cvr is None:
        logger.debug(
            "no cached CVR client_group_id=%s cookie=%r; full reset", client_group_id, req.cookie
        )

    async def _run(session: AsyncSession) -> _Snapshot:
        return await _compute(
            session, user_id=user_id, client_group_id=client_group_id, prev_cvr=prev_cvr
        )

    snapshot = await transact(_run)

    patch = build_patch(reset=snapshot.reset, dels=snapshot.dels, puts=snapshot.puts)
    cvr_cache.put(client_group_id, snapshot.cvr_version, snapshot.next_cvr)

    logger.debug(
        "pull client_group_id=%s cookie=%s reset=%s patch_ops=%d",
        client_group_id,
        snapshot.cvr_version,
        snapshot.reset,
        len(patch),
    )
    return PullResponse(
        cookie=snapshot.cvr_version,
        last_mutation_id_changes=snapshot.last_mutation_id_changes,
        patch=patch,
    )
