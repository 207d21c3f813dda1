from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
from sqlmodel import select

from todosync_backend.config import settings
from todosync_backend.db import init_db, reset_engine_cache, session_scope
from todosync_backend.domain.errors import ClientGroupAccessError, ProtocolViolationError
from todosync_backend.models import Client, ClientGroup, TodoItem, TodoList
from todosync_backend.poke import LocalPokeBackend, PokeBackend
from todosync_backend.schemas import PushRequest
from todosync_backend.services import push_service
from todosync_backend.services.push_service import MutationStatus


class _RecordingPokeBackend(PokeBackend):
    def __init__(self) -> None:
        self.channels: list[str] = []

    async def poke(self, channel: str) -> None:
        self.channels.append(channel)


async def _use_sqlite(tmp_path: Path, name: str) -> None:
    settings.database_url = f"sqlite:///{tmp_path / name}"
    reset_engine_cache()
    await init_db()


def _m(mutation_id: int, name: str, args: Any, client_id: str = "c1") -> dict[str, Any]:
    return {"id": mutation_id, "clientID": client_id, "name": name, "args": args}


def _req(*mutations: dict[str, Any], group: str = "g1") -> PushRequest:
    return PushRequest.model_validate({"clientGroupID": group, "mutations": list(mutations)})


async def _push(user: str, req: PushRequest, poke: PokeBackend | None = None):
    return await push_service.push(
        user_id=user, req=req, poke_backend=poke or _RecordingPokeBackend()
    )


async def _client(client_id: str) -> Client | None:
    async with session_scope() as session:
        return (await session.exec(select(Client).where(Client.id == client_id))).first()


@pytest.mark.anyio
async def test_push_applies_batch_and_records_last_mutation_id(tmp_path: Path) -> None:
    await _use_sqlite(tmp_path, "push_batch.db")

    result = await _push(
        "alice",
        _req(
            _m(1, "createList", {"id": "l1", "ownerID": "alice", "name": "groceries"}),
            _m(2, "createTodo", {"id": "t1", "listID": "l1", "text": "milk"}),
            _m(3, "createTodo", {"id": "t2", "listID": "l1", "text": "eggs"}),
        ),
    )

    assert [o.status for o in result.outcomes] == [MutationStatus.APPLIED] * 3
    client = await _client("c1")
    assert client is not None
    assert client.client_group_id == "g1"
    assert client.last_mutation_id == 3
    assert client.client_version == 3

    async with session_scope() as session:
        group = (await session.exec(select(ClientGroup).where(ClientGroup.id == "g1"))).one()
        assert group.user_id == "alice"
        assert group.client_version == 3
        items = (await session.exec(select(TodoItem).order_by(TodoItem.sort_order))).all()
        assert [(i.id, i.sort_order) for i in items] == [("t1", 1), ("t2", 2)]


@pytest.mark.anyio
async def test_push_replay_is_idempotent(tmp_path: Path) -> None:
    await _use_sqlite(tmp_path, "push_replay.db")
    req = _req(_m(1, "createTodo", {"id": "t1", "listID": "l1", "text": "x"}))

    await _push("alice", _req(_m(1, "createList", {"id": "l1", "ownerID": "alice", "name": "a"})))
    # Same id from another client starts its own sequence.
    first = await _push(
        "alice",
        _req(_m(1, "createTodo", {"id": "t1", "listID": "l1", "text": "x"}, client_id="c2")),
    )
    assert first.outcomes[0].status == MutationStatus.APPLIED

    replay = await _push("alice", req)
    assert replay.outcomes[0].status == MutationStatus.SKIPPED

    client = await _client("c1")
    assert client is not None
    assert client.last_mutation_id == 1

    async with session_scope() as session:
        assert len((await session.exec(select(TodoItem))).all()) == 1


@pytest.mark.anyio
async def test_push_future_mutation_aborts_without_state_change(tmp_path: Path) -> None:
    await _use_sqlite(tmp_path, "push_future.db")

    with pytest.raises(ProtocolViolationError):
        await _push(
            "alice", _req(_m(2, "createList", {"id": "l1", "ownerID": "alice", "name": "a"}))
        )

    assert await _client("c1") is None
    async with session_scope() as session:
        assert (await session.exec(select(TodoList))).all() == []


@pytest.mark.anyio
async def test_push_violation_keeps_earlier_mutations_of_the_batch(tmp_path: Path) -> None:
    await _use_sqlite(tmp_path, "push_partial.db")

    with pytest.raises(ProtocolViolationError):
        await _push(
            "alice",
            _req(
                _m(1, "createList", {"id": "l1", "ownerID": "alice", "name": "a"}),
                _m(3, "createList", {"id": "l2", "ownerID": "alice", "name": "b"}),
            ),
        )

    client = await _client("c1")
    assert client is not None
    assert client.last_mutation_id == 1
    async with session_scope() as session:
        assert [r.id for r in (await session.exec(select(TodoList))).all()] == ["l1"]


@pytest.mark.anyio
async def test_push_violation_still_pokes_committed_mutations(tmp_path: Path) -> None:
    await _use_sqlite(tmp_path, "push_partial_poke.db")
    poke = _RecordingPokeBackend()

    with pytest.raises(ProtocolViolationError):
        await _push(
            "alice",
            _req(
                _m(1, "createList", {"id": "l1", "ownerID": "alice", "name": "a"}),
                _m(2, "createTodo", {"id": "t1", "listID": "l1", "text": "x"}),
                _m(4, "createTodo", {"id": "t2", "listID": "l1", "text": "y"}),
            ),
            poke,
        )

    assert poke.channels == ["list/l1", "user/alice"]


@pytest.mark.anyio
async def test_push_failed_mutation_still_consumes_its_id(tmp_path: Path) -> None:
    await _use_sqlite(tmp_path, "push_failed.db")

    result = await _push(
        "alice",
        _req(
            _m(1, "deleteTodo", "missing"),
            _m(2, "createList", {"id": "l1", "ownerID": "bob", "name": "not mine"}),
            _m(3, "noSuchMutation", {}),
            _m(4, "createList", {"id": "l1", "ownerID": "alice", "name": "mine"}),
        ),
    )

    statuses = [o.status for o in result.outcomes]
    assert statuses == [
        MutationStatus.FAILED,
        MutationStatus.FAILED,
        MutationStatus.FAILED,
        MutationStatus.APPLIED,
    ]
    assert "doesn't exist" in (result.outcomes[0].error or "")

    client = await _client("c1")
    assert client is not None
    assert client.last_mutation_id == 4
    assert client.client_version == 4

    async with session_scope() as session:
        lists = (await session.exec(select(TodoList))).all()
        assert [(r.id, r.owner_id, r.name) for r in lists] == [("l1", "alice", "mine")]


@pytest.mark.anyio
async def test_push_pokes_each_affected_channel_once(tmp_path: Path) -> None:
    await _use_sqlite(tmp_path, "push_poke.db")
    poke = LocalPokeBackend(queue_size=8)

    async with poke.subscribe("user/alice", "list/l1", "user/bob") as queue:
        await _push(
            "alice",
            _req(
                _m(1, "createList", {"id": "l1", "ownerID": "alice", "name": "a"}),
                _m(2, "createTodo", {"id": "t1", "listID": "l1", "text": "x"}),
                _m(3, "createTodo", {"id": "t2", "listID": "l1", "text": "y"}),
                _m(4, "updateTodo", {"id": "t1", "completed": True}),
            ),
            poke,
        )

        received = []
        while not queue.empty():
            received.append(queue.get_nowait())

    assert received == ["list/l1", "user/alice"]
    assert poke.listener_count("list/l1") == 0


@pytest.mark.anyio
async def test_push_skipped_and_failed_mutations_poke_nothing(tmp_path: Path) -> None:
    await _use_sqlite(tmp_path, "push_no_poke.db")
    poke = _RecordingPokeBackend()

    await _push("alice", _req(_m(1, "deleteTodo", "missing")), poke)
    await _push("alice", _req(_m(1, "deleteTodo", "missing")), poke)

    assert poke.channels == []


@pytest.mark.anyio
async def test_push_share_pokes_shared_user(tmp_path: Path) -> None:
    await _use_sqlite(tmp_path, "push_share_poke.db")
    poke = _RecordingPokeBackend()

    await _push(
        "alice",
        _req(
            _m(1, "createList", {"id": "l1", "ownerID": "alice", "name": "a"}),
            _m(2, "createShare", {"id": "s1", "listID": "l1", "userID": "bob"}),
        ),
        poke,
    )

    assert poke.channels == ["list/l1", "user/alice", "user/bob"]


@pytest.mark.anyio
async def test_push_refuses_client_group_of_another_user(tmp_path: Path) -> None:
    await _use_sqlite(tmp_path, "push_group_owner.db")
    await _push("alice", _req(_m(1, "createList", {"id": "l1", "ownerID": "alice", "name": "a"})))

    with pytest.raises(ClientGroupAccessError):
        await _push(
            "bob",
            _req(_m(1, "createList", {"id": "l2", "ownerID": "bob", "name": "b"}), group="g1"),
        )


@pytest.mark.anyio
async def test_push_refuses_client_registered_to_another_group(tmp_path: Path) -> None:
    await _use_sqlite(tmp_path, "push_client_group.db")
    await _push("alice", _req(_m(1, "createList", {"id": "l1", "ownerID": "alice", "name": "a"})))

    with pytest.raises(ClientGroupAccessError):
        await _push(
            "alice",
            _req(_m(2, "createList", {"id": "l2", "ownerID": "alice", "name": "b"}), group="g2"),
        )

    client = await _client("c1")
    assert client is not None
    assert client.last_mutation_id == 1
