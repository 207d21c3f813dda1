from __future__ import annotations

import enum
import logging
import time
from dataclasses import dataclass, field

from sqlmodel.ext.asyncio.session import AsyncSession

from todosync_backend.db import transact
from todosync_backend.domain.errors import (
    ClientGroupAccessError,
    MutationError,
    ProtocolViolationError,
)
from todosync_backend.domain.mutations import (
    CreateList,
    CreateShare,
    CreateTodo,
    DeleteList,
    DeleteShare,
    DeleteTodo,
    MutationCommand,
    UpdateList,
    UpdateTodo,
    parse_mutation,
)
from todosync_backend.poke import PokeBackend
from todosync_backend.repositories import clients_repo
from todosync_backend.schemas import PushMutation, PushRequest
from todosync_backend.services import entities_service
from todosync_backend.services.entities_service import Affected

logger = logging.getLogger(__name__)


class MutationStatus(str, enum.Enum):
    APPLIED = "applied"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class MutationOutcome:
    client_id: str
    mutation_id: int
    status: MutationStatus
    error: str | None = None
    affected: Affected = field(default_factory=Affected)


@dataclass
class PushResult:
    outcomes: list[MutationOutcome] = field(default_factory=list)
    affected: Affected = field(default_factory=Affected)


async def _apply(session: AsyncSession, user_id: str, command: MutationCommand) -> Affected:
    if isinstance(command, CreateList):
        return await entities_service.create_list(session, user_id, command.args)
    if isinstance(command, UpdateList):
        return await entities_service.update_list(session, user_id, command.args)
    if isinstance(command, DeleteList):
        return await entities_service.delete_list(session, user_id, command.args)
    if isinstance(command, CreateTodo):
        return await entities_service.create_todo(session, user_id, command.args)
    if isinstance(command, UpdateTodo):
        return await entities_service.update_todo(session, user_id, command.args)
    if isinstance(command, DeleteTodo):
        return await entities_service.delete_todo(session, user_id, command.args)
    if isinstance(command, CreateShare):
        return await entities_service.create_share(session, user_id, command.args)
    if isinstance(command, DeleteShare):
        return await entities_service.delete_share(session, user_id, command.args)
    raise TypeError(f"unhandled mutation command: {type(command).__name__}")


async def _process_mutation(
    session: AsyncSession, *, user_id: str, client_group_id: str, mutation: PushMutation
) -> MutationOutcome:
    group = await clients_repo.get_client_group(session, client_group_id, for_update=True)
    client = await clients_repo.get_client(
        session, mutation.client_id, client_group_id=client_group_id, for_update=True
    )

    if group.user_id is not None and group.user_id != user_id:
        raise ClientGroupAccessError(f"client group {client_group_id} belongs to another user")
    if client.client_group_id != client_group_id:
        raise ClientGroupAccessError(
            f"client {mutation.client_id} does not belong to client group {client_group_id}"
        )

    next_mutation_id = client.last_mutation_id + 1

    if mutation.id < next_mutation_id:
        logger.info(
            "mutation already processed - skipping client_id=%s id=%s last_mutation_id=%s",
            mutation.client_id,
            mutation.id,
            client.last_mutation_id,
        )
        return MutationOutcome(
            client_id=mutation.client_id, mutation_id=mutation.id, status=MutationStatus.SKIPPED
        )
    if mutation.id > next_mutation_id:
        raise ProtocolViolationError(
            f"mutation {mutation.id} from client {mutation.client_id} is from the future"
            f" (expected {next_mutation_id})"
        )

    try:
        command = parse_mutation(mutation.name, mutation.args)
        affected = await _apply(session, user_id, command)
        outcome = MutationOutcome(
            client_id=mutation.client_id,
            mutation_id=mutation.id,
            status=MutationStatus.APPLIED,
            affected=affected,
        )
    except MutationError as exc:
        logger.warning(
            "mutation failed client_id=%s id=%s name=%s error=%s",
            mutation.client_id,
            mutation.id,
            mutation.name,
            exc,
        )
        outcome = MutationOutcome(
            client_id=mutation.client_id,
            mutation_id=mutation.id,
            status=MutationStatus.FAILED,
            error=str(exc),
        )

    # Applied or failed, the id is consumed exactly once.
    next_client_version = group.client_version + 1
    group.user_id = user_id
    group.client_version = next_client_version
    client.last_mutation_id = next_mutation_id
    client.client_version = next_client_version
    clients_repo.put_client_group(session, group)
    clients_repo.put_client(session, client)
    return outcome


async def push(*, user_id: str, req: PushRequest, poke_backend: PokeBackend) -> PushResult:
    """Apply a batch of mutations in array order, one transaction each.

    Stops at the first protocol violation; mutations before it stay committed.
    Pokes every affected list/user channel once after the batch, including
    when it stops early.
    """
    t0 = time.perf_counter()
    result = PushResult()

    try:
        for mutation in req.mutations:

            async def _run(session: AsyncSession, m: PushMutation = mutation) -> MutationOutcome:
                return await _process_mutation(
                    session, user_id=user_id, client_group_id=req.client_group_id, mutation=m
                )

            outcome = await transact(_run)
            result.outcomes.append(outcome)
            result.affected.merge(outcome.affected)
    finally:
        # Mutations committed before an aborting violation still changed data.
        for channel in result.affected.channels():
            await poke_backend.poke(channel)

    logger.info(
        "processed push client_group_id=%s mutations=%d elapsed_ms=%.1f",
        req.client_group_id,
        len(req.mutations),
        (time.perf_counter() - t0) * 1000,
    )
    return result
