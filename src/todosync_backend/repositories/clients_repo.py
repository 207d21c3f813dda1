from __future__ import annotations

from sqlmodel import col, select
from sqlmodel.ext.asyncio.session import AsyncSession

from ..models import Client, ClientGroup, utc_now


async def get_client_group(
    session: AsyncSession, client_group_id: str, *, for_update: bool = False
) -> ClientGroup:
    """Load a client group, or an unsaved zeroed record for an unknown id.

    ``for_update`` takes a row lock so concurrent pushes/pulls of the same
    group serialize on it.
    """
    stmt = select(ClientGroup).where(ClientGroup.id == client_group_id)
    if for_update:
        stmt = stmt.with_for_update()
    row = (await session.exec(stmt)).first()
    if row is None:
        return ClientGroup(id=client_group_id, cvr_version=0, client_version=0)
    return row


async def get_client(
    session: AsyncSession,
    client_id: str,
    *,
    client_group_id: str,
    for_update: bool = False,
) -> Client:
    """Load a client, or an unsaved record registered to ``client_group_id``."""
    stmt = select(Client).where(Client.id == client_id)
    if for_update:
        stmt = stmt.with_for_update()
    row = (await session.exec(stmt)).first()
    if row is None:
        return Client(
            id=client_id,
            client_group_id=client_group_id,
            last_mutation_id=0,
            client_version=0,
        )
    return row


def put_client_group(session: AsyncSession, group: ClientGroup) -> None:
    group.last_modified = utc_now()
    session.add(group)


def put_client(session: AsyncSession, client: Client) -> None:
    client.last_modified = utc_now()
    session.add(client)


async def search_clients(
    session: AsyncSession, *, client_group_id: str, since_client_version: int
) -> list[Client]:
    stmt = (
        select(Client)
        .where(Client.client_group_id == client_group_id)
        .where(col(Client.client_version) > since_client_version)
        .order_by(col(Client.id))
    )
    return list((await session.exec(stmt)).all())
