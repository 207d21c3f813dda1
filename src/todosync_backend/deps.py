from __future__ import annotations

from typing import Annotated

from fastapi import HTTPException, Query, Request, status

from todosync_backend.cvr_cache import CVRCache
from todosync_backend.poke import PokeBackend


async def get_current_user_id(
    request: Request,
    user_id: Annotated[str | None, Query(alias="userID", max_length=36)] = None,
) -> str:
    # Authentication is delegated to the deployment; the acting user arrives as ?userID=.
    value = (user_id or "").strip()
    if not value:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing userID")
    request.state.auth_user_id = value
    return value


def get_cvr_cache(request: Request) -> CVRCache:
    return request.app.state.cvr_cache


def get_poke_backend(request: Request) -> PokeBackend:
    return request.app.state.poke_backend
