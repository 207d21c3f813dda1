from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from todosync_backend.cvr_cache import CVRCache
from todosync_backend.deps import get_current_user_id, get_cvr_cache, get_poke_backend
from todosync_backend.poke import PokeBackend
from todosync_backend.schemas import PullRequest, PullResponse, PushRequest, PushResponse
from todosync_backend.services import pull_service, push_service

router = APIRouter(prefix="/replicache", tags=["replicache"])

logger = logging.getLogger(__name__)


@router.post("/push", response_model=PushResponse)
async def push(
    payload: PushRequest,
    user_id: str = Depends(get_current_user_id),
    poke_backend: PokeBackend = Depends(get_poke_backend),
) -> PushResponse:
    # Per-mutation failures are absorbed; only protocol violations fail the request.
    result = await push_service.push(user_id=user_id, req=payload, poke_backend=poke_backend)
    failed = [o for o in result.outcomes if o.status == push_service.MutationStatus.FAILED]
    if failed:
        logger.info(
            "push accepted with failed mutations client_group_id=%s failed=%d",
            payload.client_group_id,
            len(failed),
        )
    return PushResponse()


@router.post("/pull", response_model=PullResponse)
async def pull(
    payload: PullRequest,
    user_id: str = Depends(get_current_user_id),
    cvr_cache: CVRCache = Depends(get_cvr_cache),
) -> PullResponse:
    return await pull_service.pull(user_id=user_id, req=payload, cvr_cache=cvr_cache)
