from __future__ import annotations

import logging
from collections import OrderedDict

from todosync_backend.config import settings
from todosync_backend.domain.cvr import ClientViewRecord


logger = logging.getLogger(__name__)


class CVRCache:
    """Bounded in-memory store of issued client view records.

    Keyed by ``(client_group_id, cookie)``. Client groups are evicted least
    recently used first; within a group only the newest
    ``max_entries_per_group`` records are kept. A miss is always safe: the
    pull falls back to a full reset patch.

    All methods are synchronous, so callers on one event loop never observe
    a half-applied update.
    """

    def __init__(self, *, max_client_groups: int, max_entries_per_group: int) -> None:
        if max_client_groups < 1 or max_entries_per_group < 1:
            raise ValueError("cache bounds must be >= 1")
        self._max_groups = max_client_groups
        self._max_per_group = max_entries_per_group
        self._groups: OrderedDict[str, OrderedDict[int, ClientViewRecord]] = OrderedDict()

    @classmethod
    def from_settings(cls) -> CVRCache:
        return cls(
            max_client_groups=settings.cvr_cache_max_client_groups,
            max_entries_per_group=settings.cvr_cache_max_entries_per_group,
        )

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._groups.values())

    def get(self, client_group_id: str, cookie: int) -> ClientViewRecord | None:
        entries = self._groups.get(client_group_id)
        if entries is None:
            return None
        cvr = entries.get(cookie)
        if cvr is not None:
            self._groups.move_to_end(client_group_id)
        return cvr

    def put(self, client_group_id: str, cookie: int, cvr: ClientViewRecord) -> None:
        entries = self._groups.get(client_group_id)
        if entries is None:
            entries = OrderedDict()
            self._groups[client_group_id] = entries
        if cookie in entries:
            # Issued records are immutable; a repeated cookie means the group row was reset.
            logger.warning(
                "replacing cached CVR client_group_id=%s cookie=%s", client_group_id, cookie
            )
            del entries[cookie]
        entries[cookie] = cvr
        self._groups.move_to_end(client_group_id)

        while len(entries) > self._max_per_group:
            entries.popitem(last=False)
        while len(self._groups) > self._max_groups:
            evicted, _ = self._groups.popitem(last=False)
            logger.debug("evicted CVRs of client_group_id=%s", evicted)

    def evict_group(self, client_group_id: str) -> None:
        self._groups.pop(client_group_id, None)

    def clear(self) -> None:
        self._groups.clear()
