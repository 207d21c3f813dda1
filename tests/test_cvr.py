from __future__ import annotations

import pytest

from todosync_backend.cvr_cache import CVRCache
from todosync_backend.domain.cvr import (
    ClientViewData,
    ClientViewRecord,
    RowVersion,
    diff_size,
)


def _view(**versions: int) -> ClientViewData:
    return ClientViewData(versions)


def test_puts_since_reports_new_and_bumped_rows_only() -> None:
    prev = _view(a=1, b=2, c=3)
    current = _view(a=1, b=3, c=2, d=1)

    # c went backwards (row replaced) and is not re-sent; only strictly newer versions are.
    assert current.puts_since(prev) == ["b", "d"]


def test_dels_since_reports_rows_missing_from_current() -> None:
    prev = _view(a=1, b=1, c=1)
    current = _view(b=1)

    assert current.dels_since(prev) == ["a", "c"]
    assert prev.dels_since(current) == []


def test_from_search_result_and_reverted() -> None:
    view = ClientViewData.from_search_result([RowVersion("t1", 3), RowVersion("t2", 1)])
    assert len(view) == 2
    assert view.version_of("t1") == 3
    assert view.version_of("missing") is None

    prev = _view(t1=2)
    rolled_back = view.reverted(["t1", "t2"], prev)
    # t1 falls back to the version the client holds; t2 was never held.
    assert rolled_back == _view(t1=2)
    # Original snapshot is untouched.
    assert view.ids() == ["t1", "t2"]


def test_record_diff_against_empty_puts_everything() -> None:
    record = ClientViewRecord(
        list=_view(l1=1),
        share=_view(),
        todo=_view(t1=1, t2=1),
        client_version=3,
    )

    diff = record.diff(ClientViewRecord.empty())

    assert diff["list"].puts == ["l1"]
    assert diff["todo"].puts == ["t1", "t2"]
    assert diff["share"].puts == []
    assert all(not d.dels for d in diff.values())
    assert diff_size(diff) == 3


def test_record_diff_of_identical_snapshots_is_empty() -> None:
    record = ClientViewRecord(list=_view(l1=4), todo=_view(t1=2), client_version=1)
    assert diff_size(record.diff(record)) == 0


def test_collection_rejects_unknown_name() -> None:
    with pytest.raises(KeyError):
        ClientViewRecord.empty().collection("comment")


def _cache(groups: int = 2, per_group: int = 2) -> CVRCache:
    return CVRCache(max_client_groups=groups, max_entries_per_group=per_group)


def test_cvr_cache_get_put() -> None:
    cache = _cache()
    record = ClientViewRecord(list=_view(l1=1), client_version=1)

    assert cache.get("g1", 1) is None
    cache.put("g1", 1, record)
    assert cache.get("g1", 1) is record
    assert cache.get("g1", 2) is None
    assert cache.get("g2", 1) is None
    assert len(cache) == 1


def test_cvr_cache_keeps_newest_entries_per_group() -> None:
    cache = _cache(per_group=2)
    for cookie in (1, 2, 3):
        cache.put("g1", cookie, ClientViewRecord(client_version=cookie))

    assert cache.get("g1", 1) is None
    assert cache.get("g1", 2) is not None
    assert cache.get("g1", 3) is not None
    assert len(cache) == 2


def test_cvr_cache_evicts_least_recently_used_group() -> None:
    cache = _cache(groups=2)
    cache.put("g1", 1, ClientViewRecord.empty())
    cache.put("g2", 1, ClientViewRecord.empty())

    # Touch g1 so g2 becomes the eviction candidate.
    assert cache.get("g1", 1) is not None
    cache.put("g3", 1, ClientViewRecord.empty())

    assert cache.get("g1", 1) is not None
    assert cache.get("g2", 1) is None
    assert cache.get("g3", 1) is not None


def test_cvr_cache_evict_group_and_clear() -> None:
    cache = _cache()
    cache.put("g1", 1, ClientViewRecord.empty())
    cache.put("g2", 1, ClientViewRecord.empty())

    cache.evict_group("g1")
    cache.evict_group("unknown")
    assert cache.get("g1", 1) is None
    assert len(cache) == 1

    cache.clear()
    assert len(cache) == 0


def test_cvr_cache_rejects_zero_bounds() -> None:
    with pytest.raises(ValueError):
        CVRCache(max_client_groups=0, max_entries_per_group=1)
    with pytest.raises(ValueError):
        CVRCache(max_client_groups=1, max_entries_per_group=0)
