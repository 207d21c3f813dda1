from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field


@dataclass(frozen=True)
class RowVersion:
    """Lightweight ``{id, row_version}`` projection used for diffing."""

    id: str
    row_version: int


class ClientViewData:
    """Snapshot of ``entity id -> row_version`` for one collection."""

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, int] | None = None) -> None:
        self._data: dict[str, int] = dict(data or {})

    @classmethod
    def from_search_result(cls, rows: Iterable[RowVersion]) -> ClientViewData:
        return cls({row.id: row.row_version for row in rows})

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ClientViewData):
            return NotImplemented
        return self._data == other._data

    def __repr__(self) -> str:
        return f"ClientViewData({self._data!r})"

    def ids(self) -> list[str]:
        return list(self._data)

    def version_of(self, entity_id: str) -> int | None:
        return self._data.get(entity_id)

    def puts_since(self, prev: ClientViewData) -> list[str]:
        """Ids that are new, or whose version moved past ``prev``."""
        puts: list[str] = []
        for entity_id, row_version in self._data.items():
            prev_version = prev._data.get(entity_id)
            if prev_version is None or prev_version < row_version:
                puts.append(entity_id)
        return puts

    def dels_since(self, prev: ClientViewData) -> list[str]:
        """Ids present in ``prev`` but gone from this snapshot."""
        return [entity_id for entity_id in prev._data if entity_id not in self._data]

    def reverted(self, entity_ids: Iterable[str], prev: ClientViewData) -> ClientViewData:
        """Roll ``entity_ids`` back to what ``prev`` recorded for them.

        Ids unknown to ``prev`` are dropped; the others keep ``prev``'s
        version, so a later diff still emits their put or del.
        """
        data = dict(self._data)
        for entity_id in entity_ids:
            prev_version = prev.version_of(entity_id)
            if prev_version is None:
                data.pop(entity_id, None)
            else:
                data[entity_id] = prev_version
        return ClientViewData(data)


COLLECTIONS: tuple[str, ...] = ("list", "share", "todo")


@dataclass(frozen=True)
class CollectionDiff:
    puts: list[str] = field(default_factory=list)
    dels: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ClientViewRecord:
    """What a client was last told it has, per collection.

    Instances are never mutated once handed to the cache; build a new one.
    """

    list: ClientViewData = field(default_factory=ClientViewData)
    share: ClientViewData = field(default_factory=ClientViewData)
    todo: ClientViewData = field(default_factory=ClientViewData)
    client_version: int = 0

    @classmethod
    def empty(cls) -> ClientViewRecord:
        return cls()

    def collection(self, name: str) -> ClientViewData:
        if name not in COLLECTIONS:
            raise KeyError(name)
        return getattr(self, name)

    def diff(self, prev: ClientViewRecord) -> dict[str, CollectionDiff]:
        out: dict[str, CollectionDiff] = {}
        for name in COLLECTIONS:
            current = self.collection(name)
            before = prev.collection(name)
            out[name] = CollectionDiff(
                puts=current.puts_since(before),
                dels=current.dels_since(before),
            )
        return out


def diff_size(diff: Mapping[str, CollectionDiff]) -> int:
    return sum(len(d.puts) + len(d.dels) for d in diff.values())
