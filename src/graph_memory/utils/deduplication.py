"""
Near-duplicate grouping for the dedup sweep.

The sweep asks the vector index for each memory's neighbours above a
similarity threshold and feeds every (memory, neighbour) pair into a
disjoint set. Connected components with two or more members are the
duplicate clusters: if A~B and B~C, all three land in one cluster even when
A and C are not direct neighbours.

Design rationale:
    Ids are mapped to integer slots once per sweep (``DisjointSet.index``),
    so parent/rank live in flat lists and ids never move. ``find`` is
    iterative with path halving, so deep chains cannot hit the recursion
    limit. The sweep bounds its own cost by counting examined pairs
    (``PairBudget``) rather than by traversal depth.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


class DisjointSet:
    """Union-find over string ids, backed by index-stable arrays."""

    def __init__(self, ids: Iterable[str] = ()) -> None:
        self._index: dict[str, int] = {}
        self._ids: list[str] = []
        self._parent: list[int] = []
        self._rank: list[int] = []
        for item in ids:
            self.add(item)

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, item: str) -> bool:
        return item in self._index

    def add(self, item: str) -> int:
        """Register an id (no-op if known) and return its slot."""
        slot = self._index.get(item)
        if slot is not None:
            return slot
        slot = len(self._ids)
        self._index[item] = slot
        self._ids.append(item)
        self._parent.append(slot)
        self._rank.append(0)
        return slot

    def index(self, item: str) -> int:
        return self._index[item]

    def _find_slot(self, slot: int) -> int:
        parent = self._parent
        while parent[slot] != slot:
            parent[slot] = parent[parent[slot]]  # path halving
            slot = parent[slot]
        return slot

    def find(self, item: str) -> str:
        return self._ids[self._find_slot(self.add(item))]

    def union(self, a: str, b: str) -> bool:
        """Merge the sets holding a and b. Returns False if already joined."""
        ra = self._find_slot(self.add(a))
        rb = self._find_slot(self.add(b))
        if ra == rb:
            return False
        # Union by rank
        if self._rank[ra] < self._rank[rb]:
            ra, rb = rb, ra
        self._parent[rb] = ra
        if self._rank[ra] == self._rank[rb]:
            self._rank[ra] += 1
        return True

    def components(self, min_size: int = 1) -> list[list[str]]:
        """
        Groups of connected ids, each in insertion order.

        Components are ordered by their first-inserted member, so the result
        is deterministic for a given insertion order.
        """
        groups: dict[int, list[str]] = {}
        for slot, item in enumerate(self._ids):
            groups.setdefault(self._find_slot(slot), []).append(item)
        return [members for members in groups.values() if len(members) >= min_size]


@dataclass
class PairBudget:
    """Counts candidate pairs examined and reports when the cap is exceeded."""

    max_pairs: int = 500
    examined: int = 0

    def consume(self, count: int = 1) -> None:
        self.examined += count

    @property
    def exhausted(self) -> bool:
        return self.examined > self.max_pairs
