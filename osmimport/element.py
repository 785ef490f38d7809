"""Sorted reference lists and ID conventions shared by the caches."""

from __future__ import annotations

from bisect import bisect_left
from dataclasses import dataclass, field

# Subtracted from relation IDs to keep them apart from way and node IDs when
# nodes, ways and relations are imported into the same table. Ways go from -0
# to -100,000,000,000,000,000, relations from there downwards.
REL_ID_OFFSET = -100_000_000_000_000_000


@dataclass
class IDRefs:
    """An ID together with a sorted, duplicate-free list of references."""

    id: int = 0
    refs: list[int] = field(default_factory=list)

    def add(self, ref: int) -> None:
        """Insert ref keeping the list sorted; existing refs are ignored."""
        i = bisect_left(self.refs, ref)
        if i < len(self.refs) and self.refs[i] == ref:
            return
        self.refs.insert(i, ref)

    def delete(self, ref: int) -> None:
        """Remove ref if present."""
        i = bisect_left(self.refs, ref)
        if i < len(self.refs) and self.refs[i] == ref:
            del self.refs[i]