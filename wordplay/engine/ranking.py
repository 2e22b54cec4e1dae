"""
wordplay.engine.ranking — Rank Assignment
==========================================

:func:`standard_rank` takes sort keys that are **already in display order**
and returns one rank per entry: equal keys share a rank, with gaps after
them (``1, 1, 3``, as SQL ``RANK()``).  Used for arena standings, which
are built in memory from the arena's rounds.
"""

from __future__ import annotations

from collections.abc import Hashable, Sequence


def standard_rank(keys: Sequence[Hashable]) -> list[int]:
    ranks: list[int] = []
    previous: object = object()
    for position, key in enumerate(keys, start=1):
        if key != previous:
            rank = position
            previous = key
        ranks.append(rank)
    return ranks
