"""
Blind-mode scoring.

Each player's private order is a ballot. An item earns, per ballot, one
point for every item ranked below it (N-1 for first place, 0 for last).
The final list is the shared items sorted by total points, highest first.
"""

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from game import Item


def borda_scores(items: Sequence["Item"], ballots: Sequence[Sequence["Item"]]) -> dict[str, int]:
    """
    Sum Borda points per item id.

    Ballot entries whose id is not among the shared items are ignored.

    Args:
        items: The shared item list; fixes N and the set of scored ids.
        ballots: One ordered item list per voter.

    Returns:
        Mapping of item id to total points.
    """
    scores = {item.id: 0 for item in items}
    n = len(items)
    for ballot in ballots:
        for rank, item in enumerate(ballot):
            if item.id in scores:
                scores[item.id] += n - 1 - rank
    return scores


def borda_count(items: Sequence["Item"], ballots: Sequence[Sequence["Item"]]) -> list["Item"]:
    """
    Rank the shared items by Borda count.

    Ties keep the relative order of the shared list (sorted() is stable).
    """
    scores = borda_scores(items, ballots)
    return sorted(items, key=lambda item: -scores[item.id])
