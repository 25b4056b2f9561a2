"""
Community pack model.

Community packs are item lists published by players and stored in
PostgreSQL. They are a content source for the lobby only; rooms never
read or write them.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


PACK_CATEGORIES = ("food", "entertainment", "lifestyle", "sports", "misc")
PACK_SORT_FIELDS = ("upvotes", "plays", "created_at")


@dataclass
class CommunityPack:
    """
    A published, player-made pack.

    Attributes:
        id: UUID primary key.
        name: Pack title.
        description: Optional blurb.
        category: One of PACK_CATEGORIES.
        items: The entries to rank.
        creator_name: Display name of the author.
        upvotes: Times the pack was upvoted.
        plays: Times the pack was used in a room.
        created_at: When the pack was published.
    """
    id: str
    name: str
    category: str
    items: list[str] = field(default_factory=list)
    description: Optional[str] = None
    creator_name: str = "Anonymous"
    upvotes: int = 0
    plays: int = 0
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "items": list(self.items),
            "creator_name": self.creator_name,
            "upvotes": self.upvotes,
            "plays": self.plays,
            "created_at": self.created_at.isoformat(),
        }
