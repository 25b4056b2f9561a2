"""Models package for ListUp."""

from .pack import CommunityPack, PACK_CATEGORIES, PACK_SORT_FIELDS

__all__ = [
    "CommunityPack",
    "PACK_CATEGORIES",
    "PACK_SORT_FIELDS",
]
