"""Stores package for ListUp persistence."""

from .pack_store import PackStore, get_pack_store, close_pack_store

__all__ = [
    "PackStore",
    "get_pack_store",
    "close_pack_store",
]
