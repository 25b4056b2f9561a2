"""
PostgreSQL-backed store for community packs.

Community packs are player-published item lists. The lobby lists, searches
and upvotes them, and counts a play each time one is loaded into a room.
"""

import logging
from datetime import timezone
from typing import Optional

import asyncpg

from models.pack import CommunityPack, PACK_SORT_FIELDS

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS community_packs (
    id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
    name VARCHAR(100) NOT NULL,
    description TEXT,
    category VARCHAR(20) NOT NULL,
    items TEXT[] NOT NULL,
    creator_name VARCHAR(50) NOT NULL DEFAULT 'Anonymous',
    upvotes INT NOT NULL DEFAULT 0,
    plays INT NOT NULL DEFAULT 0,
    created_at TIMESTAMPTZ DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_community_packs_category ON community_packs(category);
CREATE INDEX IF NOT EXISTS idx_community_packs_upvotes ON community_packs(upvotes DESC);
"""

PACK_COLUMNS = "id, name, description, category, items, creator_name, upvotes, plays, created_at"

SEARCH_LIMIT = 20


class PackStore:
    """
    PostgreSQL-backed store for community packs.

    Uses asyncpg for async database access.
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    @classmethod
    async def create(cls, postgres_url: str) -> "PackStore":
        """
        Create a PackStore with a new connection pool.

        Args:
            postgres_url: PostgreSQL connection URL.

        Returns:
            Configured PackStore instance.
        """
        pool = await asyncpg.create_pool(postgres_url, min_size=1, max_size=5)
        store = cls(pool)
        await store.initialize_schema()
        return store

    async def initialize_schema(self) -> None:
        """Create database tables if they don't exist."""
        async with self.pool.acquire() as conn:
            await conn.execute(SCHEMA_SQL)
        logger.info("Pack store schema initialized")

    async def close(self) -> None:
        """Close the connection pool."""
        await self.pool.close()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def list_packs(
        self,
        sort_by: str = "upvotes",
        category: Optional[str] = None,
        limit: int = 50,
    ) -> list[CommunityPack]:
        """
        List packs, most popular first.

        Args:
            sort_by: One of upvotes, plays, created_at (descending).
            category: Only packs of this category; None or "all" for every pack.
            limit: Maximum number of packs.
        """
        if sort_by not in PACK_SORT_FIELDS:
            raise ValueError(f"Cannot sort packs by {sort_by!r}")

        # sort_by is whitelisted
        query = f"SELECT {PACK_COLUMNS} FROM community_packs"
        args: list = []
        if category and category != "all":
            args.append(category)
            query += " WHERE category = $1"
        args.append(limit)
        query += f" ORDER BY {sort_by} DESC LIMIT ${len(args)}"

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *args)
        return [self._row_to_pack(row) for row in rows]

    async def search_packs(self, text: str) -> list[CommunityPack]:
        """Case-insensitive name search, best-voted first."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {PACK_COLUMNS} FROM community_packs
                WHERE name ILIKE $1
                ORDER BY upvotes DESC
                LIMIT $2
                """,
                f"%{text}%",
                SEARCH_LIMIT,
            )
        return [self._row_to_pack(row) for row in rows]

    async def get_pack(self, pack_id: str) -> Optional[CommunityPack]:
        async with self.pool.acquire() as conn:
            try:
                row = await conn.fetchrow(
                    f"SELECT {PACK_COLUMNS} FROM community_packs WHERE id = $1",
                    pack_id,
                )
            except asyncpg.DataError:
                # Not a valid UUID
                return None
        return self._row_to_pack(row) if row else None

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def create_pack(
        self,
        name: str,
        category: str,
        items: list[str],
        description: Optional[str] = None,
        creator_name: str = "Anonymous",
    ) -> CommunityPack:
        """
        Publish a new pack.

        Returns:
            The stored pack with its generated id and counters.
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO community_packs (name, description, category, items, creator_name)
                VALUES ($1, $2, $3, $4, $5)
                RETURNING {PACK_COLUMNS}
                """,
                name,
                description,
                category,
                items,
                creator_name,
            )
        pack = self._row_to_pack(row)
        logger.info(f"Community pack created: {pack.name} ({len(pack.items)} items)")
        return pack

    async def upvote_pack(self, pack_id: str) -> bool:
        """Add one upvote. Returns False if the pack does not exist."""
        return await self._increment(pack_id, "upvotes")

    async def increment_plays(self, pack_id: str) -> bool:
        """Count one play. Returns False if the pack does not exist."""
        return await self._increment(pack_id, "plays")

    async def _increment(self, pack_id: str, column: str) -> bool:
        async with self.pool.acquire() as conn:
            try:
                result = await conn.execute(
                    f"UPDATE community_packs SET {column} = {column} + 1 WHERE id = $1",
                    pack_id,
                )
            except asyncpg.DataError:
                return False
        return result == "UPDATE 1"

    def _row_to_pack(self, row: asyncpg.Record) -> CommunityPack:
        """Convert database row to CommunityPack."""
        return CommunityPack(
            id=str(row["id"]),
            name=row["name"],
            description=row["description"],
            category=row["category"],
            items=list(row["items"]),
            creator_name=row["creator_name"],
            upvotes=row["upvotes"],
            plays=row["plays"],
            created_at=row["created_at"].astimezone(timezone.utc),
        )


# Global pack store instance
_pack_store: Optional[PackStore] = None


async def get_pack_store(postgres_url: str) -> PackStore:
    """Get or create the global pack store instance."""
    global _pack_store
    if _pack_store is None:
        _pack_store = await PackStore.create(postgres_url)
    return _pack_store


async def close_pack_store() -> None:
    """Close the global pack store connection pool."""
    global _pack_store
    if _pack_store is not None:
        await _pack_store.close()
        _pack_store = None
