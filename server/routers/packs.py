"""
Item pack API router.

Serves the built-in preset packs (always available) and the community
pack store (available when PostgreSQL is configured). Clients use these
to fill the lobby list before sending "set-items" over the WebSocket.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field, field_validator

import presets
from models.pack import PACK_CATEGORIES
from stores.pack_store import PackStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["packs"])


# =============================================================================
# Request/Response Models
# =============================================================================


class ItemResponse(BaseModel):
    id: str
    text: str


class PresetPackResponse(BaseModel):
    id: str
    name: str
    description: str
    category: str
    items: list[str]


class PresetListResponse(BaseModel):
    categories: dict[str, str]
    packs: list[PresetPackResponse]


class MixRequest(BaseModel):
    """Random mix of several preset packs."""
    pack_ids: list[str] = Field(min_length=1)
    total_items: int = Field(10, ge=2, le=100)


class ParseRequest(BaseModel):
    """Free text, one entry per comma or line."""
    text: str = Field(max_length=10_000)


class CommunityPackResponse(BaseModel):
    id: str
    name: str
    description: Optional[str]
    category: str
    items: list[str]
    creator_name: str
    upvotes: int
    plays: int
    created_at: str


class CreatePackRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    category: str = "misc"
    items: list[str]
    creator_name: str = Field("Anonymous", min_length=1, max_length=50)

    @field_validator("category")
    @classmethod
    def known_category(cls, value: str) -> str:
        if value not in PACK_CATEGORIES:
            raise ValueError(f"category must be one of {', '.join(PACK_CATEGORIES)}")
        return value

    @field_validator("items")
    @classmethod
    def enough_items(cls, value: list[str]) -> list[str]:
        cleaned = [item.strip() for item in value if item.strip()]
        if len(cleaned) < 2:
            raise ValueError("a pack needs at least 2 non-empty items")
        return cleaned


# =============================================================================
# Dependencies
# =============================================================================

# Set by main.py during startup
_pack_store: Optional[PackStore] = None


def set_pack_store(store: Optional[PackStore]) -> None:
    """Set the pack store instance (called from main.py)."""
    global _pack_store
    _pack_store = store


def get_pack_store_dep() -> PackStore:
    """Dependency to get the pack store."""
    if _pack_store is None:
        raise HTTPException(status_code=503, detail="Community packs not available")
    return _pack_store


# =============================================================================
# Preset Endpoints
# =============================================================================


@router.get("/presets", response_model=PresetListResponse)
async def list_presets(category: Optional[str] = Query(None)):
    """List the built-in packs, optionally for one category."""
    packs = presets.get_packs_by_category(category) if category else presets.PRESET_PACKS
    return {
        "categories": {c: presets.CATEGORY_NAMES.get(c, c) for c in presets.get_categories()},
        "packs": [pack.to_dict() for pack in packs],
    }


@router.get("/presets/{pack_id}/items", response_model=list[ItemResponse])
async def preset_items(pack_id: str, count: Optional[int] = Query(None, ge=2, le=100)):
    """Items for a preset pack with fresh ids; a random subset when count is given."""
    pack = presets.get_pack(pack_id)
    if pack is None:
        raise HTTPException(status_code=404, detail="Pack not found")

    items = presets.pack_to_items_subset(pack, count) if count else presets.pack_to_items(pack)
    return [item.to_dict() for item in items]


@router.post("/presets/mix", response_model=list[ItemResponse])
async def mix_presets(request: MixRequest):
    packs = [presets.get_pack(pack_id) for pack_id in request.pack_ids]
    if any(pack is None for pack in packs):
        raise HTTPException(status_code=404, detail="Pack not found")
    return [item.to_dict() for item in presets.mix_packs(packs, request.total_items)]


@router.post("/presets/parse", response_model=list[ItemResponse])
async def parse_text(request: ParseRequest):
    return [item.to_dict() for item in presets.text_to_items(request.text)]


# =============================================================================
# Community Pack Endpoints
# =============================================================================


@router.get("/packs", response_model=list[CommunityPackResponse])
async def list_community_packs(
    sort_by: str = Query("upvotes", pattern="^(upvotes|plays|created_at)$"),
    category: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    store: PackStore = Depends(get_pack_store_dep),
):
    packs = await store.list_packs(sort_by=sort_by, category=category, limit=limit)
    return [pack.to_dict() for pack in packs]


@router.get("/packs/search", response_model=list[CommunityPackResponse])
async def search_community_packs(
    q: str = Query(..., min_length=1, max_length=100),
    store: PackStore = Depends(get_pack_store_dep),
):
    packs = await store.search_packs(q)
    return [pack.to_dict() for pack in packs]


@router.post("/packs", response_model=CommunityPackResponse, status_code=201)
async def create_community_pack(
    request: CreatePackRequest,
    store: PackStore = Depends(get_pack_store_dep),
):
    pack = await store.create_pack(
        name=request.name,
        category=request.category,
        items=request.items,
        description=request.description,
        creator_name=request.creator_name,
    )
    return pack.to_dict()


@router.post("/packs/{pack_id}/upvote")
async def upvote_community_pack(pack_id: str, store: PackStore = Depends(get_pack_store_dep)):
    if not await store.upvote_pack(pack_id):
        raise HTTPException(status_code=404, detail="Pack not found")
    return {"status": "ok"}


@router.post("/packs/{pack_id}/play", response_model=list[ItemResponse])
async def play_community_pack(pack_id: str, store: PackStore = Depends(get_pack_store_dep)):
    """Count a play and return the pack as items ready for "set-items"."""
    pack = await store.get_pack(pack_id)
    if pack is None:
        raise HTTPException(status_code=404, detail="Pack not found")

    await store.increment_plays(pack_id)
    return [{"id": presets.new_item_id(), "text": text} for text in pack.items]
