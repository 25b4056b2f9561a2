"""
Fixed values shared by the room controller, presets and the REST API.

Tunable values (durations, limits) live in config.py; the values here are
part of the client contract and do not change per deployment.
"""

# =============================================================================
# Player presentation
# =============================================================================

# Cursor colors, assigned by join order
PLAYER_COLORS: list[str] = [
    "#3B82F6",  # blue
    "#EF4444",  # red
    "#10B981",  # green
    "#F59E0B",  # amber
    "#8B5CF6",  # violet
    "#EC4899",  # pink
    "#06B6D4",  # cyan
    "#F97316",  # orange
]

AVATARS: list[str] = [
    "😀", "😎", "🤠", "🥳", "😈", "👻", "🤖", "👽",
    "🦊", "🐱", "🐶", "🦁", "🐸", "🐵", "🦄", "🐲",
]

DEFAULT_AVATAR = "😀"

REACTIONS: list[str] = ["👍", "👎", "😂", "🔥", "💀"]


# =============================================================================
# Game rules
# =============================================================================

MIN_ITEMS = 2

# Room codes skip look-alike characters (0/O, 1/I)
ROOM_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"

ITEM_ID_LENGTH = 8
ITEM_ID_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ_-"


def color_for_index(join_index: int) -> str:
    """Get the cursor color for a player's position in join order."""
    return PLAYER_COLORS[join_index % len(PLAYER_COLORS)]
