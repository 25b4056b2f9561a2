"""WebSocket message handlers for ListUp rooms.

Each handler corresponds to a single message type from the client.
Handlers are dispatched via the HANDLERS dict by dispatch_message(), which
holds the room lock for the whole handler so every message is applied and
broadcast atomically with respect to the rest of the room.

Invalid administrative actions are answered with an "error" message to
the sender; invalid high-frequency actions (reorder, cursor moves, votes)
are ignored.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

from fastapi import WebSocket

from config import config
from constants import REACTIONS, color_for_index
from game import GameMode, GameStatus, Player, parse_items
from logging_config import message_type_var
from room import Room

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 32


class MessageError(ValueError):
    """A client message is malformed."""


class ClientMessageType(str, Enum):
    """Every message type a client may send."""

    JOIN = "join"
    UPDATE_SETTINGS = "update-settings"
    SET_ITEMS = "set-items"
    START_GAME = "start-game"
    REORDER = "reorder"
    TOGGLE_SATISFIED = "toggle-satisfied"
    REQUEST_MORE_TIME = "request-more-time"
    NEW_ROUND = "new-round"
    CURSOR_MOVE = "cursor-move"
    SET_AVATAR = "set-avatar"
    SEND_REACTION = "send-reaction"
    SKIP_DEBATE = "skip-debate"
    SUBMIT_BLIND_RANKING = "submit-blind-ranking"


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    websocket: WebSocket
    connection_id: str
    room: Room

    @property
    def player(self) -> Optional[Player]:
        return self.room.game.get_player(self.connection_id)

    async def error(self, message: str) -> None:
        await self.room.send_error(self.connection_id, message)


async def _require_host(ctx: ConnectionContext, action: str) -> Optional[Player]:
    player = ctx.player
    if player is None or not player.is_host:
        logger.debug(f"Rejected non-host {action}", extra={"room_code": ctx.room.code})
        await ctx.error(f"Only host can {action}")
        return None
    return player


def _items_field(data: dict) -> list:
    try:
        return parse_items(data.get("items"))
    except ValueError as e:
        raise MessageError(str(e)) from e


def _optional_str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    if value is not None and not isinstance(value, str):
        raise MessageError(f"{key} must be a string")
    return value


def _is_coordinate(value) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


# ---------------------------------------------------------------------------
# Lobby handlers
# ---------------------------------------------------------------------------

async def handle_join(data: dict, ctx: ConnectionContext) -> None:
    name = _optional_str(data, "name")
    if not name or not name.strip():
        raise MessageError("name is required")
    avatar = _optional_str(data, "avatar")
    as_spectator = data.get("asSpectator", False)
    if not isinstance(as_spectator, bool):
        raise MessageError("asSpectator must be a boolean")

    game = ctx.room.game
    if ctx.player is not None:
        await ctx.error("Already joined")
        return
    if len(game.players) >= config.MAX_PLAYERS_PER_ROOM:
        await ctx.error("Room is full")
        return

    player = game.add_player(
        ctx.connection_id,
        name.strip()[:MAX_NAME_LENGTH],
        avatar=avatar,
        as_spectator=as_spectator,
    )
    logger.info(
        f"{player.name} joined{' as spectator' if as_spectator else ''}"
        f"{' (host)' if player.is_host else ''}",
        extra={"room_code": ctx.room.code, "player_id": player.id},
    )

    await ctx.room.broadcast({"type": "player-joined", "player": player.to_dict(reveal_blind=False)})
    await ctx.room.broadcast_state()


async def handle_update_settings(data: dict, ctx: ConnectionContext) -> None:
    if not await _require_host(ctx, "update settings"):
        return
    if ctx.room.game.status != GameStatus.LOBBY:
        await ctx.error("Cannot update settings during game")
        return

    try:
        ctx.room.game.update_settings(data.get("settings"))
    except ValueError as e:
        raise MessageError(str(e)) from e
    await ctx.room.broadcast_state()


async def handle_set_items(data: dict, ctx: ConnectionContext) -> None:
    if not await _require_host(ctx, "set items"):
        return
    if ctx.room.game.status != GameStatus.LOBBY:
        await ctx.error("Cannot set items during game")
        return

    ctx.room.game.set_items(_items_field(data))
    await ctx.room.broadcast_state()


# ---------------------------------------------------------------------------
# Round lifecycle handlers
# ---------------------------------------------------------------------------

async def handle_start_game(data: dict, ctx: ConnectionContext) -> None:
    if not await _require_host(ctx, "start game"):
        return
    if not ctx.room.game.can_start():
        await ctx.error("Need at least 2 items to start")
        return

    await ctx.room.start_round()


async def handle_skip_debate(data: dict, ctx: ConnectionContext) -> None:
    if not await _require_host(ctx, "skip debate"):
        return
    if ctx.room.game.status != GameStatus.DEBATING:
        await ctx.error("No debate in progress")
        return

    await ctx.room.begin_playing()


async def handle_new_round(data: dict, ctx: ConnectionContext) -> None:
    if not await _require_host(ctx, "start new round"):
        return

    await ctx.room.reset_round()


async def handle_request_more_time(data: dict, ctx: ConnectionContext) -> None:
    game = ctx.room.game
    player = ctx.player
    if player is None or not game.is_timed_play():
        return
    if player.voted_more_time:
        await ctx.error("You already voted for more time")
        return

    await ctx.room.extend_timer(player)


# ---------------------------------------------------------------------------
# Play handlers
# ---------------------------------------------------------------------------

async def handle_reorder(data: dict, ctx: ConnectionContext) -> None:
    items = _items_field(data)
    game = ctx.room.game
    if not game.reorder(ctx.connection_id, items):
        return

    if game.settings.game_mode == GameMode.BLIND:
        # Blind orders stay private to their owner
        await ctx.room.send_state(ctx.connection_id)
    else:
        await ctx.room.broadcast_state()


async def handle_toggle_satisfied(data: dict, ctx: ConnectionContext) -> None:
    if ctx.room.game.toggle_satisfied(ctx.connection_id):
        await ctx.room.broadcast_state()
        await ctx.room.check_round_end()


async def handle_submit_blind_ranking(data: dict, ctx: ConnectionContext) -> None:
    items = _items_field(data)
    if ctx.room.game.submit_blind_ranking(ctx.connection_id, items):
        await ctx.room.broadcast_state()
        await ctx.room.check_round_end()


async def handle_cursor_move(data: dict, ctx: ConnectionContext) -> None:
    position = data.get("position")
    if (
        not isinstance(position, dict)
        or not all(_is_coordinate(position.get(axis)) for axis in ("x", "y"))
    ):
        raise MessageError("position must have numeric x and y")
    dragging_item = _optional_str(data, "draggingItem")

    game = ctx.room.game
    player = ctx.player
    if game.status != GameStatus.PLAYING or player is None:
        return

    cursor = {
        "playerId": player.id,
        "playerName": player.name,
        "playerColor": color_for_index(game.join_index(player.id)),
        "position": {"x": position["x"], "y": position["y"]},
        "draggingItem": dragging_item,
    }
    await ctx.room.broadcast({"type": "cursor-update", "cursor": cursor}, exclude=ctx.connection_id)


# ---------------------------------------------------------------------------
# Any-phase handlers
# ---------------------------------------------------------------------------

async def handle_set_avatar(data: dict, ctx: ConnectionContext) -> None:
    avatar = _optional_str(data, "avatar")
    if not avatar:
        raise MessageError("avatar is required")
    player = ctx.player
    if player is None:
        return

    player.avatar = avatar
    await ctx.room.broadcast_state()


async def handle_send_reaction(data: dict, ctx: ConnectionContext) -> None:
    player = ctx.player
    reaction = data.get("reaction")
    if player is None or reaction not in REACTIONS:
        return

    await ctx.room.broadcast({
        "type": "reaction",
        "reaction": {
            "playerId": player.id,
            "playerName": player.name,
            "type": reaction,
            "timestamp": ctx.room.clock(),
        },
    })


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

Handler = Callable[[dict, ConnectionContext], Awaitable[None]]

HANDLERS: dict[ClientMessageType, Handler] = {
    ClientMessageType.JOIN: handle_join,
    ClientMessageType.UPDATE_SETTINGS: handle_update_settings,
    ClientMessageType.SET_ITEMS: handle_set_items,
    ClientMessageType.START_GAME: handle_start_game,
    ClientMessageType.REORDER: handle_reorder,
    ClientMessageType.TOGGLE_SATISFIED: handle_toggle_satisfied,
    ClientMessageType.REQUEST_MORE_TIME: handle_request_more_time,
    ClientMessageType.NEW_ROUND: handle_new_round,
    ClientMessageType.CURSOR_MOVE: handle_cursor_move,
    ClientMessageType.SET_AVATAR: handle_set_avatar,
    ClientMessageType.SEND_REACTION: handle_send_reaction,
    ClientMessageType.SKIP_DEBATE: handle_skip_debate,
    ClientMessageType.SUBMIT_BLIND_RANKING: handle_submit_blind_ranking,
}


async def dispatch_message(data, ctx: ConnectionContext) -> None:
    """
    Route one decoded client message to its handler under the room lock.

    Malformed messages are dropped with an error reply; unexpected handler
    failures are logged and reported without taking the room down.
    """
    if not isinstance(data, dict):
        await ctx.error("Invalid message")
        return

    raw_type = data.get("type")
    if not isinstance(raw_type, str):
        await ctx.error("Invalid message")
        return
    try:
        message_type = ClientMessageType(raw_type)
    except ValueError:
        logger.warning(f"Unknown message type: {raw_type!r}", extra={"room_code": ctx.room.code})
        await ctx.error("Unknown message type")
        return

    handler = HANDLERS[message_type]
    token = message_type_var.set(message_type.value)
    try:
        async with ctx.room.lock:
            try:
                await handler(data, ctx)
            except MessageError as e:
                logger.warning(
                    f"Malformed message: {e}",
                    extra={"room_code": ctx.room.code, "player_id": ctx.connection_id},
                )
                await ctx.error("Invalid message")
            except Exception:
                logger.exception(
                    "Handler failed",
                    extra={"room_code": ctx.room.code, "player_id": ctx.connection_id},
                )
                await ctx.error("Internal error")
    finally:
        message_type_var.reset(token)
