"""
Room management for multiplayer ListUp sessions.

This module handles room lookup, connection tracking, broadcasting and the
timed parts of a round (debate phase and countdown).

A Room contains:
    - A room code shared by everyone in the session (e.g., "K7QXPA")
    - The open WebSocket connections, keyed by connection id
    - A Game instance with the canonical state
    - A lock that serializes every message, connect, disconnect and timer
      callback, so the room behaves as a single-threaded actor

Flow methods on Room (start_round, begin_playing, finish_round, ...) expect
the caller to hold room.lock. Timer callbacks take the lock themselves.
"""

import asyncio
import random
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional

from fastapi import WebSocket

from config import config
from constants import ROOM_CODE_ALPHABET
from game import Game, GameMode, GameStatus, HostSuccession, Player, RoomSettings
from logging_config import (
    ContextLogger, connection_id_var, get_logger, message_type_var, room_code_var,
)

logger = get_logger(__name__)


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class Room:
    """
    A live ranking session.

    Attributes:
        code: Upper-case room code.
        game: The canonical state of the room.
        connections: Open connections keyed by connection id. A connection
            has no Player until it sends "join".
        lock: asyncio.Lock serializing all state access.
        clock: Returns the current time in epoch ms (injectable for tests).
        host_succession: Who inherits host when the host disconnects.
        extension_ms: Time added per "request-more-time" vote.
        debate_warning_ms: Lead time of the "debate-ending" warning.
        timer_generation: Incremented whenever timers are (re-)armed or the
            phase changes; a timer only fires if its generation is current.
    """

    code: str
    game: Game = field(
        default_factory=lambda: Game(settings=RoomSettings.from_defaults(config.room_defaults))
    )
    connections: dict[str, Any] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    clock: Callable[[], int] = now_ms
    host_succession: HostSuccession = field(
        default_factory=lambda: HostSuccession(config.HOST_SUCCESSION)
    )
    extension_ms: int = field(default_factory=lambda: config.TIME_EXTENSION_SECONDS * 1000)
    debate_warning_ms: int = field(default_factory=lambda: config.DEBATE_WARNING_SECONDS * 1000)
    timer_generation: int = 0
    _timer_tasks: set = field(default_factory=set, repr=False)

    @property
    def log(self) -> ContextLogger:
        return logger.with_context(room_code=self.code)

    # -------------------------------------------------------------------------
    # Connections
    # -------------------------------------------------------------------------

    async def connect(self, connection_id: str, websocket: WebSocket) -> None:
        """Register a connection and send it the current state."""
        self.connections[connection_id] = websocket
        self.log.debug(f"Connection opened ({len(self.connections)} open)")
        await self.send_state(connection_id)

    async def disconnect(self, connection_id: str) -> Optional[Player]:
        """
        Drop a connection and its player, if it had joined.

        Hands the host role on if needed, tells everyone, and re-evaluates
        the end of the round (the leaver may have been the last holdout).

        Returns:
            The removed Player, or None if the connection never joined.
        """
        self.connections.pop(connection_id, None)
        player = self.game.remove_player(connection_id, self.host_succession)
        if player is None:
            return None

        self.log.info(f"Player {player.name} left", extra={"player_id": connection_id})
        if player.is_host:
            new_host = self.game.host()
            if new_host:
                self.log.info(f"Host passed to {new_host.name}")
            else:
                self.log.info("Host left with no eligible successor")

        await self.broadcast({"type": "player-left", "playerId": connection_id})
        await self.broadcast_state()
        await self.check_round_end()
        return player

    def is_empty(self) -> bool:
        """Check if the room has no open connections."""
        return len(self.connections) == 0

    async def close(self) -> None:
        """Cancel pending timers. Called when the last connection is gone."""
        self.timer_generation += 1
        for task in list(self._timer_tasks):
            task.cancel()
        self._timer_tasks.clear()

    # -------------------------------------------------------------------------
    # Messaging
    # -------------------------------------------------------------------------

    async def broadcast(self, message: dict, exclude: Optional[str] = None) -> None:
        """
        Send a message to every open connection in the room.

        Args:
            message: JSON-serializable message dict.
            exclude: Optional connection ID to skip.
        """
        for connection_id, websocket in list(self.connections.items()):
            if connection_id != exclude:
                await self._send(connection_id, websocket, message)

    async def send_to(self, connection_id: str, message: dict) -> None:
        """Send a message to a single connection."""
        websocket = self.connections.get(connection_id)
        if websocket is not None:
            await self._send(connection_id, websocket, message)

    async def send_error(self, connection_id: str, message: str) -> None:
        await self.send_to(connection_id, {"type": "error", "message": message})

    async def _send(self, connection_id: str, websocket, message: dict) -> None:
        try:
            await websocket.send_json(message)
        except Exception as e:
            # A closing socket must not break delivery to the others
            self.log.debug(f"Send to {connection_id} failed: {e}")

    async def send_state(self, connection_id: str) -> None:
        """Send a "sync" with the state as seen by one connection."""
        await self.send_to(connection_id, {
            "type": "sync",
            "state": self.game.get_state(connection_id),
        })

    async def broadcast_state(self) -> None:
        """Send every connection its own view of the current state."""
        for connection_id, websocket in list(self.connections.items()):
            await self._send(connection_id, websocket, {
                "type": "sync",
                "state": self.game.get_state(connection_id),
            })

    # -------------------------------------------------------------------------
    # Round flow
    # -------------------------------------------------------------------------

    async def start_round(self) -> bool:
        """
        Start a round and arm its timer.

        Returns:
            False if the game refused to start (too few items).
        """
        if not self.game.start_game(self.clock()):
            return False

        settings = self.game.settings
        self.log.info(
            f"Round started: mode={settings.game_mode.value}, "
            f"finish={settings.finish_mode.value}, items={len(self.game.items)}"
        )
        await self.broadcast_state()

        if self.game.status == GameStatus.DEBATING:
            await self.arm_debate_timer()
        else:
            await self.arm_countdown()
        return True

    async def begin_playing(self) -> None:
        """Move from the debate phase to play."""
        if not self.game.transition_to_playing(self.clock()):
            return
        self.log.info("Debate over, play started")
        await self.broadcast_state()
        await self.arm_countdown()

    async def finish_round(self) -> None:
        """End the round, revealing the blind result if there is one."""
        final_list = self.game.end_round()
        self._next_generation()
        self.log.info(f"Round finished with {len(final_list)} items")

        if self.game.settings.game_mode == GameMode.BLIND:
            await self.broadcast({
                "type": "blind-reveal",
                "finalList": [item.to_dict() for item in final_list],
            })
        await self.broadcast_state()

    async def check_round_end(self) -> None:
        if self.game.should_end_round():
            await self.finish_round()

    async def reset_round(self) -> None:
        """Go back to the lobby."""
        self.game.new_round()
        self._next_generation()
        self.log.info("Back to lobby")
        await self.broadcast_state()

    async def extend_timer(self, player: Player) -> bool:
        """
        Apply a player's "more time" vote and re-arm the countdown.

        Returns:
            False if the vote was not accepted.
        """
        new_ends_at = self.game.extend_timer(player.id, self.extension_ms)
        if new_ends_at is None:
            return False

        self.log.info(f"{player.name} extended the timer", extra={"player_id": player.id})
        await self.broadcast({
            "type": "time-extended",
            "newEndsAt": new_ends_at,
            "votedBy": player.name,
        })
        await self.broadcast_state()
        await self.arm_countdown()
        return True

    # -------------------------------------------------------------------------
    # Timers
    # -------------------------------------------------------------------------

    def _next_generation(self) -> int:
        """Invalidate every pending timer and return the new generation."""
        self.timer_generation += 1
        current = asyncio.current_task()
        for task in list(self._timer_tasks):
            if task is not current:
                task.cancel()
        return self.timer_generation

    def _schedule(
        self,
        delay_ms: int,
        generation: int,
        callback: Callable[[], Awaitable[None]],
    ) -> None:
        task = asyncio.create_task(self._run_timer(delay_ms / 1000, generation, callback))
        self._timer_tasks.add(task)
        task.add_done_callback(self._timer_tasks.discard)

    async def _run_timer(
        self,
        delay: float,
        generation: int,
        callback: Callable[[], Awaitable[None]],
    ) -> None:
        # Drop the arming connection's log context
        connection_id_var.set(None)
        message_type_var.set(None)
        room_code_var.set(self.code)
        await asyncio.sleep(delay)
        async with self.lock:
            if generation != self.timer_generation:
                return
            try:
                await callback()
            except Exception:
                self.log.exception("Timer callback failed")

    async def arm_debate_timer(self) -> None:
        """Schedule the debate warning and the end of the debate phase."""
        generation = self._next_generation()
        if self.game.debate_ends_at is None:
            return

        time_left = self.game.debate_ends_at - self.clock()
        if time_left <= 0:
            await self.begin_playing()
            return

        if time_left > self.debate_warning_ms:
            self._schedule(time_left - self.debate_warning_ms, generation, self._warn_debate_ending)
        self._schedule(time_left, generation, self._on_debate_timeout)

    async def arm_countdown(self) -> None:
        """Schedule the end of a timed round against the current deadline."""
        generation = self._next_generation()
        if not self.game.is_timed_play():
            return

        time_left = self.game.timer_ends_at - self.clock()
        if time_left <= 0:
            await self.finish_round()
            return

        self._schedule(time_left, generation, self._on_countdown_expired)

    async def _warn_debate_ending(self) -> None:
        if self.game.status == GameStatus.DEBATING:
            await self.broadcast({
                "type": "debate-ending",
                "secondsLeft": self.debate_warning_ms // 1000,
            })

    async def _on_debate_timeout(self) -> None:
        if self.game.status == GameStatus.DEBATING:
            await self.begin_playing()

    async def _on_countdown_expired(self) -> None:
        if not self.game.is_timed_play():
            return
        if self.game.timer_ends_at > self.clock():
            # Woke up ahead of the wall clock; wait out the remainder
            await self.arm_countdown()
            return
        await self.finish_round()


class RoomManager:
    """
    Manages all open rooms.

    Rooms are created on first connection to a code and removed when the
    last connection closes. A single RoomManager instance is used by the
    server.
    """

    def __init__(self, code_length: Optional[int] = None) -> None:
        self.rooms: dict[str, Room] = {}
        self.code_length = code_length or config.ROOM_CODE_LENGTH

    def generate_code(self, max_attempts: int = 100) -> str:
        """Generate a room code not used by any open room."""
        for _ in range(max_attempts):
            code = "".join(random.choices(ROOM_CODE_ALPHABET, k=self.code_length))
            if code not in self.rooms:
                return code
        raise RuntimeError("Could not generate unique room code")

    def get_or_create_room(self, code: str) -> Room:
        """Get the room for a code (case-insensitive), creating it if needed."""
        code = code.upper()
        room = self.rooms.get(code)
        if room is None:
            room = Room(code=code)
            self.rooms[code] = room
            logger.info(f"Room {code} opened", extra={"room_code": code})
        return room

    def get_room(self, code: str) -> Optional[Room]:
        """Get a room by its code (case-insensitive), or None."""
        return self.rooms.get(code.upper())

    async def open_connection(self, code: str, connection_id: str, websocket: WebSocket) -> Room:
        """
        Attach a new connection to the room for code.

        Retries if the room was closed while this connection waited for
        its lock, so a connection never ends up in a forgotten room.
        """
        while True:
            room = self.get_or_create_room(code)
            async with room.lock:
                if self.rooms.get(room.code) is room:
                    await room.connect(connection_id, websocket)
                    return room

    async def close_connection(self, room: Room, connection_id: str) -> None:
        """Detach a connection, closing the room when it was the last one."""
        async with room.lock:
            await room.disconnect(connection_id)
            if room.is_empty() and self.rooms.get(room.code) is room:
                await self.remove_room(room.code)

    async def remove_room(self, code: str) -> None:
        """Close and forget a room."""
        room = self.rooms.pop(code.upper(), None)
        if room is not None:
            await room.close()
            logger.info(f"Room {room.code} closed", extra={"room_code": room.code})
