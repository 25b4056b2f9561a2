"""
Test suite for Room and RoomManager.

Covers:
- Room lookup, creation and cleanup
- Broadcasting and per-connection state views
- Disconnects and host succession
- Debate and countdown timers, including stale timers after extensions

Timer tests use short real durations (tens of milliseconds).

Run with: pytest test_room.py -v
"""

import asyncio

import pytest

from constants import ROOM_CODE_ALPHABET
from game import FinishMode, Game, GameMode, GameStatus, Item, RoomSettings
from room import Room, RoomManager


# =============================================================================
# Mock helpers
# =============================================================================

class MockWebSocket:
    """Mock WebSocket that collects sent messages."""

    def __init__(self):
        self.messages: list[dict] = []

    async def send_json(self, data: dict):
        self.messages.append(data)

    def last_message(self) -> dict:
        return self.messages[-1] if self.messages else {}

    def messages_of_type(self, msg_type: str) -> list[dict]:
        return [m for m in self.messages if m.get("type") == msg_type]


class BrokenWebSocket(MockWebSocket):
    """A socket whose peer has gone away."""

    async def send_json(self, data: dict):
        raise RuntimeError("socket closed")


def make_room(num_players=2, items=("a", "b", "c"), **settings) -> Room:
    """Create a lobby Room with joined players p0..pN, each with a MockWebSocket."""
    room = Room(code="TEST", game=Game(settings=RoomSettings(**settings)))
    for i in range(num_players):
        room.connections[f"p{i}"] = MockWebSocket()
        room.game.add_player(f"p{i}", f"Player {i}")
    room.game.set_items([Item(str(i + 1), text) for i, text in enumerate(items)])
    return room


def ws(room: Room, connection_id: str) -> MockWebSocket:
    return room.connections[connection_id]


# =============================================================================
# RoomManager
# =============================================================================

class TestRoomManager:

    def test_generate_code(self):
        manager = RoomManager()
        code = manager.generate_code()
        assert len(code) == 6
        assert all(c in ROOM_CODE_ALPHABET for c in code)

    def test_generate_code_custom_length(self):
        assert len(RoomManager(code_length=4).generate_code()) == 4

    def test_codes_are_case_insensitive(self):
        manager = RoomManager()
        room = manager.get_or_create_room("abcdef")
        assert room.code == "ABCDEF"
        assert manager.get_or_create_room("ABCDEF") is room
        assert manager.get_room("AbCdEf") is room

    def test_get_missing_room(self):
        assert RoomManager().get_room("NOPE") is None

    @pytest.mark.asyncio
    async def test_open_connection_sends_sync(self):
        manager = RoomManager()
        socket = MockWebSocket()
        room = await manager.open_connection("ABCDEF", "c1", socket)
        assert "c1" in room.connections
        assert socket.last_message()["type"] == "sync"
        assert socket.last_message()["state"]["status"] == "lobby"

    @pytest.mark.asyncio
    async def test_last_connection_closes_room(self):
        manager = RoomManager()
        room = await manager.open_connection("ABCDEF", "c1", MockWebSocket())
        await manager.open_connection("ABCDEF", "c2", MockWebSocket())

        await manager.close_connection(room, "c1")
        assert manager.get_room("ABCDEF") is room

        await manager.close_connection(room, "c2")
        assert manager.get_room("ABCDEF") is None

    @pytest.mark.asyncio
    async def test_reopened_code_gets_fresh_room(self):
        manager = RoomManager()
        room = await manager.open_connection("ABCDEF", "c1", MockWebSocket())
        room.game.set_items([Item("1", "a")])
        await manager.close_connection(room, "c1")

        fresh = await manager.open_connection("ABCDEF", "c2", MockWebSocket())
        assert fresh is not room
        assert fresh.game.items == []

    @pytest.mark.asyncio
    async def test_remove_room_invalidates_timers(self):
        manager = RoomManager()
        room = manager.get_or_create_room("ABCDEF")
        generation = room.timer_generation
        await manager.remove_room("abcdef")
        assert manager.get_room("ABCDEF") is None
        assert room.timer_generation > generation


# =============================================================================
# Messaging
# =============================================================================

class TestMessaging:

    @pytest.mark.asyncio
    async def test_broadcast_exclude(self):
        room = make_room(3)
        await room.broadcast({"type": "ping"}, exclude="p1")
        assert ws(room, "p0").messages_of_type("ping")
        assert not ws(room, "p1").messages_of_type("ping")
        assert ws(room, "p2").messages_of_type("ping")

    @pytest.mark.asyncio
    async def test_broken_socket_does_not_stop_broadcast(self):
        room = make_room(2)
        room.connections["p0"] = BrokenWebSocket()
        await room.broadcast({"type": "ping"})
        assert ws(room, "p1").messages_of_type("ping")

    @pytest.mark.asyncio
    async def test_send_to_unknown_connection(self):
        room = make_room(1)
        await room.send_to("nobody", {"type": "ping"})
        assert not ws(room, "p0").messages

    @pytest.mark.asyncio
    async def test_send_error(self):
        room = make_room(1)
        await room.send_error("p0", "nope")
        assert ws(room, "p0").last_message() == {"type": "error", "message": "nope"}

    @pytest.mark.asyncio
    async def test_state_views_hide_blind_ballots(self):
        room = make_room(2, game_mode=GameMode.BLIND)
        await room.start_round()
        await room.broadcast_state()

        view0 = ws(room, "p0").last_message()["state"]["players"]
        view1 = ws(room, "p1").last_message()["state"]["players"]
        assert "blindItems" in view0["p0"] and "blindItems" not in view0["p1"]
        assert "blindItems" in view1["p1"] and "blindItems" not in view1["p0"]


# =============================================================================
# Disconnects
# =============================================================================

class TestDisconnect:

    @pytest.mark.asyncio
    async def test_host_leaves(self):
        room = make_room(3)
        await room.disconnect("p0")

        assert "p0" not in room.connections
        assert room.game.players["p1"].is_host is True
        left = ws(room, "p2").messages_of_type("player-left")
        assert left == [{"type": "player-left", "playerId": "p0"}]
        sync = ws(room, "p2").last_message()
        assert sync["type"] == "sync"
        assert sync["state"]["players"]["p1"]["isHost"] is True

    @pytest.mark.asyncio
    async def test_unjoined_connection_leaves_quietly(self):
        room = make_room(1)
        room.connections["watcher"] = MockWebSocket()
        assert await room.disconnect("watcher") is None
        assert not ws(room, "p0").messages

    @pytest.mark.asyncio
    async def test_last_holdout_leaving_ends_round(self):
        room = make_room(2)
        await room.start_round()
        room.game.toggle_satisfied("p0")

        await room.disconnect("p1")
        assert room.game.status == GameStatus.FINISHED
        assert ws(room, "p0").last_message()["state"]["status"] == "finished"

    @pytest.mark.asyncio
    async def test_is_empty(self):
        room = make_room(1)
        assert room.is_empty() is False
        await room.disconnect("p0")
        assert room.is_empty() is True


# =============================================================================
# Round flow
# =============================================================================

class TestRoundFlow:

    @pytest.mark.asyncio
    async def test_start_round_refuses_short_list(self):
        room = make_room(items=("only",))
        assert await room.start_round() is False
        assert not ws(room, "p0").messages

    @pytest.mark.asyncio
    async def test_blind_finish_reveals_before_sync(self):
        room = make_room(2, items=("A", "B", "C"), game_mode=GameMode.BLIND)
        await room.start_round()
        a, b, c = room.game.items
        room.game.submit_blind_ranking("p0", [a, b, c])
        room.game.submit_blind_ranking("p1", [b, c, a])

        await room.check_round_end()
        messages = ws(room, "p0").messages
        assert messages[-2]["type"] == "blind-reveal"
        assert [i["text"] for i in messages[-2]["finalList"]] == ["B", "A", "C"]
        assert messages[-1]["type"] == "sync"
        assert messages[-1]["state"]["status"] == "finished"

    @pytest.mark.asyncio
    async def test_classic_finish_has_no_reveal(self):
        room = make_room(1)
        await room.start_round()
        room.game.toggle_satisfied("p0")
        await room.check_round_end()
        assert not ws(room, "p0").messages_of_type("blind-reveal")

    @pytest.mark.asyncio
    async def test_extend_timer_broadcasts(self):
        room = make_room(2, finish_mode=FinishMode.TIMED, timer_duration=30)
        await room.start_round()
        ends_at = room.game.timer_ends_at

        assert await room.extend_timer(room.game.players["p0"]) is True
        extended = ws(room, "p1").messages_of_type("time-extended")
        assert extended == [{
            "type": "time-extended",
            "newEndsAt": ends_at + 30_000,
            "votedBy": "Player 0",
        }]
        assert await room.extend_timer(room.game.players["p0"]) is False
        assert room.game.timer_ends_at == ends_at + 30_000
        await room.close()


# =============================================================================
# Timers
# =============================================================================

class TestTimers:

    @pytest.mark.asyncio
    async def test_countdown_finishes_round(self):
        room = make_room(2, finish_mode=FinishMode.TIMED, timer_duration=0.05)
        await room.start_round()
        await asyncio.sleep(0.2)
        assert room.game.status == GameStatus.FINISHED
        assert room.game.final_list == room.game.items

    @pytest.mark.asyncio
    async def test_stale_countdown_ignored_after_extension(self):
        room = make_room(2, finish_mode=FinishMode.TIMED, timer_duration=0.1)
        room.extension_ms = 300
        await room.start_round()
        await room.extend_timer(room.game.players["p0"])

        await asyncio.sleep(0.2)
        assert room.game.status == GameStatus.PLAYING

        await asyncio.sleep(0.4)
        assert room.game.status == GameStatus.FINISHED

    @pytest.mark.asyncio
    async def test_new_round_cancels_countdown(self):
        room = make_room(2, finish_mode=FinishMode.TIMED, timer_duration=0.05)
        await room.start_round()
        await room.reset_round()
        await asyncio.sleep(0.15)
        assert room.game.status == GameStatus.LOBBY

    @pytest.mark.asyncio
    async def test_consensus_round_has_no_countdown(self):
        room = make_room(2)
        await room.start_round()
        assert room.game.timer_ends_at is None
        assert not room._timer_tasks

    @pytest.mark.asyncio
    async def test_debate_warning_then_play(self):
        room = make_room(2, game_mode=GameMode.DEBATE, debate_duration=0.2)
        room.debate_warning_ms = 100
        await room.start_round()
        assert room.game.status == GameStatus.DEBATING

        await asyncio.sleep(0.15)
        assert ws(room, "p0").messages_of_type("debate-ending")
        assert room.game.status == GameStatus.DEBATING

        await asyncio.sleep(0.2)
        assert room.game.status == GameStatus.PLAYING
        assert room.game.debate_ends_at is None

    @pytest.mark.asyncio
    async def test_short_debate_skips_warning(self):
        room = make_room(2, game_mode=GameMode.DEBATE, debate_duration=0.05)
        await room.start_round()
        await asyncio.sleep(0.15)
        assert room.game.status == GameStatus.PLAYING
        assert not ws(room, "p0").messages_of_type("debate-ending")

    @pytest.mark.asyncio
    async def test_debate_then_timed_countdown(self):
        room = make_room(
            2,
            game_mode=GameMode.DEBATE,
            debate_duration=0.05,
            finish_mode=FinishMode.TIMED,
            timer_duration=0.05,
        )
        await room.start_round()
        await asyncio.sleep(0.3)
        assert room.game.status == GameStatus.FINISHED

    @pytest.mark.asyncio
    async def test_expired_deadline_finishes_immediately(self):
        now = {"ms": 1_700_000_000_000}
        room = make_room(2, finish_mode=FinishMode.TIMED, timer_duration=30)
        room.clock = lambda: now["ms"]
        await room.start_round()
        assert room.game.status == GameStatus.PLAYING

        now["ms"] += 31_000
        await room.arm_countdown()
        assert room.game.status == GameStatus.FINISHED

    @pytest.mark.asyncio
    async def test_expired_debate_starts_play_immediately(self):
        now = {"ms": 1_700_000_000_000}
        room = make_room(2, game_mode=GameMode.DEBATE, debate_duration=10)
        room.clock = lambda: now["ms"]
        await room.start_round()

        now["ms"] += 10_000
        await room.arm_debate_timer()
        assert room.game.status == GameStatus.PLAYING
        await room.close()

    @pytest.mark.asyncio
    async def test_skip_debate_cancels_debate_timer(self):
        room = make_room(2, game_mode=GameMode.DEBATE, debate_duration=0.05)
        room.debate_warning_ms = 20
        await room.start_round()
        await room.begin_playing()
        generation = room.timer_generation

        await asyncio.sleep(0.15)
        assert room.game.status == GameStatus.PLAYING
        assert room.timer_generation == generation
        assert not ws(room, "p0").messages_of_type("debate-ending")
