"""
Game state and rules for ListUp.

This module holds the canonical per-room state (items, players, settings,
deadlines) and the pure state transitions of a ranking round. It performs
no I/O: the Room in room.py owns a Game, serializes access to it, arms
timers and broadcasts the results.

Round flow:
    LOBBY -> (DEBATING ->) PLAYING -> FINISHED -> LOBBY

    DEBATING is only entered when the game mode is "debate".

Game modes:
    - classic: everyone drags the one shared list until done
    - debate: a timed discussion phase, then classic play
    - blind: each player privately ranks a copy of the list; the final
      list is the Borda count of all ballots

Finish modes:
    - consensus: the round ends once every active player is satisfied
    - timed: the round ends when the countdown runs out
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from constants import DEFAULT_AVATAR, MIN_ITEMS
from scoring import borda_count


class GameStatus(str, Enum):
    """Phase of a room."""

    LOBBY = "lobby"
    DEBATING = "debating"
    PLAYING = "playing"
    FINISHED = "finished"


class FinishMode(str, Enum):
    """How a round in the PLAYING phase ends."""

    CONSENSUS = "consensus"
    TIMED = "timed"


class GameMode(str, Enum):
    """Variant of play."""

    CLASSIC = "classic"
    DEBATE = "debate"
    BLIND = "blind"


class HostSuccession(str, Enum):
    """
    Who inherits the host role when the host disconnects.

    NON_SPECTATOR: the earliest-joined remaining player who is not a spectator
    FIRST: the earliest-joined remaining player, spectator or not
    """

    NON_SPECTATOR = "non_spectator"
    FIRST = "first"


@dataclass
class Item:
    """One entry of the list being ranked. Identity is the id."""

    id: str
    text: str

    def to_dict(self) -> dict:
        return {"id": self.id, "text": self.text}

    @classmethod
    def from_dict(cls, data: dict) -> "Item":
        """
        Build an item from client data.

        Raises:
            ValueError: If the data is not an object with string id and text.
        """
        if not isinstance(data, dict):
            raise ValueError("item must be an object")
        item_id = data.get("id")
        text = data.get("text")
        if not isinstance(item_id, str) or not isinstance(text, str):
            raise ValueError("item id and text must be strings")
        return cls(id=item_id, text=text)


def parse_items(raw) -> list[Item]:
    """
    Parse a client-supplied item list.

    Raises:
        ValueError: If raw is not a list of valid items.
    """
    if not isinstance(raw, list):
        raise ValueError("items must be a list")
    return [Item.from_dict(entry) for entry in raw]


def items_to_dicts(items: Optional[list[Item]]) -> Optional[list[dict]]:
    if items is None:
        return None
    return [item.to_dict() for item in items]


def _positive_number(value, name: str) -> float:
    if (
        isinstance(value, bool)
        or not isinstance(value, (int, float))
        or not math.isfinite(value)
        or value <= 0
    ):
        raise ValueError(f"{name} must be a positive number")
    return value


def _deadline(now: int, seconds: float) -> int:
    """Epoch ms deadline seconds after now."""
    return int(now + seconds * 1000)


@dataclass
class RoomSettings:
    """
    Per-room game configuration, editable by the host in the lobby.

    Attributes:
        finish_mode: How the round ends (consensus or timed).
        timer_duration: Countdown length in seconds for timed rounds.
        game_mode: classic, debate or blind.
        debate_duration: Length in seconds of the debate phase.
    """

    finish_mode: FinishMode = FinishMode.CONSENSUS
    timer_duration: float = 60
    game_mode: GameMode = GameMode.CLASSIC
    debate_duration: float = 60

    def to_dict(self) -> dict:
        return {
            "finishMode": self.finish_mode.value,
            "timerDuration": self.timer_duration,
            "gameMode": self.game_mode.value,
            "debateDuration": self.debate_duration,
        }

    def merged(self, partial: dict) -> "RoomSettings":
        """
        Return a copy with the client-provided fields applied.

        Unknown keys are ignored. Every provided value is validated before
        anything is applied, so a bad field rejects the whole update.

        Raises:
            ValueError: If partial is not an object or a value is invalid.
        """
        if not isinstance(partial, dict):
            raise ValueError("settings must be an object")

        finish_mode = self.finish_mode
        timer_duration = self.timer_duration
        game_mode = self.game_mode
        debate_duration = self.debate_duration

        if "finishMode" in partial:
            finish_mode = FinishMode(partial["finishMode"])
        if "timerDuration" in partial:
            timer_duration = _positive_number(partial["timerDuration"], "timerDuration")
        if "gameMode" in partial:
            game_mode = GameMode(partial["gameMode"])
        if "debateDuration" in partial:
            debate_duration = _positive_number(partial["debateDuration"], "debateDuration")

        return RoomSettings(
            finish_mode=finish_mode,
            timer_duration=timer_duration,
            game_mode=game_mode,
            debate_duration=debate_duration,
        )

    @classmethod
    def from_defaults(cls, defaults) -> "RoomSettings":
        """Build settings from config.RoomDefaults."""
        return cls(
            finish_mode=FinishMode(defaults.finish_mode),
            timer_duration=defaults.timer_duration,
            game_mode=GameMode(defaults.game_mode),
            debate_duration=defaults.debate_duration,
        )


@dataclass
class Player:
    """
    A joined participant of a room.

    Attributes:
        id: The connection id assigned by the transport.
        name: Display name.
        is_host: Whether this player controls settings and round flow.
        avatar: Emoji avatar.
        is_spectator: Spectators watch but cannot rank, vote or host on join.
        satisfied: Consensus vote for the current shared order.
        voted_more_time: Whether the player already extended this round's timer.
        has_submitted: Whether the player submitted a blind ranking this round.
        blind_items: The player's private order during a blind round.
    """

    id: str
    name: str
    is_host: bool = False
    avatar: str = DEFAULT_AVATAR
    is_spectator: bool = False
    satisfied: bool = False
    voted_more_time: bool = False
    has_submitted: bool = False
    blind_items: Optional[list[Item]] = None

    def to_dict(self, reveal_blind: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "satisfied": self.satisfied,
            "isHost": self.is_host,
            "avatar": self.avatar,
            "votedMoreTime": self.voted_more_time,
            "isSpectator": self.is_spectator,
            "hasSubmitted": self.has_submitted,
        }
        if self.blind_items is not None and reveal_blind:
            data["blindItems"] = items_to_dicts(self.blind_items)
        return data


@dataclass
class Game:
    """
    Canonical state of one room and the transitions between phases.

    Every mutating method either applies its whole effect or leaves the
    state untouched. Callers are responsible for authorization (host-only
    actions) and for serializing access.

    Attributes:
        status: Current phase.
        items: The shared list, in its current order.
        players: Joined players keyed by connection id, in join order.
        settings: Room settings.
        timer_ends_at: Epoch ms when a timed round ends (PLAYING + timed only).
        debate_ends_at: Epoch ms when the debate ends (DEBATING only).
        final_list: The result of the last finished round.
    """

    status: GameStatus = GameStatus.LOBBY
    items: list[Item] = field(default_factory=list)
    players: dict[str, Player] = field(default_factory=dict)
    settings: RoomSettings = field(default_factory=RoomSettings)
    timer_ends_at: Optional[int] = None
    debate_ends_at: Optional[int] = None
    final_list: Optional[list[Item]] = None

    # -------------------------------------------------------------------------
    # Players
    # -------------------------------------------------------------------------

    def add_player(
        self,
        player_id: str,
        name: str,
        avatar: Optional[str] = None,
        as_spectator: bool = False,
    ) -> Player:
        """
        Add a player to the room.

        A non-spectator becomes host when the room has no host; a
        spectator never becomes host on join.
        """
        player = Player(
            id=player_id,
            name=name,
            is_host=not as_spectator and self.host() is None,
            avatar=avatar or DEFAULT_AVATAR,
            is_spectator=as_spectator,
        )
        self.players[player_id] = player
        return player

    def remove_player(
        self,
        player_id: str,
        succession: HostSuccession = HostSuccession.NON_SPECTATOR,
    ) -> Optional[Player]:
        """
        Remove a player, handing the host role on if the host left.

        Returns:
            The removed Player, or None if not found.
        """
        player = self.players.pop(player_id, None)
        if player is None:
            return None

        if player.is_host:
            candidates = list(self.players.values())
            if succession == HostSuccession.NON_SPECTATOR:
                candidates = [p for p in candidates if not p.is_spectator]
            if candidates:
                candidates[0].is_host = True

        return player

    def get_player(self, player_id: str) -> Optional[Player]:
        return self.players.get(player_id)

    def host(self) -> Optional[Player]:
        """Get the current host, if any."""
        for player in self.players.values():
            if player.is_host:
                return player
        return None

    def active_players(self) -> list[Player]:
        """Players who take part in ranking (non-spectators)."""
        return [p for p in self.players.values() if not p.is_spectator]

    def join_index(self, player_id: str) -> int:
        """Position of the player in join order, or -1."""
        for index, pid in enumerate(self.players):
            if pid == player_id:
                return index
        return -1

    # -------------------------------------------------------------------------
    # Lobby
    # -------------------------------------------------------------------------

    def update_settings(self, partial: dict) -> bool:
        """Merge settings. Only allowed in the lobby; raises ValueError on bad values."""
        if self.status != GameStatus.LOBBY:
            return False
        self.settings = self.settings.merged(partial)
        return True

    def set_items(self, items: list[Item]) -> bool:
        """Replace the shared list. Only allowed in the lobby."""
        if self.status != GameStatus.LOBBY:
            return False
        self.items = list(items)
        return True

    def can_start(self) -> bool:
        return len(self.items) >= MIN_ITEMS

    # -------------------------------------------------------------------------
    # Round lifecycle
    # -------------------------------------------------------------------------

    def start_game(self, now: int) -> bool:
        """
        Start a round from any phase.

        Resets every player's per-round flags, seeds blind ballots with the
        current shared order, and enters DEBATING or PLAYING.

        Args:
            now: Current time in epoch ms.

        Returns:
            False if there are too few items.
        """
        if not self.can_start():
            return False

        # Deadlines first: nothing changes if one cannot be computed
        if self.settings.game_mode == GameMode.DEBATE:
            status = GameStatus.DEBATING
            debate_ends_at = _deadline(now, self.settings.debate_duration)
            timer_ends_at = None
        else:
            status = GameStatus.PLAYING
            debate_ends_at = None
            timer_ends_at = self._play_deadline(now)

        self.final_list = None
        blind = self.settings.game_mode == GameMode.BLIND
        for player in self.players.values():
            player.satisfied = False
            player.voted_more_time = False
            player.has_submitted = False
            player.blind_items = list(self.items) if blind else None

        self.status = status
        self.debate_ends_at = debate_ends_at
        self.timer_ends_at = timer_ends_at
        return True

    def transition_to_playing(self, now: int) -> bool:
        """End the debate phase. Only valid while DEBATING."""
        if self.status != GameStatus.DEBATING:
            return False
        timer_ends_at = self._play_deadline(now)
        self.status = GameStatus.PLAYING
        self.debate_ends_at = None
        self.timer_ends_at = timer_ends_at
        return True

    def _play_deadline(self, now: int) -> Optional[int]:
        if self.settings.finish_mode != FinishMode.TIMED:
            return None
        return _deadline(now, self.settings.timer_duration)

    def new_round(self) -> None:
        """Return to the lobby, clearing deadlines, results and votes."""
        self.status = GameStatus.LOBBY
        self.timer_ends_at = None
        self.debate_ends_at = None
        self.final_list = None
        for player in self.players.values():
            player.satisfied = False
            player.voted_more_time = False
            player.has_submitted = False
            player.blind_items = None

    def is_timed_play(self) -> bool:
        return (
            self.status == GameStatus.PLAYING
            and self.settings.finish_mode == FinishMode.TIMED
            and self.timer_ends_at is not None
        )

    def should_end_round(self) -> bool:
        """
        Check whether the completion condition of the round holds.

        Consensus rounds end when every active player is satisfied; blind
        rounds end when every active player has submitted a ballot. A round
        with no active players never ends on its own.
        """
        if self.status != GameStatus.PLAYING:
            return False

        active = self.active_players()
        if not active:
            return False

        if self.settings.game_mode == GameMode.BLIND:
            return all(p.has_submitted for p in active)
        if self.settings.finish_mode == FinishMode.CONSENSUS:
            return all(p.satisfied for p in active)
        return False

    def end_round(self) -> list[Item]:
        """
        Finish the round and record the final list.

        Blind rounds are decided by Borda count over the active players'
        ballots; other rounds keep the shared order.
        """
        self.status = GameStatus.FINISHED
        self.timer_ends_at = None
        self.debate_ends_at = None

        if self.settings.game_mode == GameMode.BLIND:
            ballots = [
                p.blind_items if p.blind_items is not None else self.items
                for p in self.active_players()
            ]
            self.final_list = borda_count(self.items, ballots)
        else:
            self.final_list = list(self.items)
        return self.final_list

    # -------------------------------------------------------------------------
    # Play actions
    # -------------------------------------------------------------------------

    def _active_player_in_play(self, player_id: str) -> Optional[Player]:
        if self.status != GameStatus.PLAYING:
            return None
        player = self.players.get(player_id)
        if player is None or player.is_spectator:
            return None
        return player

    def reorder(self, player_id: str, items: list[Item]) -> bool:
        """
        Apply a new order from a player.

        In blind mode only the player's own ballot changes. Otherwise the
        shared list is replaced and, in consensus mode, every satisfied vote
        is withdrawn.
        """
        player = self._active_player_in_play(player_id)
        if player is None:
            return False

        if self.settings.game_mode == GameMode.BLIND:
            player.blind_items = list(items)
            return True

        self.items = list(items)
        if self.settings.finish_mode == FinishMode.CONSENSUS:
            for p in self.players.values():
                p.satisfied = False
        return True

    def toggle_satisfied(self, player_id: str) -> bool:
        """Flip a player's consensus vote. Consensus, non-blind play only."""
        if self.settings.finish_mode != FinishMode.CONSENSUS:
            return False
        if self.settings.game_mode == GameMode.BLIND:
            return False
        player = self._active_player_in_play(player_id)
        if player is None:
            return False
        player.satisfied = not player.satisfied
        return True

    def submit_blind_ranking(self, player_id: str, items: list[Item]) -> bool:
        """Record a player's final blind ballot."""
        if self.settings.game_mode != GameMode.BLIND:
            return False
        player = self._active_player_in_play(player_id)
        if player is None:
            return False
        player.blind_items = list(items)
        player.has_submitted = True
        player.satisfied = True
        return True

    def extend_timer(self, player_id: str, extension_ms: int) -> Optional[int]:
        """
        Spend a player's one extension vote for this round.

        Returns:
            The new deadline, or None if not in timed play, the player is
            unknown, or the player already voted.
        """
        if not self.is_timed_play():
            return None
        player = self.players.get(player_id)
        if player is None or player.voted_more_time:
            return None
        player.voted_more_time = True
        self.timer_ends_at += extension_ms
        return self.timer_ends_at

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def get_state(self, for_player_id: Optional[str] = None) -> dict:
        """
        Get the full room state as seen by one connection.

        While a round is in progress, blind ballots are private: each player
        only sees their own. Once the round is finished every ballot is
        revealed.

        Args:
            for_player_id: The connection that will receive this state.

        Returns:
            Dict suitable for JSON serialization, with camelCase keys.
        """
        reveal_all = self.status in (GameStatus.FINISHED, GameStatus.LOBBY)
        return {
            "status": self.status.value,
            "items": items_to_dicts(self.items),
            "players": {
                pid: player.to_dict(reveal_blind=reveal_all or pid == for_player_id)
                for pid, player in self.players.items()
            },
            "settings": self.settings.to_dict(),
            "timerEndsAt": self.timer_ends_at,
            "debateEndsAt": self.debate_ends_at,
            "finalList": items_to_dicts(self.final_list),
        }
