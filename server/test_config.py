"""
Tests for environment configuration and structured logging.

Run with: pytest test_config.py -v
"""

import io
import json
import logging

import pytest

from config import ConfigError, ServerConfig, get_env_bool, get_env_int
from logging_config import (
    ContextLogger, DevelopmentFormatter, JSONFormatter,
    message_type_var, room_code_var, setup_logging,
)


class TestServerConfig:

    def test_defaults(self, monkeypatch):
        for key in (
            "PORT", "ROOM_CODE_LENGTH", "MAX_PLAYERS_PER_ROOM", "HOST_SUCCESSION",
            "DEFAULT_FINISH_MODE", "DEFAULT_TIMER_DURATION", "DEFAULT_GAME_MODE",
            "DEFAULT_DEBATE_DURATION", "TIME_EXTENSION_SECONDS", "DEBATE_WARNING_SECONDS",
        ):
            monkeypatch.delenv(key, raising=False)
        cfg = ServerConfig.from_env()
        assert cfg.PORT == 8000
        assert cfg.ROOM_CODE_LENGTH == 6
        assert cfg.MAX_PLAYERS_PER_ROOM == 50
        assert cfg.HOST_SUCCESSION == "non_spectator"
        assert cfg.TIME_EXTENSION_SECONDS == 30
        assert cfg.DEBATE_WARNING_SECONDS == 10
        assert cfg.room_defaults.finish_mode == "consensus"
        assert cfg.room_defaults.game_mode == "classic"
        assert cfg.room_defaults.timer_duration == 60

    def test_room_defaults_from_env(self, monkeypatch):
        monkeypatch.setenv("DEFAULT_FINISH_MODE", "Timed")
        monkeypatch.setenv("DEFAULT_TIMER_DURATION", "45.5")
        monkeypatch.setenv("DEFAULT_GAME_MODE", "blind")
        monkeypatch.setenv("HOST_SUCCESSION", "first")
        cfg = ServerConfig.from_env()
        assert cfg.room_defaults.finish_mode == "timed"
        assert cfg.room_defaults.timer_duration == 45.5
        assert cfg.room_defaults.game_mode == "blind"
        assert cfg.HOST_SUCCESSION == "first"

    @pytest.mark.parametrize("key,value", [
        ("DEFAULT_GAME_MODE", "chaos"),
        ("HOST_SUCCESSION", "oldest"),
        ("DEFAULT_DEBATE_DURATION", "-1"),
        ("DEFAULT_TIMER_DURATION", "soon"),
        ("DEFAULT_TIMER_DURATION", "nan"),
        ("DEFAULT_DEBATE_DURATION", "inf"),
    ])
    def test_invalid_values(self, monkeypatch, key, value):
        monkeypatch.setenv(key, value)
        with pytest.raises(ConfigError):
            ServerConfig.from_env()

    def test_env_helpers(self, monkeypatch):
        monkeypatch.setenv("X_FLAG", "yes")
        monkeypatch.setenv("X_NUM", "twelve")
        assert get_env_bool("X_FLAG") is True
        assert get_env_bool("X_MISSING", True) is True
        assert get_env_int("X_NUM", 7) == 7


def make_record(msg="hello", level=logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord("room", level, __file__, 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLogging:

    def test_json_formatter_includes_context(self):
        token = message_type_var.set("reorder")
        try:
            line = JSONFormatter().format(make_record(room_code="ABCDEF", player_id="c1"))
        finally:
            message_type_var.reset(token)
        data = json.loads(line)
        assert data["message"] == "hello"
        assert data["room_code"] == "ABCDEF"
        assert data["player_id"] == "c1"
        assert data["message_type"] == "reorder"
        assert "source" not in data

    def test_json_formatter_errors_have_source(self):
        data = json.loads(JSONFormatter().format(make_record(level=logging.ERROR)))
        assert "source" in data

    def test_extra_overrides_context_var(self):
        token = room_code_var.set("AAAAAA")
        try:
            line = DevelopmentFormatter().format(make_record(room_code="BBBBBB"))
        finally:
            room_code_var.reset(token)
        assert "room=BBBBBB" in line

    def test_development_formatter_shortens_player(self):
        line = DevelopmentFormatter().format(make_record(player_id="0123456789abcdef"))
        assert "[player=01234567]" in line

    def test_setup_logging_production(self):
        stream = io.StringIO()
        root = logging.getLogger()
        saved = (root.handlers, root.level)
        try:
            setup_logging(level="DEBUG", environment="production", stream=stream)
            ContextLogger(logging.getLogger("test")).with_context(room_code="ZZZZZZ").info("round over")
        finally:
            root.handlers, root.level = saved[0], saved[1]
        entries = [json.loads(line) for line in stream.getvalue().splitlines()]
        assert entries[-1]["message"] == "round over"
        assert entries[-1]["room_code"] == "ZZZZZZ"
