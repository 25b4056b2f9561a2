"""
Centralized configuration for the ListUp server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file next to the server/ directory, if present
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.room_defaults.timer_duration)
"""

import math
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)

FINISH_MODES = ("consensus", "timed")
GAME_MODES = ("classic", "debate", "blind")
HOST_SUCCESSIONS = ("non_spectator", "first")


class ConfigError(ValueError):
    """An environment variable holds a value the server cannot run with."""


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Integer variable; unparsable values fall back to the default."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def get_env_seconds(key: str, default: float) -> float:
    """
    A positive duration in seconds.

    Raises:
        ConfigError: If the value is not a positive number.
    """
    raw = os.environ.get(key)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ConfigError(f"{key} must be a number of seconds, got {raw!r}") from None
    if not math.isfinite(value) or value <= 0:
        raise ConfigError(f"{key} must be a positive, finite number of seconds, got {raw!r}")
    return value


def get_env_choice(key: str, choices: tuple[str, ...], default: str) -> str:
    """
    One of a fixed set of lower-case values.

    Raises:
        ConfigError: If the value is not one of choices.
    """
    value = os.environ.get(key, default).strip().lower()
    if value not in choices:
        raise ConfigError(f"{key} must be one of {', '.join(choices)}, got {value!r}")
    return value


@dataclass
class RoomDefaults:
    """Settings a freshly opened room starts with. Durations are in seconds."""
    finish_mode: str = "consensus"
    timer_duration: float = 60
    game_mode: str = "classic"
    debate_duration: float = 60


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"
    SENTRY_DSN: str = ""

    # Community pack store; the packs API answers 503 without it
    POSTGRES_URL: str = ""

    # Rooms
    ROOM_CODE_LENGTH: int = 6
    MAX_PLAYERS_PER_ROOM: int = 50
    HOST_SUCCESSION: str = "non_spectator"

    # Timers (seconds)
    TIME_EXTENSION_SECONDS: int = 30
    DEBATE_WARNING_SECONDS: int = 10

    room_defaults: RoomDefaults = field(default_factory=RoomDefaults)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Load configuration from environment variables.

        Raises:
            ConfigError: If a mode, succession rule or duration is invalid.
        """
        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 8000),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            SENTRY_DSN=get_env("SENTRY_DSN", ""),
            POSTGRES_URL=get_env("POSTGRES_URL", ""),
            ROOM_CODE_LENGTH=max(4, get_env_int("ROOM_CODE_LENGTH", 6)),
            MAX_PLAYERS_PER_ROOM=max(1, get_env_int("MAX_PLAYERS_PER_ROOM", 50)),
            HOST_SUCCESSION=get_env_choice("HOST_SUCCESSION", HOST_SUCCESSIONS, "non_spectator"),
            TIME_EXTENSION_SECONDS=get_env_int("TIME_EXTENSION_SECONDS", 30),
            DEBATE_WARNING_SECONDS=get_env_int("DEBATE_WARNING_SECONDS", 10),
            room_defaults=RoomDefaults(
                finish_mode=get_env_choice("DEFAULT_FINISH_MODE", FINISH_MODES, "consensus"),
                timer_duration=get_env_seconds("DEFAULT_TIMER_DURATION", 60),
                game_mode=get_env_choice("DEFAULT_GAME_MODE", GAME_MODES, "classic"),
                debate_duration=get_env_seconds("DEFAULT_DEBATE_DURATION", 60),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
