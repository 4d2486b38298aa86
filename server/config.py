"""
Centralized configuration for the Mao game server.

Configuration is loaded from (in order of precedence):
1. Environment variables
2. .env file (if exists)
3. Default values

Usage:
    from config import config
    print(config.PORT)
    print(config.game_rules.hand_size)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

env_path = Path(__file__).parent.parent / ".env"
if env_path.exists():
    load_dotenv(env_path)


DEFAULT_CORS_ORIGINS = "http://localhost:3000,http://127.0.0.1:5500"


def get_env(key: str, default: str = "") -> str:
    """Get environment variable with default."""
    return os.environ.get(key, default)


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable."""
    val = os.environ.get(key, "").lower()
    if val in ("true", "1", "yes", "on"):
        return True
    if val in ("false", "0", "no", "off"):
        return False
    return default


def get_env_int(key: str, default: int = 0) -> int:
    """Get integer environment variable."""
    try:
        return int(os.environ.get(key, str(default)))
    except ValueError:
        return default


def get_env_list(key: str, default: str = "") -> list[str]:
    """Get a comma-separated environment variable as a list."""
    raw = os.environ.get(key, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class GameRules:
    """Table rules that the engine enforces mechanically."""
    min_players: int = 2
    max_players: int = 10
    hand_size: int = 4


@dataclass
class ServerConfig:
    """Server configuration."""
    HOST: str = "0.0.0.0"
    PORT: int = 3001
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ENVIRONMENT: str = "development"

    # Room settings
    ROOM_CODE_LENGTH: int = 6
    ROOM_MAX_AGE_HOURS: int = 24
    ROOM_SWEEP_INTERVAL_MINUTES: int = 60

    # Browser origins allowed to talk to the server
    CORS_ORIGINS: list[str] = field(default_factory=list)

    # Error tracking
    SENTRY_DSN: str = ""

    game_rules: GameRules = field(default_factory=GameRules)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """Load configuration from environment variables."""
        return cls(
            HOST=get_env("HOST", "0.0.0.0"),
            PORT=get_env_int("PORT", 3001),
            DEBUG=get_env_bool("DEBUG", False),
            LOG_LEVEL=get_env("LOG_LEVEL", "INFO"),
            ENVIRONMENT=get_env("ENVIRONMENT", "development"),
            ROOM_CODE_LENGTH=get_env_int("ROOM_CODE_LENGTH", 6),
            ROOM_MAX_AGE_HOURS=get_env_int("ROOM_MAX_AGE_HOURS", 24),
            ROOM_SWEEP_INTERVAL_MINUTES=get_env_int("ROOM_SWEEP_INTERVAL_MINUTES", 60),
            CORS_ORIGINS=get_env_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
            SENTRY_DSN=get_env("SENTRY_DSN", ""),
            game_rules=GameRules(
                min_players=get_env_int("MIN_PLAYERS", 2),
                max_players=get_env_int("MAX_PLAYERS_PER_ROOM", 10),
                hand_size=get_env_int("HAND_SIZE", 4),
            ),
        )


# Global config instance - loaded once at module import
config = ServerConfig.from_env()


def reload_config() -> ServerConfig:
    """Reload configuration from environment (useful for testing)."""
    global config
    config = ServerConfig.from_env()
    return config
