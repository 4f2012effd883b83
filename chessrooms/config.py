"""
Server configuration, read from a YAML file into typed dataclasses.

Every section and key is optional; anything missing falls back to the
defaults below, so an empty file is a valid config.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 8000
    static_dir: str = "./public"   # served at /static when the directory exists

    @property
    def static_path(self) -> Path:
        return Path(self.static_dir)


@dataclass
class ClockConfig:
    default_seconds: int = 600     # per side, used until a room is configured
    tick_interval: float = 1.0     # wall-clock seconds between decrements


@dataclass
class RoomConfig:
    id_length: int = 6             # generated room ids are this many hex chars
    idle_seconds: float = 600.0    # vacant rooms older than this are swept; 0 disables


@dataclass
class LoggingConfig:
    level: str = "INFO"
    file: str = "./logs/chessrooms.log"

    @property
    def file_path(self) -> Path:
        return Path(self.file)


@dataclass
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    clock: ClockConfig = field(default_factory=ClockConfig)
    rooms: RoomConfig = field(default_factory=RoomConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def load_config(path: str | Path = "config.yaml") -> Config:
    """
    Load and validate config.yaml.

    Raises:
        FileNotFoundError: the file is missing.
        ValueError: fields are present but invalid.
    """
    cfg_path = Path(path)
    if not cfg_path.exists():
        raise FileNotFoundError(
            f"Config file not found: {cfg_path.resolve()}\n"
            "Copy config.example.yaml to config.yaml and adjust it."
        )

    with cfg_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}

    try:
        server_raw = raw.get("server") or {}
        clock_raw = raw.get("clock") or {}
        rooms_raw = raw.get("rooms") or {}
        logging_raw = raw.get("logging") or {}

        config = Config(
            server=ServerConfig(
                host=str(server_raw.get("host", "0.0.0.0")),
                port=int(server_raw.get("port", 8000)),
                static_dir=str(server_raw.get("static_dir", "./public")),
            ),
            clock=ClockConfig(
                default_seconds=int(clock_raw.get("default_seconds", 600)),
                tick_interval=float(clock_raw.get("tick_interval", 1.0)),
            ),
            rooms=RoomConfig(
                id_length=int(rooms_raw.get("id_length", 6)),
                idle_seconds=float(rooms_raw.get("idle_seconds", 600.0)),
            ),
            logging=LoggingConfig(
                level=str(logging_raw.get("level", "INFO")).upper(),
                file=str(logging_raw.get("file", "./logs/chessrooms.log")),
            ),
        )
    except (AttributeError, TypeError, ValueError) as exc:
        raise ValueError(f"Invalid config.yaml structure: {exc}") from exc

    _validate(config)
    return config


def load_config_or_default(path: str | Path = "config.yaml", *, required: bool = False) -> Config:
    """Like load_config(), but a missing file yields defaults unless required."""
    if not required and not Path(path).exists():
        return Config()
    return load_config(path)


def _validate(config: Config) -> None:
    if config.clock.default_seconds < 1:
        raise ValueError("clock.default_seconds must be >= 1")
    if config.clock.tick_interval <= 0:
        raise ValueError("clock.tick_interval must be > 0")
    if not 4 <= config.rooms.id_length <= 32:
        raise ValueError(
            f"rooms.id_length must be between 4 and 32, got {config.rooms.id_length}"
        )
    if config.rooms.idle_seconds < 0:
        raise ValueError("rooms.idle_seconds must be >= 0")
    if config.logging.level not in _LOG_LEVELS:
        raise ValueError(
            f"logging.level must be one of {_LOG_LEVELS}, got '{config.logging.level}'"
        )
