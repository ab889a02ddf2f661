"""Compiler configuration and environment loading."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / '.env.storyflow')


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, '')
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class LayoutConfig:
    """Diagram geometry in BPMN pixels."""

    pool_x: int = 160
    pool_y: int = 80
    lane_header_width: int = 30
    column_width: int = 180
    row_height: int = 120
    lane_padding: int = 20
    task_width: int = 100
    task_height: int = 80
    gateway_size: int = 50
    event_size: int = 36

    @classmethod
    def from_env(cls) -> LayoutConfig:
        defaults = cls()
        prefix = 'STORYFLOW_LAYOUT_'
        return cls(**{
            name: _env_int(prefix + name.upper(), getattr(defaults, name))
            for name in cls.__dataclass_fields__
        })


@dataclass(frozen=True)
class ServerConfig:
    """HTTP compile service settings."""

    host: str = '0.0.0.0'
    port: int = 9010
    max_body_bytes: int = 1024 * 1024


@dataclass(frozen=True)
class AppConfig:
    """Root configuration assembled from environment variables."""

    layout: LayoutConfig = field(default_factory=LayoutConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    default_lane: str = 'System'
    executable: bool = True
    log_level: str = 'INFO'

    @classmethod
    def from_env(cls) -> AppConfig:
        """Build configuration from environment variables."""
        return cls(
            layout=LayoutConfig.from_env(),
            server=ServerConfig(
                host=os.getenv('STORYFLOW_HOST', '0.0.0.0'),
                port=_env_int('STORYFLOW_PORT', 9010),
                max_body_bytes=_env_int('STORYFLOW_MAX_BODY_BYTES', 1024 * 1024),
            ),
            default_lane=os.getenv('STORYFLOW_DEFAULT_LANE', 'System') or 'System',
            executable=os.getenv('STORYFLOW_EXECUTABLE', 'true').lower() == 'true',
            log_level=os.getenv('STORYFLOW_LOG_LEVEL', 'INFO').upper(),
        )
