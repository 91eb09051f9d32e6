"""
Runtime settings, read once at startup from the environment (and .env).

Env:
  DISCORD_TOKEN=...            (BOT_TOKEN also accepted)
  CONFESSION_CHANNEL_ID=...
  LOG_CHANNEL_ID=...
  ADMIN_ROLE_ID=...            (optional; Manage Server always works)
  COOLDOWN_MINUTES=5
  MIN_CONFESSION_LENGTH=10
  MAX_CONFESSION_LENGTH=2000
  STORAGE_PATH=confessions.json
  STRICT_PERSISTENCE=false
  COMMAND_PREFIX=!
  HEALTH_PORT=0                (0 disables the health server)
  LOG_LEVEL=INFO
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import ConfigError

MAX_MESSAGE_LENGTH = 4000  # Discord modal TextInput hard limit

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


def _int(env: Mapping[str, str], name: str, default: Optional[int] = None) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        if default is None:
            raise ConfigError(f"{name} env var is required.")
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}.") from None


def _bool(env: Mapping[str, str], name: str, default: bool = False) -> bool:
    raw = env.get(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}.")


@dataclass(frozen=True)
class Settings:
    token: str
    confession_channel_id: int
    log_channel_id: int
    admin_role_id: int = 0
    cooldown_minutes: int = 5
    min_length: int = 10
    max_length: int = 2000
    storage_path: str = "confessions.json"
    strict_persistence: bool = False
    command_prefix: str = "!"
    health_port: int = 0
    log_level: str = "INFO"

    @property
    def cooldown_seconds(self) -> int:
        return self.cooldown_minutes * 60

    @property
    def log_level_value(self) -> int:
        return logging.getLevelName(self.log_level)

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        if env is None:
            load_dotenv()
            env = os.environ

        token = env.get("DISCORD_TOKEN") or env.get("BOT_TOKEN")
        if not token:
            raise ConfigError("DISCORD_TOKEN env var is required.")

        cooldown_minutes = _int(env, "COOLDOWN_MINUTES", 5)
        if cooldown_minutes < 0:
            raise ConfigError("COOLDOWN_MINUTES must be >= 0.")

        min_length = _int(env, "MIN_CONFESSION_LENGTH", 10)
        max_length = _int(env, "MAX_CONFESSION_LENGTH", 2000)
        max_length = max(10, min(max_length, MAX_MESSAGE_LENGTH))
        if not 1 <= min_length <= max_length:
            raise ConfigError("MIN_CONFESSION_LENGTH must be between 1 and MAX_CONFESSION_LENGTH.")

        health_port = _int(env, "HEALTH_PORT", 0)
        if not 0 <= health_port <= 65535:
            raise ConfigError("HEALTH_PORT must be between 0 and 65535.")

        log_level = (env.get("LOG_LEVEL") or "INFO").strip().upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ConfigError(f"LOG_LEVEL {log_level!r} is not a logging level.")

        return cls(
            token=token,
            confession_channel_id=_int(env, "CONFESSION_CHANNEL_ID"),
            log_channel_id=_int(env, "LOG_CHANNEL_ID"),
            admin_role_id=_int(env, "ADMIN_ROLE_ID", 0),
            cooldown_minutes=cooldown_minutes,
            min_length=min_length,
            max_length=max_length,
            storage_path=env.get("STORAGE_PATH") or "confessions.json",
            strict_persistence=_bool(env, "STRICT_PERSISTENCE", False),
            command_prefix=env.get("COMMAND_PREFIX") or "!",
            health_port=health_port,
            log_level=log_level,
        )
