from __future__ import annotations

import os
from dataclasses import dataclass, field

from telegram_transport.telegramRequest import DEFAULT_API_URL


@dataclass(frozen=True)
class TelegramConfig:
    token: str
    api_url: str = DEFAULT_API_URL
    get_timeout: float | None = None        # None -> DEFAULT_GET_TIMEOUT
    post_timeout: float | None = None       # None -> DEFAULT_POST_TIMEOUT
    session_headers: dict[str, str] = field(default_factory=dict)  # optional static headers

    @classmethod
    def from_env(cls, prefix: str = "TELEGRAM_") -> "TelegramConfig":
        """
        Build a config from environment variables.

          {prefix}BOT_TOKEN     -> bot token (required)
          {prefix}API_URL       -> API host, defaults to the public Bot API
          {prefix}GET_TIMEOUT   -> seconds, float
          {prefix}POST_TIMEOUT  -> seconds, float
        """
        token = os.getenv(f"{prefix}BOT_TOKEN")
        if not token:
            raise ValueError(f"Missing bot token. Set {prefix}BOT_TOKEN or pass token=...")

        return cls(
            token=token,
            api_url=os.getenv(f"{prefix}API_URL") or DEFAULT_API_URL,
            get_timeout=_env_seconds(f"{prefix}GET_TIMEOUT"),
            post_timeout=_env_seconds(f"{prefix}POST_TIMEOUT"),
        )


def _env_seconds(name: str) -> float | None:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return None
    try:
        value = float(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be a number of seconds, got {raw!r}") from e
    if value < 0:
        raise ValueError(f"{name} cannot be negative, got {raw!r}")
    return value
