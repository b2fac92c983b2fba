"""
telegramBot.py

The Bot session: a transport plus the bot's own identity.

  bot = Bot("123456:ABC-DEF...")      # calls getMe, raises if it fails
  bot.username                        # -> "my_bot"
  bot.post("sendMessage", {"chat_id": 42, "text": "hi"})

A Bot only exists once getMe has succeeded.
"""

from __future__ import annotations

import typing as t
from dataclasses import dataclass

import requests
from loguru import logger

from telegram_transport.telegramConfig import TelegramConfig
from telegram_transport.telegramRequest import Files, Params, Transport
from telegram_transport.telegramTransport import BuiltinHttp


@dataclass(frozen=True)
class User:
    id: int
    is_bot: bool
    first_name: str
    last_name: str | None = None
    username: str | None = None
    language_code: str | None = None
    can_join_groups: bool | None = None
    can_read_all_group_messages: bool | None = None
    supports_inline_queries: bool | None = None

    @classmethod
    def from_dict(cls, data: t.Mapping[str, t.Any]) -> "User":
        if not isinstance(data, t.Mapping):
            raise TypeError(f"Expected a User object, got {type(data).__name__}")
        return cls(
            id=data["id"],
            is_bot=data["is_bot"],
            first_name=data["first_name"],
            last_name=data.get("last_name"),
            username=data.get("username"),
            language_code=data.get("language_code"),
            can_join_groups=data.get("can_join_groups"),
            can_read_all_group_messages=data.get("can_read_all_group_messages"),
            supports_inline_queries=data.get("supports_inline_queries"),
        )


class Bot:
    """
    A connected bot.

    - Builds a BuiltinHttp transport unless ``request`` supplies another Transport.
    - Fetches its own User with getMe before the constructor returns.
    """

    def __init__(
        self,
        token: str,
        *,
        api_url: str | None = None,
        get_timeout: float | None = None,
        post_timeout: float | None = None,
        request: Transport | None = None,
        session: requests.Session | None = None,
    ) -> None:
        owns_request = request is None
        if owns_request:
            request = BuiltinHttp(
                token,
                api_url=api_url,
                get_timeout=get_timeout,
                post_timeout=post_timeout,
                session=session,
            )
        elif not isinstance(request, Transport):
            raise TypeError(f"{type(request).__name__} does not implement the Transport interface")

        self.token = token
        self.request: Transport = request
        try:
            self.user: User = self.get_me()
        except Exception:
            if owns_request:
                self.close()
            raise
        logger.info(f"Connected as @{self.user.username} (id {self.user.id})")

    @classmethod
    def from_config(cls, config: TelegramConfig, **kwargs: t.Any) -> "Bot":
        if "request" in kwargs:
            return cls(config.token, **kwargs)

        request = BuiltinHttp.from_config(config, session=kwargs.pop("session", None))
        try:
            return cls(config.token, request=request, **kwargs)
        except Exception:
            request.close()
            raise

    @classmethod
    def from_env(cls, **kwargs: t.Any) -> "Bot":
        """Reads TELEGRAM_BOT_TOKEN and friends, see TelegramConfig.from_env."""
        return cls.from_config(TelegramConfig.from_env(), **kwargs)

    # ----------------------------- Identity -----------------------------

    @property
    def id(self) -> int:
        return self.user.id

    @property
    def username(self) -> str | None:
        return self.user.username

    @property
    def first_name(self) -> str:
        return self.user.first_name

    def get_me(self) -> User:
        return User.from_dict(self.request.get("getMe"))

    # ----------------------------- Raw calls -----------------------------

    def get(self, method: str, params: Params | None = None) -> t.Any:
        return self.request.get(method, params)

    def post(self, method: str, params: Params | None = None, files: Files | None = None) -> t.Any:
        return self.request.post(method, params, files)

    def close(self) -> None:
        close = getattr(self.request, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "Bot":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Bot(id={self.user.id}, username={self.user.username!r})"
