"""
Telegram Transport - the HTTP layer under a Telegram Bot API client.

Turns a method name, its parameters and optional file uploads into one
HTTP round trip, unwraps the {"ok": ..., "result": ...} envelope and raises
structured errors when Telegram reports a failure.

Basic usage:
    from telegram_transport import Bot, NamedFile

    bot = Bot.from_env()  # Reads TELEGRAM_BOT_TOKEN, calls getMe
    bot.post("sendMessage", {"chat_id": 42, "text": "Hello from Python! 🚀"})
    bot.post("sendPhoto", {"chat_id": 42}, {"photo": NamedFile(open("chart.png", "rb"), "chart.png")})
"""

__version__ = "0.1.0"

from .telegramBot import Bot, User
from .telegramConfig import TelegramConfig
from .telegramErrors import (
    DeadlineExceeded,
    DecodeError,
    NetworkError,
    RateLimited,
    RequestBuildError,
    RequestCancelled,
    RequestError,
    RequestTimeout,
    TelegramAPIError,
)
from .telegramRequest import (
    DEFAULT_API_URL,
    DEFAULT_GET_TIMEOUT,
    DEFAULT_POST_TIMEOUT,
    NamedFile,
    RequestContext,
    Response,
    ResponseParameters,
    Transport,
)
from .telegramTransport import BuiltinHttp, normalize_url

__all__ = [
    "Bot",
    "User",
    "BuiltinHttp",
    "Transport",
    "TelegramConfig",
    "NamedFile",
    "RequestContext",
    "Response",
    "ResponseParameters",
    "normalize_url",
    "DEFAULT_API_URL",
    "DEFAULT_GET_TIMEOUT",
    "DEFAULT_POST_TIMEOUT",
    "TelegramAPIError",
    "RateLimited",
    "RequestError",
    "RequestBuildError",
    "NetworkError",
    "RequestTimeout",
    "RequestCancelled",
    "DeadlineExceeded",
    "DecodeError",
    "__version__",
]
