"""
telegramTransport.py

The built-in HTTP transport: one pooled requests.Session, one round trip per
call, no retries.

Basic usage:
  from telegram_transport import BuiltinHttp, NamedFile
  http = BuiltinHttp("123456:ABC-DEF...")
  me = http.get("getMe")
  http.post("sendPhoto", {"chat_id": 42}, {"photo": NamedFile(open("a.png", "rb"), "a.png")})

Parameters always travel in the query string; a POST body only ever carries
files (multipart/form-data). Without files a POST has no body at all and is
sent as application/json.
"""

from __future__ import annotations

import socket
import threading
import typing as t

import requests
from loguru import logger

from telegram_transport.telegramConfig import TelegramConfig
from telegram_transport.telegramErrors import (
    DeadlineExceeded,
    DecodeError,
    NetworkError,
    RateLimited,
    RequestBuildError,
    RequestCancelled,
    RequestTimeout,
    TelegramAPIError,
)
from telegram_transport.telegramRequest import (
    DEFAULT_API_URL,
    DEFAULT_GET_TIMEOUT,
    DEFAULT_POST_TIMEOUT,
    Files,
    Params,
    RequestContext,
    Response,
    iter_files,
)

_CHUNK_SIZE = 64 * 1024


def normalize_url(url: str) -> str:
    """Drop one trailing slash, if there is one. No other validation."""
    return url[:-1] if url.endswith("/") else url


class BuiltinHttp:
    """
    Default Transport implementation on top of requests.

    Safe to share between threads. The only state written after construction
    is the pair of timeouts, and those are plain attribute writes read once
    at the start of each call: a setter racing an in-flight call affects the
    next call, never the running one.
    """

    def __init__(
        self,
        token: str,
        *,
        api_url: str | None = None,
        get_timeout: float | None = None,
        post_timeout: float | None = None,
        session: requests.Session | None = None,
        session_headers: dict[str, str] | None = None,
    ) -> None:
        if not token:
            raise ValueError("Missing bot token. Pass token=...")

        self._token = token
        self._api_url = api_url or DEFAULT_API_URL
        self._get_timeout = _checked_timeout(get_timeout)
        self._post_timeout = _checked_timeout(post_timeout)
        self._session = session or requests.Session()
        if session_headers:
            self._session.headers.update(session_headers)

    @classmethod
    def from_config(cls, config: TelegramConfig, *, session: requests.Session | None = None) -> "BuiltinHttp":
        return cls(
            config.token,
            api_url=config.api_url,
            get_timeout=config.get_timeout,
            post_timeout=config.post_timeout,
            session=session,
            session_headers=config.session_headers,
        )

    # ----------------------------- Configuration -----------------------------

    @property
    def api_url(self) -> str:
        """The API host currently in use, without a trailing slash."""
        return normalize_url(self._api_url)

    def method_endpoint(self, method: str) -> str:
        return f"{self.api_url}/bot{self._token}/{method}"

    @property
    def get_timeout(self) -> float:
        return self._get_timeout or DEFAULT_GET_TIMEOUT

    @property
    def post_timeout(self) -> float:
        return self._post_timeout or DEFAULT_POST_TIMEOUT

    def set_get_timeout(self, seconds: float | None) -> None:
        """Timeout for later GET calls. 0 or None restores the default."""
        self._get_timeout = _checked_timeout(seconds)

    def set_post_timeout(self, seconds: float | None) -> None:
        """Timeout for later POST calls. 0 or None restores the default."""
        self._post_timeout = _checked_timeout(seconds)

    # ----------------------------- Public API -----------------------------

    def get(self, method: str, params: Params | None = None) -> t.Any:
        """
        Call ``method`` with a GET request, bounded by the GET timeout.

        Returns:
            The ``result`` field of the response envelope, decoded from JSON

        Raises:
            TelegramAPIError: The API answered ``ok: false``
            RequestError: Building, sending or decoding the request failed
        """
        return self.get_with_context(RequestContext(self.get_timeout), method, params)

    def get_with_context(self, ctx: RequestContext, method: str, params: Params | None = None) -> t.Any:
        """Like get(), but the deadline and cancellation come from ``ctx``."""
        request = requests.Request("GET", self.method_endpoint(method), params=params)
        return self._call(ctx, "GET", method, params, request)

    def post(self, method: str, params: Params | None = None, files: Files | None = None) -> t.Any:
        """
        Call ``method`` with a POST request, bounded by the POST timeout.

        Args:
            method: Bot API method name, e.g. "sendDocument"
            params: Query string parameters
            files: Field name -> NamedFile (or bytes / binary file-like).
                A mapping or a sequence of pairs; parts are written in that order.

        Returns / Raises:
            As for get().
        """
        return self.post_with_context(RequestContext(self.post_timeout), method, params, files)

    def post_with_context(
        self,
        ctx: RequestContext,
        method: str,
        params: Params | None = None,
        files: Files | None = None,
    ) -> t.Any:
        """Like post(), but the deadline and cancellation come from ``ctx``."""
        try:
            parts = [(field, named.as_part(field)) for field, named in iter_files(files)]
        except (TypeError, ValueError) as e:
            raise RequestBuildError(method, "POST", f"failed to build POST request to {method}: {e}") from e

        url = self.method_endpoint(method)
        if parts:
            request = requests.Request("POST", url, params=params, files=parts)
        else:
            request = requests.Request("POST", url, params=params, headers={"Content-Type": "application/json"})
        return self._call(ctx, "POST", method, params, request)

    def close(self) -> None:
        self._session.close()

    def __enter__(self) -> "BuiltinHttp":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    # --------------------------- Internal helpers -------------------------

    def _call(
        self,
        ctx: RequestContext,
        verb: str,
        method: str,
        params: Params | None,
        request: requests.Request,
    ) -> t.Any:
        try:
            # Files are read here, exactly once.
            prepared = self._session.prepare_request(request)
        except (requests.RequestException, OSError, ValueError) as e:
            raise RequestBuildError(method, verb, self._redact(f"failed to build {verb} request to {method}: {e}")) from e

        timeout = ctx.check(method, verb)
        logger.debug(f"Making {verb} request to {method}")
        try:
            resp = self._session.send(prepared, timeout=timeout, stream=True)
        except requests.Timeout as e:
            logger.error(f"{verb} request to {method} timed out")
            raise RequestTimeout(method, verb, self._redact(f"{verb} request to {method} timed out: {e}")) from e
        except requests.RequestException as e:
            logger.error(f"{verb} request to {method} failed: {type(e).__name__}")
            raise NetworkError(method, verb, self._redact(f"failed to execute {verb} request to {method}: {e}")) from e

        with resp:
            body = self._read_body(ctx, verb, method, resp)

        try:
            envelope = Response.from_json(body)
        except ValueError as e:
            raise DecodeError(
                method, verb, f"failed to decode {verb} request to {method} (HTTP {resp.status_code}): {e}"
            ) from e

        if not envelope.ok:
            raise self._api_error(method, params, envelope)
        return envelope.result

    def _read_body(self, ctx: RequestContext, verb: str, method: str, resp: requests.Response) -> bytes:
        chunks = []
        with _Watchdog(ctx, resp, method) as watchdog:
            try:
                for chunk in resp.iter_content(chunk_size=_CHUNK_SIZE):
                    ctx.check(method, verb)
                    chunks.append(chunk)
            except (requests.RequestException, OSError) as e:
                watchdog.raise_if_fired(verb, e)
                ctx.check(method, verb)
                raise NetworkError(method, verb, self._redact(f"failed to read {verb} response from {method}: {e}")) from e
            # A body cut short by the watchdog can still end without an error.
            watchdog.raise_if_fired(verb)
        return b"".join(chunks)

    @staticmethod
    def _api_error(method: str, params: Params | None, envelope: Response) -> TelegramAPIError:
        if envelope.error_code == 429:
            retry_after = envelope.parameters.retry_after if envelope.parameters else None
            logger.warning(f"Rate limited on {method}, retry after {retry_after}s")
            cls: type[TelegramAPIError] = RateLimited
        else:
            logger.error(f"Telegram API error {envelope.error_code} on {method}: {envelope.description}")
            cls = TelegramAPIError
        return cls(method, params, envelope.error_code, envelope.description, envelope.parameters)

    def _redact(self, text: str) -> str:
        return text.replace(self._token, "<token>")


class _Watchdog:
    """
    Bounds the body read of one call.

    requests only applies its timeout to each socket read, so a server that
    trickles bytes could hold a call open forever. When the context's deadline
    passes, or the context is cancelled, the watchdog shuts the response socket
    down and the blocked read returns at once.
    """

    def __init__(self, ctx: RequestContext, resp: requests.Response, method: str) -> None:
        self._ctx = ctx
        self._resp = resp
        self._method = method
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None
        self._remove_callback: t.Callable[[], None] | None = None
        self.reason: str | None = None

    def __enter__(self) -> "_Watchdog":
        remaining = self._ctx.remaining()
        if remaining is not None:
            self._timer = threading.Timer(remaining, self._fire, args=("deadline",))
            self._timer.daemon = True
            self._timer.start()
        self._remove_callback = self._ctx.add_cancel_callback(lambda: self._fire("cancelled"))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._timer is not None:
            self._timer.cancel()
        if self._remove_callback is not None:
            self._remove_callback()

    def _fire(self, reason: str) -> None:
        with self._lock:
            if self.reason is not None:
                return
            self.reason = reason
        logger.debug(f"Aborting response read for {self._method}: {reason}")
        sock = _response_socket(self._resp)
        if sock is None:
            logger.debug(f"No socket to shut down for {self._method}")
            return
        try:
            # socket.socket.shutdown leaves an SSLSocket's TLS state to the reading thread
            socket.socket.shutdown(sock, socket.SHUT_RDWR)
        except OSError as e:
            # Already closed by the peer.
            logger.debug(f"Socket shutdown for {self._method} failed: {e}")

    def raise_if_fired(self, verb: str, cause: BaseException | None = None) -> None:
        method = self._method
        if self.reason == "deadline":
            raise DeadlineExceeded(method, verb, f"{verb} request to {method} exceeded its deadline") from cause
        if self.reason == "cancelled":
            raise RequestCancelled(method, verb, f"{verb} request to {method} was cancelled") from cause


def _response_socket(resp: requests.Response) -> socket.socket | None:
    """The socket a streamed response is read from, if it can be reached."""
    conn = getattr(resp.raw, "connection", None)
    sock = getattr(conn, "sock", None)
    if sock is None:
        # http.client drops conn.sock on "Connection: close"; the reader keeps it.
        fp = getattr(getattr(resp.raw, "_fp", None), "fp", None)
        sock = getattr(getattr(fp, "raw", None), "_sock", None)
    return sock if isinstance(sock, socket.socket) else None


def _checked_timeout(seconds: float | None) -> float | None:
    if seconds is not None and seconds < 0:
        raise ValueError(f"Timeout cannot be negative, got {seconds}")
    return seconds
