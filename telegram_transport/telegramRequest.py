"""
Transport contract and the pieces every transport shares.

Anything that can GET and POST a Bot API method satisfies ``Transport``;
``BuiltinHttp`` is the stock implementation, tests and callers may plug in
their own (rate limited, instrumented, recorded...).
"""

from __future__ import annotations

import json
import os
import threading
import time
import typing as t
from dataclasses import dataclass

from telegram_transport.telegramErrors import DeadlineExceeded, RequestCancelled

# Default Telegram API host.
DEFAULT_API_URL = "https://api.telegram.org"
# Seconds allowed for a GET call when no timeout is configured.
DEFAULT_GET_TIMEOUT = 3.0
# Seconds allowed for a POST call when no timeout is configured.
DEFAULT_POST_TIMEOUT = 10.0

Params = t.Mapping[str, t.Any]
Files = t.Union[t.Mapping[str, t.Any], t.Sequence[t.Tuple[str, t.Any]]]


@t.runtime_checkable
class Transport(t.Protocol):
    def set_get_timeout(self, seconds: float | None) -> None: ...

    def set_post_timeout(self, seconds: float | None) -> None: ...

    def get(self, method: str, params: Params | None = None) -> t.Any: ...

    def post(self, method: str, params: Params | None = None, files: Files | None = None) -> t.Any: ...


# ------------------------------ Envelope -------------------------------

@dataclass(frozen=True)
class ResponseParameters:
    """Optional hints attached to a failed response."""

    migrate_to_chat_id: int | None = None
    retry_after: int | None = None
    raw: t.Any = None

    @classmethod
    def from_dict(cls, data: t.Any) -> "ResponseParameters | None":
        if data is None:
            return None
        if not isinstance(data, dict):
            return cls(raw=data)
        return cls(
            migrate_to_chat_id=data.get("migrate_to_chat_id"),
            retry_after=data.get("retry_after"),
            raw=data,
        )


@dataclass(frozen=True)
class Response:
    """
    The envelope wrapping every Bot API answer.

    If ``ok`` is true the payload is in ``result``; otherwise ``error_code``
    and ``description`` explain what went wrong.
    """

    ok: bool
    result: t.Any = None
    error_code: int = 0
    description: str = ""
    parameters: ResponseParameters | None = None

    @classmethod
    def from_json(cls, body: bytes | str) -> "Response":
        """
        Parse a raw response body. Raises ValueError if it is not an envelope.
        """
        data = json.loads(body)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        ok = data.get("ok")
        if not isinstance(ok, bool):
            raise ValueError("missing or non-boolean 'ok' field")
        if ok and "result" not in data:
            raise ValueError("'ok' is true but there is no 'result'")

        error_code = data.get("error_code") or 0
        if not isinstance(error_code, int):
            raise ValueError(f"non-integer 'error_code': {error_code!r}")

        return cls(
            ok=ok,
            result=data.get("result") if ok else None,
            error_code=error_code,
            description=data.get("description") or "",
            parameters=ResponseParameters.from_dict(data.get("parameters")),
        )


# ------------------------------ Attachments -------------------------------

@dataclass(frozen=True)
class NamedFile:
    """
    A file to upload: a binary stream (or bytes) and the name to send it as.

    An empty ``file_name`` is replaced by the form field name on upload.
    """

    file: t.Any
    file_name: str = ""

    @property
    def name(self) -> str:
        return self.file_name

    @classmethod
    def coerce(cls, value: t.Any) -> "NamedFile":
        """Wrap bytes or a file-like object; NamedFile passes through unchanged."""
        if isinstance(value, NamedFile):
            return value
        if isinstance(value, (bytes, bytearray)):
            return cls(file=bytes(value))
        if hasattr(value, "read"):
            name = getattr(value, "name", None)
            return cls(file=value, file_name=os.path.basename(name) if isinstance(name, str) else "")
        raise TypeError(
            f"Unsupported attachment type {type(value).__name__}. Use NamedFile, bytes, or a binary file-like object."
        )

    def as_part(self, field: str) -> tuple[str, t.Any]:
        """The ``(filename, fileobj)`` pair requests expects for one multipart part."""
        return self.file_name or field, self.file


def iter_files(files: Files | None) -> t.Iterator[tuple[str, NamedFile]]:
    """Yield ``(field, NamedFile)`` in the order the caller gave them."""
    if not files:
        return
    items = files.items() if isinstance(files, t.Mapping) else files
    for field, value in items:
        yield field, NamedFile.coerce(value)


# ------------------------------ Deadlines -------------------------------

class RequestContext:
    """
    Deadline and cancellation for one or more calls.

    A context made with a ``parent`` never outlives it: its deadline is the
    earlier of the two, and cancelling the parent cancels the child. Using the
    context as a ``with`` block cancels it on exit.
    """

    def __init__(self, timeout: float | None = None, *, parent: "RequestContext | None" = None) -> None:
        deadline = None if timeout is None else time.monotonic() + timeout
        if parent is not None and parent.deadline is not None:
            deadline = parent.deadline if deadline is None else min(deadline, parent.deadline)
        self.deadline = deadline
        self._parent = parent
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[t.Callable[[], None]] = []

    def cancel(self) -> None:
        with self._lock:
            self._cancelled.set()
            callbacks = list(self._callbacks)
        for callback in callbacks:
            callback()

    def add_cancel_callback(self, callback: t.Callable[[], None]) -> t.Callable[[], None]:
        """
        Run ``callback`` when this context or one of its parents is cancelled.

        Runs it straight away if that already happened. Returns a function
        that unregisters it. The callback may run more than once.
        """
        registered = []
        ctx: RequestContext | None = self
        while ctx is not None:
            with ctx._lock:
                ctx._callbacks.append(callback)
            registered.append(ctx)
            ctx = ctx._parent
        if self.cancelled:
            callback()

        def remove() -> None:
            for owner in registered:
                with owner._lock:
                    if callback in owner._callbacks:
                        owner._callbacks.remove(callback)

        return remove

    @property
    def cancelled(self) -> bool:
        if self._cancelled.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or None when there is no deadline."""
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def check(self, method: str, verb: str) -> float | None:
        """
        Raise if the call may not go on, otherwise return the time left.
        """
        if self.cancelled:
            raise RequestCancelled(method, verb, f"{verb} request to {method} was cancelled")
        remaining = self.remaining()
        if remaining is not None and remaining <= 0:
            raise DeadlineExceeded(method, verb, f"{verb} request to {method} exceeded its deadline")
        return remaining

    def __enter__(self) -> "RequestContext":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.cancel()
