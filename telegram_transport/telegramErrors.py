"""
Errors raised by the transport layer.

Two families:

- TelegramAPIError: the API answered with ``ok: false``. Carries the method,
  the parameters that were sent, the error code and description verbatim.
- RequestError: everything else (building the request, the network, the
  deadline, an unreadable response body).
"""

from __future__ import annotations

import types
import typing as t


class TelegramAPIError(Exception):
    """Failure reported by the Telegram API itself."""

    def __init__(
        self,
        method: str,
        params: t.Mapping[str, t.Any] | None,
        code: int,
        description: str,
        parameters: t.Any = None,
    ) -> None:
        params = dict(params or {})
        # All arguments go to args so the error survives pickle and copy.
        super().__init__(method, params, code, description, parameters)
        self.method = method
        self._params = params
        self.code = code
        self.description = description
        self.parameters = parameters

    @property
    def params(self) -> t.Mapping[str, t.Any]:
        """The parameters that were sent, read-only."""
        return types.MappingProxyType(self._params)

    def __str__(self) -> str:
        return f"unable to {self.method}: {self.description}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(method={self.method!r}, code={self.code}, description={self.description!r})"


class RateLimited(TelegramAPIError):
    """Error 429. ``retry_after`` is Telegram's hint in seconds, if it sent one."""

    @property
    def retry_after(self) -> int | None:
        return getattr(self.parameters, "retry_after", None)


class RequestError(Exception):
    """A request that never produced an API answer."""

    def __init__(self, method: str, verb: str, message: str) -> None:
        super().__init__(method, verb, message)
        self.method = method
        self.verb = verb
        self.message = message

    def __str__(self) -> str:
        return self.message


class RequestBuildError(RequestError):
    """The request could not be assembled (bad URL, unreadable attachment)."""


class NetworkError(RequestError):
    """Connection failure or broken transfer."""


class RequestTimeout(NetworkError):
    """The HTTP client gave up waiting for the server."""


class RequestCancelled(NetworkError):
    """The call's RequestContext was cancelled."""


class DeadlineExceeded(RequestTimeout):
    """The call's RequestContext ran out of time."""


class DecodeError(RequestError):
    """The response body is not a Telegram response envelope."""
