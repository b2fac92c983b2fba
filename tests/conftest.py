import io
import json
import threading
import time
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest
import requests
from loguru import logger

from telegram_transport import BuiltinHttp

TOKEN = "123456:ABC-DEF"


class CountingStream(io.BytesIO):
    """Response body that tells its session when the connection is handed back."""

    def __init__(self, data, session):
        super().__init__(data)
        self._session = session

    def release_conn(self):
        with self._session.lock:
            self._session.released += 1


class RecordingSession(requests.Session):
    """
    A real requests.Session whose send() never touches the network.

    Queue replies with reply()/fail(), or set ``default_reply`` to answer
    every call the same way. Every prepared request sent is kept in ``sent``
    as ``(prepared_request, send_kwargs)``. Safe to share between threads.
    """

    def __init__(self, default_reply=None):
        super().__init__()
        self.lock = threading.Lock()
        self.sent = []
        self.replies = []
        self.default_reply = default_reply
        self.opened = 0
        self.released = 0
        self.closed = 0

    def reply(self, payload, status=200, stream_factory=None):
        self.replies.append(self._make_reply(payload, status, stream_factory))
        return self

    def fail(self, exc):
        self.replies.append(exc)
        return self

    @staticmethod
    def _make_reply(payload, status=200, stream_factory=None):
        body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        return body, status, stream_factory or CountingStream

    def send(self, request, **kwargs):
        with self.lock:
            self.sent.append((request, kwargs))
            if self.replies:
                reply = self.replies.pop(0)
            else:
                reply = self._make_reply(self.default_reply)
            if not isinstance(reply, Exception):
                self.opened += 1
        if isinstance(reply, Exception):
            raise reply
        body, status, stream_factory = reply
        resp = requests.Response()
        resp.status_code = status
        resp.raw = stream_factory(body, self)
        resp.request = request
        resp.url = request.url
        return resp

    def close(self):
        self.closed += 1
        super().close()

    @property
    def last_request(self):
        return self.sent[-1][0]

    @property
    def last_kwargs(self):
        return self.sent[-1][1]


@pytest.fixture
def session():
    return RecordingSession()


@pytest.fixture
def http(session):
    return BuiltinHttp(TOKEN, session=session)


@pytest.fixture
def log_messages():
    messages = []
    handler_id = logger.add(lambda m: messages.append(str(m)), level="DEBUG", format="{level} {message}")
    yield messages
    logger.remove(handler_id)


# ----------------------------- Local HTTP server -----------------------------

class _TricklingHandler(BaseHTTPRequestHandler):
    """Answers every request with the server's body, one byte every ``byte_delay`` seconds."""

    protocol_version = "HTTP/1.1"

    def do_GET(self):
        self._reply()

    def do_POST(self):
        self.rfile.read(int(self.headers.get("Content-Length") or 0))
        self._reply()

    def _reply(self):
        body = self.server.body
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        try:
            for i in range(len(body)):
                if self.server.stopping.is_set():
                    return
                self.wfile.write(body[i:i + 1])
                self.wfile.flush()
                time.sleep(self.server.byte_delay)
        except OSError:
            # client went away
            return

    def log_message(self, format, *args):
        pass


@pytest.fixture
def local_server():
    """Factory: start a local server, get back its base URL."""
    servers = []

    def start(body=b'{"ok": true, "result": true}', byte_delay=0.0):
        server = ThreadingHTTPServer(("127.0.0.1", 0), _TricklingHandler)
        server.body = body
        server.byte_delay = byte_delay
        server.stopping = threading.Event()
        threading.Thread(target=server.serve_forever, daemon=True).start()
        servers.append(server)
        host, port = server.server_address[:2]
        return f"http://{host}:{port}"

    yield start
    for server in servers:
        server.stopping.set()
        server.shutdown()
        server.server_close()


@pytest.fixture
def live_session():
    session = requests.Session()
    # keep proxy settings from the environment away from 127.0.0.1
    session.trust_env = False
    yield session
    session.close()
