import io
import json

import pytest

from telegram_transport import (
    DeadlineExceeded,
    NamedFile,
    RequestCancelled,
    RequestContext,
    Response,
    ResponseParameters,
)


# ----------------------------- Envelope -----------------------------

def test_ok_envelope_keeps_result():
    envelope = Response.from_json(b'{"ok": true, "result": {"id": 1, "is_bot": true}}')

    assert envelope.ok is True
    assert envelope.result == {"id": 1, "is_bot": True}
    assert envelope.error_code == 0
    assert envelope.parameters is None


@pytest.mark.parametrize("result", [True, 0, "", [], None])
def test_ok_envelope_keeps_falsy_results(result):
    envelope = Response.from_json(json.dumps({"ok": True, "result": result}))

    assert envelope.result == result


def test_error_envelope_with_parameters():
    envelope = Response.from_json(
        '{"ok": false, "error_code": 400, "description": "Bad Request: group chat was upgraded",'
        ' "parameters": {"migrate_to_chat_id": -1001234}}'
    )

    assert envelope.ok is False
    assert envelope.result is None
    assert envelope.error_code == 400
    assert envelope.description == "Bad Request: group chat was upgraded"
    assert envelope.parameters.migrate_to_chat_id == -1001234
    assert envelope.parameters.retry_after is None


def test_error_envelope_ignores_stray_result():
    envelope = Response.from_json('{"ok": false, "result": 1, "error_code": 500, "description": "x"}')
    assert envelope.result is None


@pytest.mark.parametrize(
    "body",
    [
        b"",
        b"<html></html>",
        b"[1, 2]",
        b'{"result": 1}',
        b'{"ok": "yes", "result": 1}',
        b'{"ok": true}',
        b'{"ok": false, "error_code": "bad"}',
    ],
)
def test_malformed_envelopes_raise_value_error(body):
    with pytest.raises(ValueError):
        Response.from_json(body)


def test_non_dict_parameters_are_kept_raw():
    params = ResponseParameters.from_dict([1, 2])
    assert params.raw == [1, 2]
    assert params.retry_after is None


# ----------------------------- NamedFile -----------------------------

def test_named_file_name_falls_back_to_field():
    assert NamedFile(b"x").as_part("photo") == ("photo", b"x")
    assert NamedFile(b"x", "a.png").as_part("photo") == ("a.png", b"x")
    assert NamedFile(b"x", "a.png").name == "a.png"


def test_coerce_passes_named_file_through():
    named = NamedFile(b"x", "a.png")
    assert NamedFile.coerce(named) is named


def test_coerce_bytes_and_streams():
    assert NamedFile.coerce(bytearray(b"ab")) == NamedFile(b"ab")

    stream = io.BytesIO(b"cd")
    assert NamedFile.coerce(stream) == NamedFile(stream, "")

    stream.name = "/tmp/some/dir/photo.jpg"
    assert NamedFile.coerce(stream).file_name == "photo.jpg"


def test_coerce_rejects_other_types():
    with pytest.raises(TypeError):
        NamedFile.coerce(3.14)


# ----------------------------- RequestContext -----------------------------

def test_context_without_timeout_has_no_deadline():
    ctx = RequestContext()
    assert ctx.deadline is None
    assert ctx.remaining() is None
    assert ctx.check("getMe", "GET") is None


def test_context_remaining_counts_down():
    ctx = RequestContext(10)
    remaining = ctx.check("getMe", "GET")
    assert 0 < remaining <= 10


def test_child_context_uses_earliest_deadline():
    parent = RequestContext(1)
    assert RequestContext(30, parent=parent).deadline == parent.deadline
    assert RequestContext(parent=parent).deadline == parent.deadline

    child = RequestContext(0.5, parent=parent)
    assert child.deadline < parent.deadline


def test_cancelling_parent_cancels_child_only_downwards():
    parent = RequestContext()
    child = RequestContext(5, parent=parent)

    child.cancel()
    assert child.cancelled
    assert not parent.cancelled

    other = RequestContext(parent=parent)
    parent.cancel()
    assert other.cancelled
    with pytest.raises(RequestCancelled):
        other.check("getMe", "GET")


def test_expired_context_raises_deadline_exceeded():
    with pytest.raises(DeadlineExceeded) as exc_info:
        RequestContext(0).check("sendMessage", "POST")

    assert exc_info.value.method == "sendMessage"
    assert exc_info.value.verb == "POST"


def test_context_manager_cancels_on_exit():
    with RequestContext(5) as ctx:
        assert not ctx.cancelled
    assert ctx.cancelled


def test_cancel_callbacks_run_for_own_and_parent_cancel():
    parent = RequestContext()
    child = RequestContext(5, parent=parent)
    calls = []

    remove = child.add_cancel_callback(lambda: calls.append("child"))
    parent.cancel()
    assert calls == ["child"]

    remove()
    child.cancel()
    assert calls == ["child"]


def test_cancel_callback_runs_at_once_on_cancelled_context():
    ctx = RequestContext()
    ctx.cancel()
    calls = []

    ctx.add_cancel_callback(lambda: calls.append(True))

    assert calls == [True]


def test_removed_cancel_callback_does_not_run():
    ctx = RequestContext()
    calls = []

    ctx.add_cancel_callback(lambda: calls.append(True))()
    ctx.cancel()

    assert calls == []
