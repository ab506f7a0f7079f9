import pytest

from http_handlers.middleware.tracker import (
    DenialResponseTracker,
    PathSendTracker,
    ResponseTracker,
    WebSocketTracker,
    wrap_send,
)


class RecordingSend:
    def __init__(self, fail_on=None):
        self.messages = []
        self.fail_on = fail_on

    async def __call__(self, message):
        if message["type"] == self.fail_on:
            raise OSError("connection reset")
        self.messages.append(message)


@pytest.mark.asyncio
async def test_nothing_sent_yet():
    tracker = ResponseTracker(RecordingSend())
    assert tracker.status == 0
    assert tracker.size == 0


@pytest.mark.asyncio
async def test_explicit_status_and_sizes():
    send = RecordingSend()
    tracker = ResponseTracker(send)

    start = {"type": "http.response.start", "status": 201, "headers": [(b"x-a", b"1")]}
    await tracker(start)
    await tracker({"type": "http.response.body", "body": b"hello ", "more_body": True})
    await tracker({"type": "http.response.body", "body": b"world"})

    assert tracker.status == 201
    assert tracker.size == 11
    assert send.messages[0] is start
    assert [m.get("body") for m in send.messages[1:]] == [b"hello ", b"world"]


@pytest.mark.asyncio
async def test_first_status_wins():
    tracker = ResponseTracker(RecordingSend())
    await tracker({"type": "http.response.start", "status": 404, "headers": []})
    await tracker({"type": "http.response.start", "status": 500, "headers": []})
    assert tracker.status == 404


@pytest.mark.asyncio
async def test_body_without_start_is_ok():
    tracker = ResponseTracker(RecordingSend())
    await tracker({"type": "http.response.body", "body": b"abc"})
    await tracker({"type": "http.response.start", "status": 500, "headers": []})
    assert tracker.status == 200
    assert tracker.size == 3


@pytest.mark.asyncio
async def test_failed_send_propagates_and_keeps_status():
    tracker = ResponseTracker(RecordingSend(fail_on="http.response.body"))
    with pytest.raises(OSError, match="connection reset"):
        await tracker({"type": "http.response.body", "body": b"abc"})
    assert tracker.status == 200
    assert tracker.size == 0


@pytest.mark.asyncio
async def test_failed_start_still_records_status():
    tracker = ResponseTracker(RecordingSend(fail_on="http.response.start"))
    with pytest.raises(OSError):
        await tracker({"type": "http.response.start", "status": 503, "headers": []})
    assert tracker.status == 503


@pytest.mark.asyncio
async def test_unknown_messages_are_forwarded_untracked():
    send = RecordingSend()
    tracker = ResponseTracker(send)
    trailers = {"type": "http.response.trailers", "headers": [], "more_trailers": False}
    await tracker(trailers)
    assert send.messages == [trailers]
    assert tracker.status == 0
    assert not tracker.supports("http.response.trailers")


@pytest.mark.asyncio
async def test_pathsend_counts_file_size(tmp_path):
    path = tmp_path / "file.txt"
    path.write_bytes(b"x" * 42)
    tracker = PathSendTracker(RecordingSend())
    await tracker({"type": "http.response.start", "status": 200, "headers": []})
    await tracker({"type": "http.response.pathsend", "path": str(path)})
    assert tracker.size == 42


@pytest.mark.asyncio
async def test_websocket_accept_switches_protocols():
    tracker = WebSocketTracker(RecordingSend())
    await tracker({"type": "websocket.accept"})
    await tracker({"type": "websocket.send", "text": "hello"})
    assert tracker.status == 101
    assert tracker.size == 0


@pytest.mark.asyncio
async def test_failed_accept_does_not_switch_protocols():
    tracker = WebSocketTracker(RecordingSend(fail_on="websocket.accept"))
    with pytest.raises(OSError):
        await tracker({"type": "websocket.accept"})
    assert tracker.status == 0


@pytest.mark.asyncio
async def test_denial_response():
    tracker = DenialResponseTracker(RecordingSend())
    await tracker({"type": "websocket.http.response.start", "status": 403, "headers": []})
    await tracker({"type": "websocket.http.response.body", "body": b"denied"})
    assert tracker.status == 403
    assert tracker.size == 6


def test_wrap_send_probes_capabilities():
    send = RecordingSend()

    http = wrap_send({"type": "http"}, send)
    assert type(http) is ResponseTracker
    assert not http.supports("http.response.pathsend")

    pathsend = wrap_send({"type": "http", "extensions": {"http.response.pathsend": {}}}, send)
    assert type(pathsend) is PathSendTracker
    assert pathsend.supports("http.response.pathsend")

    websocket = wrap_send({"type": "websocket"}, send)
    assert type(websocket) is WebSocketTracker
    assert websocket.supports("websocket.accept")
    assert not websocket.supports("websocket.http.response.start")

    denial = wrap_send({"type": "websocket", "extensions": {"websocket.http.response": {}}}, send)
    assert type(denial) is DenialResponseTracker
    assert denial.supports("websocket.http.response.start")
