import asyncio

import pytest
from fastapi.testclient import TestClient

from main import create_app
from models import BroadcastHub
from utilities import PUBLIC_DIR, Settings


@pytest.fixture
def hub():
    return BroadcastHub()


@pytest.fixture
def client(hub):
    with TestClient(create_app(hub=hub)) as c:
        yield c


def test_echo(client):
    r = client.get("/echo", params={"input": "abc"})
    assert r.status_code == 200
    assert r.json() == {"normal": "abc", "shouty": "ABC", "charCount": 3, "backwards": "cba"}


def test_echo_defaults_to_empty(client):
    assert client.get("/echo").json() == {"normal": "", "shouty": "", "charCount": 0, "backwards": ""}


def test_canned_responses(client):
    assert client.get("/json").json() == {"text": "hi", "numbers": [1, 2, 3]}
    r = client.get("/text")
    assert r.text == "hi" and r.headers["content-type"].startswith("text/plain")


def test_chat_page_and_static_files(client):
    r = client.get("/")
    assert r.status_code == 200 and "/chat.js" in r.text
    r = client.get("/chat.js")
    assert r.status_code == 200 and "EventSource" in r.text


def test_not_found_is_plain_text(client):
    r = client.get("/no/such/page")
    assert r.status_code == 404
    assert r.text == "Not Found"


def test_get_chat_publishes(client, hub):
    sub = hub.subscribe()
    r = client.get("/chat", params={"message": "hello"})
    assert r.status_code == 200 and r.text == ""
    assert sub.queue.get_nowait() == "hello"


def test_post_chat_reports_delivery(client, hub):
    hub.subscribe()
    hub.subscribe()
    r = client.post("/chat", json={"message": "hi all"})
    assert r.status_code == 200
    assert r.json() == {"delivered": 2}


def test_post_chat_requires_message(client):
    assert client.post("/chat", json={}).status_code == 422


def test_health_and_stats(client, hub):
    hub.subscribe()
    client.get("/chat", params={"message": "one"})
    health = client.get("/health").json()
    assert health["subscribers"] == 1 and health["uptime_sec"] >= 0
    assert client.get("/stats").json() == {"subscribers": 1, "messages": 1, "dropped": 0}


def test_websocket_stream(client, hub):
    with client.websocket_connect("/ws") as ws:
        assert hub.subscriber_count == 1
        client.get("/chat", params={"message": "x"})
        client.get("/chat", params={"message": "y"})
        assert ws.receive_text() == "x"
        assert ws.receive_text() == "y"


@pytest.mark.asyncio
async def test_sse_handshake(hub):
    app = create_app(hub=hub)
    route = next(r for r in app.routes if getattr(r, "path", None) == "/sse")
    response = await route.endpoint(hub=hub)
    assert response.media_type == "text/event-stream"
    assert response.headers["cache-control"] == "no-cache"
    assert response.headers["connection"] == "keep-alive"
    await response.body_iterator.aclose()
    # never iterated, so never subscribed
    assert hub.subscriber_count == 0


def test_unmatched_methods_are_not_found(client):
    for r in (client.post("/nowhere"), client.delete("/chat.js"), client.put("/echo")):
        assert r.status_code == 404
        assert r.text == "Not Found"


def test_public_files_live_in_a_package():
    assert PUBLIC_DIR.parent.name == "utilities"
    assert (PUBLIC_DIR / "chat.html").is_file()
    assert (PUBLIC_DIR / "chat.js").is_file()


def test_post_chat_does_not_count_full_queues():
    hub = BroadcastHub(queue_size=1)
    hub.subscribe()
    with TestClient(create_app(hub=hub)) as c:
        assert c.post("/chat", json={"message": "first"}).json() == {"delivered": 1}
        assert c.post("/chat", json={"message": "second"}).json() == {"delivered": 0}
    assert hub.messages_dropped == 1


@pytest.mark.asyncio
async def test_sse_stream_delivers_framed_event(hub):
    app = create_app(Settings(heartbeat_interval=0), hub=hub)
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": "GET",
        "scheme": "http",
        "path": "/sse",
        "raw_path": b"/sse",
        "root_path": "",
        "query_string": b"",
        "headers": [(b"host", b"testserver")],
        "client": ("testclient", 50000),
        "server": ("testserver", 80),
    }
    sent = []
    disconnected = asyncio.Event()

    async def receive():
        await disconnected.wait()
        return {"type": "http.disconnect"}

    async def send(message):
        sent.append(message)
        # hang up as soon as the first event reaches the wire
        if message["type"] == "http.response.body" and message.get("body"):
            disconnected.set()

    task = asyncio.create_task(app(scope, receive, send))
    for _ in range(100):
        if hub.subscriber_count == 1:
            break
        await asyncio.sleep(0.01)
    assert hub.subscriber_count == 1

    assert await asyncio.to_thread(hub.publish, "hello") == 1
    await asyncio.wait_for(task, timeout=2)

    start = sent[0]
    assert start["type"] == "http.response.start" and start["status"] == 200
    headers = dict(start["headers"])
    assert headers[b"content-type"].startswith(b"text/event-stream")
    body = b"".join(m.get("body", b"") for m in sent if m["type"] == "http.response.body")
    assert body == b"data: hello\n\n"
    assert hub.subscriber_count == 0
