import asyncio
import json

import httpx
import pytest

from homecentral.client import ToolStateSync


class FakeToolServer:
    """Minimal stand-in for GET/PUT /api/tools/{tool_key} with revision checks."""

    def __init__(self, payload=None, revision=0):
        self.payload = payload
        self.revision = revision
        self.puts = []
        self.offline = False

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.offline:
            raise httpx.ConnectError("offline", request=request)
        if request.method == "GET":
            return httpx.Response(200, json={"payload": self.payload, "revision": self.revision})

        body = json.loads(request.content)
        self.puts.append(body)
        base = body.get("baseRevision")
        if base is not None and base != self.revision:
            return httpx.Response(
                409,
                json={
                    "detail": "Tool state was changed by someone else",
                    "error": {"code": "E4091", "message": "conflict", "request_id": None},
                    "current": {"payload": self.payload, "revision": self.revision},
                },
            )
        self.payload = body["payload"]
        self.revision += 1
        return httpx.Response(200, json={"payload": self.payload, "revision": self.revision})


def _sync(server, tmp_path, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(server.handler), base_url="http://api.test")
    return ToolStateSync(
        client,
        project_id="proj1",
        tool_key="punchlist",
        default_state={"items": []},
        cache_dir=tmp_path,
        debounce_seconds=0.01,
        **kwargs,
    )


def _add_item(title):
    def apply(state):
        state["items"].append({"title": title})
        return state

    return apply


@pytest.mark.asyncio
async def test_load_prefers_server_state(tmp_path):
    server = FakeToolServer(payload={"items": [{"title": "server"}]}, revision=4)
    sync = _sync(server, tmp_path)

    state = await sync.load()
    assert state == {"items": [{"title": "server"}]}
    assert sync.revision == 4
    assert sync.is_loaded is True
    assert json.loads(sync.cache_path.read_text())["payload"] == state
    await sync.close()


@pytest.mark.asyncio
async def test_load_falls_back_to_cache_when_server_empty(tmp_path):
    server = FakeToolServer()
    first = _sync(server, tmp_path)
    await first.load()
    first.update(_add_item("offline draft"))
    server.offline = True
    await first.flush()
    assert first.is_dirty is True
    assert first.last_error is not None

    server.offline = False
    second = _sync(server, tmp_path)
    state = await second.load()
    assert state == {"items": [{"title": "offline draft"}]}
    assert second.is_dirty is True

    await second.flush()
    assert server.payload == {"items": [{"title": "offline draft"}]}
    assert second.is_dirty is False
    await first.close()
    await second.close()


@pytest.mark.asyncio
async def test_updates_are_debounced_into_one_push(tmp_path):
    server = FakeToolServer()
    sync = _sync(server, tmp_path)
    await sync.load()

    sync.update(_add_item("a"))
    sync.update(_add_item("b"))
    sync.update(_add_item("c"))
    await asyncio.sleep(0.1)

    assert len(server.puts) == 1
    assert server.puts[0]["baseRevision"] == 0
    assert server.puts[0]["projectId"] == "proj1"
    assert [i["title"] for i in server.payload["items"]] == ["a", "b", "c"]
    assert sync.revision == 1
    assert sync.is_dirty is False
    await sync.close()


@pytest.mark.asyncio
async def test_conflict_keeps_server_state_and_reports(tmp_path):
    server = FakeToolServer(payload={"items": []}, revision=1)
    conflicts = []
    sync = _sync(server, tmp_path, on_conflict=lambda local, remote: conflicts.append((local, remote)))
    await sync.load()

    # Someone else writes in the meantime.
    server.payload = {"items": [{"title": "theirs"}]}
    server.revision = 2

    sync.update(_add_item("mine"))
    await sync.flush()

    assert sync.state == {"items": [{"title": "theirs"}]}
    assert sync.revision == 2
    assert sync.last_conflict["local"] == {"items": [{"title": "mine"}]}
    assert conflicts == [({"items": [{"title": "mine"}]}, {"items": [{"title": "theirs"}]})]
    assert sync.is_dirty is False
    await sync.close()


@pytest.mark.asyncio
async def test_async_conflict_callback_is_awaited(tmp_path):
    server = FakeToolServer(payload={"items": []}, revision=3)
    seen = []

    async def on_conflict(local, remote):
        seen.append(remote)

    sync = _sync(server, tmp_path, on_conflict=on_conflict)
    await sync.load()
    server.revision = 5
    sync.update(_add_item("x"))
    await sync.flush()
    assert seen == [{"items": []}]
    await sync.close()


@pytest.mark.asyncio
async def test_cache_is_scoped_per_project_and_tool(tmp_path):
    server = FakeToolServer()
    a = _sync(server, tmp_path)
    client = httpx.AsyncClient(transport=httpx.MockTransport(server.handler), base_url="http://api.test")
    b = ToolStateSync(client, "proj2", "punchlist", {"items": []}, tmp_path)
    assert a.cache_path != b.cache_path
    await a.close()
    await b.close()


def _client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api.test")


@pytest.mark.asyncio
async def test_update_during_rejected_push_is_reported_not_lost(tmp_path):
    entered = asyncio.Event()
    release = asyncio.Event()
    puts = []

    async def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json={"payload": {"items": []}, "revision": 1})
        puts.append(json.loads(request.content))
        entered.set()
        await release.wait()
        return httpx.Response(
            409,
            json={"error": {"code": "E4091"}, "current": {"payload": {"items": [{"title": "other"}]}, "revision": 2}},
        )

    conflicts = []
    sync = ToolStateSync(
        _client(handler), "proj1", "punchlist", {"items": []}, tmp_path,
        debounce_seconds=0.01, on_conflict=lambda local, remote: conflicts.append(local),
    )
    await sync.load()

    sync.update(_add_item("first"))
    in_flight = asyncio.create_task(sync.flush())
    await entered.wait()
    sync.update(_add_item("second"))
    release.set()
    await in_flight
    await asyncio.sleep(0.05)

    assert len(puts) == 1
    assert puts[0]["payload"] == {"items": [{"title": "first"}]}
    assert sync.state == {"items": [{"title": "other"}]}
    assert sync.revision == 2
    latest_local = {"items": [{"title": "first"}, {"title": "second"}]}
    assert sync.last_conflict == {"local": latest_local, "server": {"items": [{"title": "other"}]}}
    assert conflicts == [latest_local]
    await sync.close()


@pytest.mark.asyncio
async def test_non_json_success_keeps_state_dirty(tmp_path):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            return httpx.Response(200, json={"payload": None, "revision": 0})
        return httpx.Response(200, content=b"<html>maintenance</html>", headers={"content-type": "text/html"})

    sync = ToolStateSync(_client(handler), "proj1", "punchlist", {"items": []}, tmp_path, debounce_seconds=0.01)
    await sync.load()

    sync.update(_add_item("draft"))
    pending = sync._pending
    await asyncio.sleep(0.1)

    assert pending.done()
    assert pending.exception() is None
    assert sync.is_dirty is True
    assert sync.last_error == "push failed: JSONDecodeError"
    assert sync.state == {"items": [{"title": "draft"}]}

    await sync.flush()
    assert sync.is_dirty is True
    await sync.close()


@pytest.mark.asyncio
async def test_failing_conflict_callback_does_not_escape(tmp_path):
    server = FakeToolServer(payload={"items": []}, revision=1)

    def on_conflict(local, remote):
        raise RuntimeError("merge UI crashed")

    sync = _sync(server, tmp_path, on_conflict=on_conflict)
    await sync.load()
    server.revision = 2

    sync.update(_add_item("mine"))
    pending = sync._pending
    await asyncio.sleep(0.1)

    assert pending.exception() is None
    assert sync.state == {"items": []}
    assert sync.revision == 2
    assert sync.last_conflict["local"] == {"items": [{"title": "mine"}]}
    await sync.close()
