import httpx
import pytest

from client.relay import CredentialsRejected, RelayClient, RelayClientError, clamp_text
from client.sessions import DeviceSession, ThreadView, WebSession
from scripts.relay_cli import build_parser, run


@pytest.fixture
def relay_client(app):
    return RelayClient("http://relay.test", transport=httpx.ASGITransport(app=app))


@pytest.mark.asyncio
async def test_device_and_web_sessions_exchange(relay_client):
    dev = DeviceSession(relay_client)
    reg = await dev.register(name="Pico")
    assert dev.paired
    assert dev.thread_id == reg["thread_id"]

    web = WebSession(relay_client, reg["thread_id"], reg["pair_code"])
    await dev.say("hi")
    new = await web.sync()
    assert [(m["from"], m["text"]) for m in new] == [("device", "hi")]

    await web.say("hey")
    new = await dev.sync()
    assert [m["text"] for m in new] == ["hi", "hey"]
    assert dev.view.latest == 2

    assert [m["text"] for m in await web.sync()] == ["hey"]

    # nothing new: cursor stays, no duplicates
    assert await dev.sync() == []
    assert await web.sync() == []
    assert web.view.latest == 2


@pytest.mark.asyncio
async def test_sync_drains_backlog_past_page_cap(relay_client):
    dev = DeviceSession(relay_client, keep=3)
    reg = await dev.register("pico-drain")
    web = WebSession(relay_client, reg["thread_id"], reg["pair_code"])
    for i in range(7):
        await web.say(f"w{i}")

    new = await dev.sync()   # device pages are 3 long: 3 + 3 + 1
    assert [m["msg_id"] for m in new] == list(range(1, 8))
    assert dev.view.latest == 7
    assert [m["msg_id"] for m in dev.view.messages] == [5, 6, 7]


@pytest.mark.asyncio
async def test_rotation_drops_web_credentials(relay_client):
    dev = DeviceSession(relay_client)
    reg = await dev.register("pico-rotate")
    web = WebSession(relay_client, reg["thread_id"], reg["pair_code"])
    await web.sync()

    await dev.register()   # same device_id, fresh pair code
    with pytest.raises(CredentialsRejected):
        await web.sync()
    assert not web.paired
    assert web.view.latest == 0


@pytest.mark.asyncio
async def test_bad_request_is_not_a_credential_problem(relay_client):
    reg = await relay_client.register("pico-400")
    with pytest.raises(RelayClientError) as exc:
        await relay_client.send(reg["token"], "")
    assert not isinstance(exc.value, CredentialsRejected)
    assert exc.value.status_code == 400
    assert exc.value.error == "BAD_REQUEST"


@pytest.mark.asyncio
async def test_healthz(relay_client):
    assert (await relay_client.healthz())["ok"] is True


def test_thread_view_merges_by_id():
    view = ThreadView()
    page = {"msgs": [{"msg_id": 1, "from": "web", "text": "a", "ts": 1}], "latest": 1}
    assert len(view.apply(page)) == 1
    assert view.apply(page) == []   # retried pull
    assert view.latest == 1
    assert len(view.messages) == 1

    # an empty page never moves the cursor backwards
    view.apply({"msgs": [], "latest": 0})
    assert view.latest == 1


def test_clamp_text():
    assert clamp_text("a\r\nb") == "a\nb"
    assert len(clamp_text("x" * 300)) == 280
    assert clamp_text("short") == "short"


@pytest.mark.asyncio
async def test_cli_device_then_web(relay_client, capsys):
    args = build_parser().parse_args(["device", "--device-id", "pico-cli", "--say", "hello", "--polls", "1"])
    assert await run(args, relay_client) == 0
    out = capsys.readouterr().out
    assert "pair_code=" in out
    assert "hello" in out

    # server log events share stdout with the CLI here
    line = next(ln for ln in out.splitlines() if ln.startswith("device_id="))
    fields = dict(part.split("=", 1) for part in line.split())
    args = build_parser().parse_args(["web", fields["thread_id"], fields["pair_code"], "--say", "back"])
    assert await run(args, relay_client) == 0
    assert "back" in capsys.readouterr().out

    args = build_parser().parse_args(["web", fields["thread_id"], "000000"])
    assert await run(args, relay_client) == 2
