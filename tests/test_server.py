import urllib.error
import urllib.request

import pytest

from bladeop.faults import FaultRegistry, InjectMessage
from bladeop.server import HookServer

_OPENER = urllib.request.build_opener(urllib.request.ProxyHandler({}))


def fetch(url, data=None, method="GET"):
    request = urllib.request.Request(url, data=data, method=method)
    try:
        with _OPENER.open(request, timeout=10) as response:
            return response.status, response.read().decode()
    except urllib.error.HTTPError as exc:
        with exc:
            return exc.code, exc.read().decode()


@pytest.fixture
def running_server():
    server = HookServer("127.0.0.1:0")
    with server:
        host, port = server.server_address
        yield server, f"http://{host}:{port}"


def test_handle_inject_installs_rule():
    server = HookServer(":0")
    message = InjectMessage(methods=["read", "write"], errno=28)
    status, text = server.handle_inject(message.to_json().encode())
    assert (status, text) == (200, "success")
    assert server.registry.get("read") == message
    assert server.registry.get("write") == message


def test_handle_inject_rejects_bad_body():
    server = HookServer(":0")
    status, text = server.handle_inject(b"{broken")
    assert status == 400
    assert text == "Cannot Decode Request Message\n"
    assert server.registry.get("read") is None


def test_handle_recover_clears_rules():
    registry = FaultRegistry()
    registry.inject(InjectMessage(methods=["read"], errno=5))
    server = HookServer(":0", registry)
    assert server.handle_recover() == (200, "success")
    assert registry.get("read") is None


def test_address_parsing():
    server = HookServer(":65534")
    assert (server.host, server.port) == ("", 65534)


@pytest.mark.parametrize("address", ["localhost", "host:port", "host:70000"])
def test_invalid_address(address):
    with pytest.raises(ValueError):
        HookServer(address)


def test_server_address_requires_running_server():
    with pytest.raises(RuntimeError):
        HookServer(":0").server_address


def test_live_inject_and_recover(running_server):
    server, base = running_server
    message = InjectMessage(methods=["open"], path="/data", delay=5)
    assert fetch(base + "/inject", message.to_json().encode(), "POST") == (200, "success")
    assert server.registry.get("open") == message
    server.registry.inject(InjectMessage(methods=["write"], errno=5))
    assert fetch(base + "/recover") == (200, "success")
    assert server.registry.get("write") is None
    assert server.registry.get("open") == message


def test_live_bad_request(running_server):
    _, base = running_server
    status, text = fetch(base + "/inject", b"[", "POST")
    assert status == 400
    assert text == "Cannot Decode Request Message\n"


def test_live_unknown_path(running_server):
    _, base = running_server
    status, _ = fetch(base + "/inject/extra")
    assert status == 404


def test_start_twice_fails(running_server):
    server, _ = running_server
    with pytest.raises(RuntimeError):
        server.start()


def test_stop_releases_server():
    server = HookServer("127.0.0.1:0")
    server.start()
    host, port = server.server_address
    base = f"http://{host}:{port}"
    assert fetch(base + "/recover") == (200, "success")
    server.stop()
    with pytest.raises(RuntimeError):
        server.server_address
    with pytest.raises(urllib.error.URLError):
        fetch(base + "/recover")