"""HTTP server that receives fault rules for the hooked file system."""

from __future__ import annotations

import logging
import threading
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlsplit

from bladeop.faults import INJECT_PATH, RECOVER_PATH, FaultRegistry, InjectMessage

log = logging.getLogger(__name__)


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"address {address!r} has no port")
    try:
        number = int(port)
    except ValueError as exc:
        raise ValueError(f"invalid port in address {address!r}") from exc
    if not 0 <= number <= 65535:
        raise ValueError(f"port {number} out of range")
    return host.strip("[]"), number


class HookServer:
    """Serves the inject and recover endpoints for a fault registry."""

    def __init__(self, address: str, registry: FaultRegistry | None = None) -> None:
        self.host, self.port = _split_address(address)
        self.registry = registry if registry is not None else FaultRegistry()
        self._httpd: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def handle_inject(self, body: bytes) -> tuple[int, str]:
        """Install the rule carried by a request body; return status and text."""
        try:
            message = InjectMessage.from_json(body)
        except ValueError as exc:
            log.error("cannot decode request message: %s", exc)
            return HTTPStatus.BAD_REQUEST, "Cannot Decode Request Message\n"
        log.info("inject fault: %s", message)
        self.registry.inject(message)
        return HTTPStatus.OK, "success"

    def handle_recover(self) -> tuple[int, str]:
        """Remove all rules of the default hook points; return status and text."""
        log.info("recover all faults")
        self.registry.recover()
        return HTTPStatus.OK, "success"

    @property
    def server_address(self) -> tuple[str, int]:
        """The address the running server is bound to."""
        if self._httpd is None:
            raise RuntimeError("server is not running")
        host, port = self._httpd.server_address[:2]
        return str(host), int(port)

    def start(self) -> tuple[str, int]:
        """Bind and serve in a background thread; return the bound address."""
        if self._httpd is not None:
            raise RuntimeError("server already started")
        httpd = ThreadingHTTPServer((self.host, self.port), _make_handler(self))
        httpd.daemon_threads = True
        thread = threading.Thread(target=httpd.serve_forever, name="hook-server", daemon=True)
        self._httpd, self._thread = httpd, thread
        thread.start()
        return self.server_address

    def stop(self) -> None:
        """Shut the server down and release its socket."""
        httpd, thread = self._httpd, self._thread
        if httpd is None:
            return
        self._httpd = self._thread = None
        httpd.shutdown()
        httpd.server_close()
        if thread is not None:
            thread.join()

    def __enter__(self) -> HookServer:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()


def _make_handler(server: HookServer) -> type[BaseHTTPRequestHandler]:
    class _Handler(BaseHTTPRequestHandler):
        def _read_body(self) -> bytes:
            try:
                length = int(self.headers.get("Content-Length") or 0)
            except ValueError:
                length = 0
            return self.rfile.read(length) if length > 0 else b""

        def _dispatch(self) -> None:
            path = urlsplit(self.path).path
            body = self._read_body()
            if path == INJECT_PATH:
                status, text = server.handle_inject(body)
            elif path == RECOVER_PATH:
                status, text = server.handle_recover()
            else:
                status, text = HTTPStatus.NOT_FOUND, "404 page not found\n"
            payload = text.encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "text/plain; charset=utf-8")
            self.send_header("Content-Length", str(len(payload)))
            self.end_headers()
            self.wfile.write(payload)

        do_GET = _dispatch
        do_POST = _dispatch
        do_PUT = _dispatch
        do_DELETE = _dispatch
        do_PATCH = _dispatch

        def log_message(self, format: str, *args: object) -> None:  # noqa: A002
            log.debug(format, *args)

    return _Handler