"""Client for the fault rule endpoints of a hooked file system."""

from __future__ import annotations

import logging
import urllib.error
import urllib.request
from http import HTTPStatus

from bladeop.faults import INJECT_PATH, RECOVER_PATH, InjectMessage

log = logging.getLogger(__name__)


class HookClientError(Exception):
    """Raised when a request to the hook server fails or is refused."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class HookClient:
    """Sends fault rules to and revokes them from a hook server."""

    def __init__(self, address: str, timeout: float = 30.0) -> None:
        self.address = address
        self.timeout = timeout
        self._opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))

    def _url(self, path: str) -> str:
        return f"http://{self.address}{path}"

    def _send(self, request: urllib.request.Request) -> tuple[int, str]:
        try:
            with self._opener.open(request, timeout=self.timeout) as response:
                return response.status, response.read().decode("utf-8", "replace")
        except urllib.error.HTTPError as exc:
            with exc:
                return exc.code, exc.read().decode("utf-8", "replace")
        except OSError as exc:
            raise HookClientError(f"request to {request.full_url} failed: {exc}") from exc

    def _check(self, status: int, result: str) -> None:
        if status != HTTPStatus.OK:
            raise HookClientError(result, status)

    def inject_fault(self, message: InjectMessage) -> None:
        """Install a fault rule on the server."""
        request = urllib.request.Request(
            self._url(INJECT_PATH),
            data=message.to_json().encode("utf-8"),
            headers={"Content-Type": "application/json"},
            method="POST",
        )
        log.info("inject fault: %s", message)
        status, result = self._send(request)
        log.info("inject fault response: %s", result)
        self._check(status, result)

    def revoke(self) -> None:
        """Remove the fault rules from the server."""
        request = urllib.request.Request(
            self._url(RECOVER_PATH),
            headers={"Content-Type": "application/json"},
            method="GET",
        )
        status, result = self._send(request)
        log.info("revoke fault, response is %s", result)
        self._check(status, result)