"""Fault rules for file-system operations and the hook that applies them."""

from __future__ import annotations

import json
import logging
import os
import posixpath
import random as _random
import threading
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Protocol

log = logging.getLogger(__name__)

INJECT_PATH = "/inject"
RECOVER_PATH = "/recover"

# Hook points whose faults are cleared by a recover request.
DEFAULT_HOOK_POINTS = (
    "read",
    "write",
    "mkdir",
    "rmdir",
    "opendir",
    "fsync",
    "flush",
    "release",
    "truncate",
    "getattr",
    "chown",
    "utimens",
    "allocate",
    "getlk",
    "setlk",
    "setlkw",
    "statfs",
    "readlink",
    "symlink",
    "create",
    "access",
    "link",
    "mknod",
    "rename",
    "unlink",
    "getxattr",
    "listxattr",
    "removexattr",
    "setxattr",
)

# Every operation the hook intercepts; "open" and "chmod" are not cleared by recover.
HOOKED_METHODS = frozenset(DEFAULT_HOOK_POINTS) | {"open", "chmod"}

_TWO_PATH_METHODS = frozenset({"symlink", "link", "rename"})
_UINT32_MAX = 2**32 - 1
_FIRST_ERRNO = 0x7
_LAST_ERRNO_EXCLUSIVE = 0x36


class RandomSource(Protocol):
    """Anything that draws an integer in ``range(stop)``."""

    def randrange(self, stop: int) -> int: ...


def _as_methods(value: Any) -> list[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValueError("methods must be a list of strings")
    return list(value)


def _as_string(value: Any) -> str:
    if not isinstance(value, str):
        raise ValueError("path must be a string")
    return value


def _as_uint32(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"expected an unsigned integer, got {value!r}")
    if not 0 <= value <= _UINT32_MAX:
        raise ValueError(f"value {value} out of range for an unsigned 32-bit integer")
    return value


def _as_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"expected a boolean, got {value!r}")
    return value


_CONVERTERS: dict[str, Callable[[Any], Any]] = {
    "methods": _as_methods,
    "path": _as_string,
    "delay": _as_uint32,
    "percent": _as_uint32,
    "random": _as_bool,
    "errno": _as_uint32,
}


@dataclass
class InjectMessage:
    """A fault rule: which operations, under which path, and what happens."""

    methods: list[str] = field(default_factory=list)
    path: str = ""
    delay: int = 0
    percent: int = 0
    random: bool = False
    errno: int = 0

    def to_json(self) -> str:
        """Serialise the rule as compact JSON."""
        return json.dumps(asdict(self), separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str | bytes) -> InjectMessage:
        """Parse a rule from JSON; field names match case-insensitively.

        Raises ValueError when the document is not a valid rule.
        """
        try:
            data = json.loads(text)
        except ValueError as exc:
            raise ValueError(f"invalid inject message: {exc}") from exc
        message = cls()
        if data is None:
            return message
        if not isinstance(data, dict):
            raise ValueError("inject message must be a JSON object")
        for key, value in data.items():
            name = key.lower()
            converter = _CONVERTERS.get(name)
            if converter is None or value is None:
                continue
            setattr(message, name, converter(value))
        return message


class FaultRegistry:
    """Thread-safe table of the fault rule in force for each operation."""

    def __init__(self) -> None:
        self._faults: dict[str, InjectMessage] = {}
        self._lock = threading.Lock()

    def inject(self, message: InjectMessage) -> None:
        """Install the rule for every method it names."""
        with self._lock:
            for method in message.methods:
                self._faults[method] = message

    def recover(self) -> None:
        """Remove the rules of all default hook points."""
        with self._lock:
            for method in DEFAULT_HOOK_POINTS:
                self._faults.pop(method, None)

    def get(self, method: str) -> InjectMessage | None:
        """Return the rule for an operation, or None."""
        with self._lock:
            return self._faults.get(method)


def _join(*parts: str) -> str:
    present = [part for part in parts if part]
    if not present:
        return ""
    joined = posixpath.normpath("/".join(present))
    if joined.startswith("//"):
        joined = "/" + joined.lstrip("/")
    return joined


def _errno_error(code: int, path: str) -> OSError:
    try:
        message = os.strerror(code)
    except (ValueError, OverflowError):
        message = f"errno {code}"
    return OSError(code, message, path)


def random_errno(rng: RandomSource | None = None) -> int:
    """Pick an error number between E2BIG and EXFULL (Linux numbering)."""
    source = rng if rng is not None else _random
    return source.randrange(_LAST_ERRNO_EXCLUSIVE - _FIRST_ERRNO) + _FIRST_ERRNO


def probable(percentage: int, rng: RandomSource | None = None) -> bool:
    """Return True with roughly the given percentage chance."""
    source = rng if rng is not None else _random
    return source.randrange(99) < percentage


class FaultHook:
    """Applies the registered fault rules to operations under a mount point."""

    def __init__(
        self,
        mount_point: str,
        registry: FaultRegistry,
        rng: RandomSource | None = None,
        sleep: Callable[[float], Any] = time.sleep,
    ) -> None:
        self.mount_point = mount_point
        self.registry = registry
        self.rng = rng
        self._sleep = sleep

    def inject_fault(self, relative_path: str, method: str) -> OSError | None:
        """Apply the rule for ``method`` to a path; return the error to report, if any."""
        log.debug("inject fault: method=%s relative_path=%s", method, relative_path)
        message = self.registry.get(method)
        if message is None:
            return None
        if message.path:
            actual_path = _join(self.mount_point, relative_path)
            if not actual_path.startswith(message.path):
                log.debug("rule path %s does not contain %s", message.path, actual_path)
                return None
        if message.percent > 0 and not probable(message.percent, self.rng):
            return None
        error: OSError | None = None
        if message.errno != 0:
            error = _errno_error(message.errno, relative_path)
        elif message.random:
            error = _errno_error(random_errno(self.rng), relative_path)
        if message.delay > 0:
            self._sleep(message.delay / 1000)
        return error

    def pre_operation(self, method: str, *args: Any) -> None:
        """Run the hook before an operation; raise OSError when a fault applies.

        ``args`` start with the path the operation works on; symlink, link and
        rename take a second path which is checked as well.
        """
        if method not in HOOKED_METHODS:
            raise ValueError(f"unknown hook point {method!r}")
        if not args:
            raise TypeError(f"{method} needs a path")
        if method == "release":
            self.pre_release(args[0])
            return
        paths = args[:2] if method in _TWO_PATH_METHODS else args[:1]
        for path in paths:
            error = self.inject_fault(path, method)
            if error is not None:
                raise error

    def pre_release(self, path: str) -> None:
        """Run the hook before a release; delays apply but errors are ignored."""
        self.inject_fault(path, "release")