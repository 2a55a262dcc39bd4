"""Admission mutator that injects the fuse sidecar into annotated pods."""

from __future__ import annotations

import copy
import json
import logging
import posixpath
from http import HTTPStatus
from typing import Any

from bladeop import version as _version
from bladeop.settings import OPERATOR_CHAOSBLADE_BIN, OperatorSettings

log = logging.getLogger(__name__)

SIDECAR_NAME = "chaosblade-fuse"
FUSE_SERVER_PORT_NAME = "fuse-port"
INJECT_VOLUME_ANNOTATION = "chaosblade/inject-volume"
INJECT_SUBPATH_ANNOTATION = "chaosblade/inject-volume-subpath"
FUSE_BINARY = f"{OPERATOR_CHAOSBLADE_BIN}/chaos_fuse"

PROPAGATION_BIDIRECTIONAL = "Bidirectional"
PROPAGATION_HOST_TO_CONTAINER = "HostToContainer"


class MutationError(Exception):
    """Raised when a pod asks for the sidecar but cannot receive it."""


def _clean(path: str) -> str:
    cleaned = posixpath.normpath(path) if path else "."
    if cleaned.startswith("//"):
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


def _join(*parts: str) -> str:
    present = [part for part in parts if part]
    if not present:
        return ""
    return _clean("/".join(present))


def _dir(path: str) -> str:
    return _clean(path[: path.rfind("/") + 1])


def _base(path: str) -> str:
    if not path:
        return "."
    stripped = path.rstrip("/")
    if not stripped:
        return "/"
    return stripped[stripped.rfind("/") + 1:]


def get_sidecar_image(settings: OperatorSettings, version: str | None = None) -> str:
    """Return the configured sidecar image, or the tool image for this version."""
    if settings.fuse_sidecar_image:
        return settings.fuse_sidecar_image
    if version is None:
        version = _version.VERSION
    return f"{settings.image_repo()}:{version}"


def _escape(key: Any) -> str:
    return str(key).replace("~", "~0").replace("/", "~1")


def _diff(old: Any, new: Any, path: str, ops: list[dict[str, Any]]) -> None:
    if old == new:
        return
    if isinstance(old, dict) and isinstance(new, dict):
        for key in old:
            if key not in new:
                ops.append({"op": "remove", "path": f"{path}/{_escape(key)}"})
        for key, value in new.items():
            child = f"{path}/{_escape(key)}"
            if key in old:
                _diff(old[key], value, child, ops)
            else:
                ops.append({"op": "add", "path": child, "value": copy.deepcopy(value)})
        return
    if isinstance(old, list) and isinstance(new, list) and len(old) == len(new):
        for index, (before, after) in enumerate(zip(old, new)):
            _diff(before, after, f"{path}/{index}", ops)
        return
    ops.append({"op": "replace", "path": path, "value": copy.deepcopy(new)})


def json_patch(original: Any, patched: Any) -> list[dict[str, Any]]:
    """Return the JSON Patch operations that turn ``original`` into ``patched``."""
    ops: list[dict[str, Any]] = []
    _diff(original, patched, "", ops)
    return ops


def _errored(code: int, message: str) -> dict[str, Any]:
    return {"allowed": False, "status": {"code": int(code), "message": message}}


class PodMutator:
    """Adds the fuse sidecar to pods that carry the inject annotations."""

    def __init__(self, settings: OperatorSettings | None = None, version: str | None = None) -> None:
        self.settings = settings if settings is not None else OperatorSettings()
        self.version = version if version is not None else _version.VERSION

    def mutate(self, pod: dict[str, Any]) -> bool:
        """Inject the sidecar into ``pod`` in place; return whether it changed.

        Raises MutationError when the annotated volume cannot be used.
        """
        metadata = pod.get("metadata") or {}
        name = metadata.get("name", "")
        annotations = metadata.get("annotations")
        if annotations is None:
            return False
        volume_name = annotations.get(INJECT_VOLUME_ANNOTATION)
        if volume_name is None:
            log.info("pod %s has no %s annotation", name, INJECT_VOLUME_ANNOTATION)
            return False
        sub_path = annotations.get(INJECT_SUBPATH_ANNOTATION)
        if sub_path is None:
            log.info("pod %s has no %s annotation", name, INJECT_SUBPATH_ANNOTATION)
            return False

        spec = pod.setdefault("spec", {})
        containers = spec.get("containers") or []
        if any(container.get("name") == SIDECAR_NAME for container in containers):
            log.info("sidecar has been injected into pod %s", name)
            return False
        if not containers:
            raise MutationError("pod has no containers")

        first = containers[0]
        target: dict[str, Any] | None = None
        for mount in first.get("volumeMounts") or []:
            if mount.get("name") != volume_name:
                continue
            propagation = mount.get("mountPropagation")
            if propagation is None:
                raise MutationError(
                    "target volume mount propagation must be HostToContainer or Bidirectional"
                )
            if propagation not in (PROPAGATION_HOST_TO_CONTAINER, PROPAGATION_BIDIRECTIONAL):
                raise MutationError("target volume mount propagation is not support")
            target = copy.deepcopy(mount)
            target["mountPropagation"] = PROPAGATION_BIDIRECTIONAL

        if target is None or not target.get("name"):
            raise MutationError(f"pod has no volume mount {volume_name}")

        mount_path = target.get("mountPath", "")
        mount_point = _join(mount_path, sub_path)
        original = _join(mount_path, f"fuse-{sub_path}")
        log.info("matched pod %s, mount point %s, mount path %s", name, mount_point, mount_path)
        if mount_point == mount_path:
            original = _join(_dir(mount_path), f"fuse-{_base(mount_path)}")

        port = self.settings.fuse_server_port
        quota = {"cpu": "100m", "memory": "50Mi"}
        sidecar = {
            "name": SIDECAR_NAME,
            "image": get_sidecar_image(self.settings, self.version),
            "imagePullPolicy": "Always",
            "command": [FUSE_BINARY],
            "args": [
                f"--address=:{port}",
                f"--mountpoint={mount_point}",
                f"--original={original}",
            ],
            "resources": {"requests": dict(quota), "limits": dict(quota)},
            "ports": [{"name": FUSE_SERVER_PORT_NAME, "containerPort": port}],
            "securityContext": {"privileged": True, "runAsUser": 0},
            "volumeMounts": [target],
        }
        spec["containers"] = [sidecar, first]
        return True

    def handle(self, pod: dict[str, Any] | str | bytes) -> dict[str, Any]:
        """Answer an admission request for a pod with an allow and a JSON patch."""
        if isinstance(pod, (str, bytes)):
            try:
                document = json.loads(pod)
            except ValueError as exc:
                return _errored(HTTPStatus.BAD_REQUEST, str(exc))
        else:
            document = pod
        if not isinstance(document, dict):
            return _errored(HTTPStatus.BAD_REQUEST, "pod must be a JSON object")
        patched = copy.deepcopy(document)
        try:
            self.mutate(patched)
        except MutationError as exc:
            log.error("mutate pod failed: %s", exc)
            return _errored(HTTPStatus.INTERNAL_SERVER_ERROR, str(exc))
        response: dict[str, Any] = {"allowed": True}
        patch = json_patch(document, patched)
        if patch:
            response["patchType"] = "JSONPatch"
            response["patch"] = patch
        return response