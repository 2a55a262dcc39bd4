"""Resource types of the chaosblade.io/v1alpha1 API group."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

GROUP = "chaosblade.io"
GROUP_VERSION = "v1alpha1"
API_VERSION = f"{GROUP}/{GROUP_VERSION}"
KIND = "ChaosBlade"
LIST_KIND = "ChaosBladeList"

POD_KIND = "pod"
CONTAINER_KIND = "container"
NODE_KIND = "node"

SUCCESS_STATE = "Success"
ERROR_STATE = "Error"
DESTROYED_STATE = "Destroyed"


class ClusterPhase(str, Enum):
    """Lifecycle phase of a ChaosBlade resource."""

    INITIAL = ""
    INITIALIZED = "Initialized"
    RUNNING = "Running"
    UPDATING = "Updating"
    DESTROYING = "Destroying"
    DESTROYED = "Destroyed"
    ERROR = "Error"


def _format_time(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_time(text: str) -> datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    moment = datetime.fromisoformat(text)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


@dataclass
class FlagSpec:
    """A named flag of an experiment with its values."""

    name: str
    value: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "value": list(self.value)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FlagSpec:
        return cls(name=data.get("name", ""), value=list(data.get("value") or []))


@dataclass
class ExperimentSpec:
    """One experiment: its scope, target, action and matchers."""

    scope: str
    target: str
    action: str
    desc: str = ""
    matchers: list[FlagSpec] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "scope": self.scope,
            "target": self.target,
            "action": self.action,
        }
        if self.desc:
            data["desc"] = self.desc
        if self.matchers:
            data["matchers"] = [matcher.to_dict() for matcher in self.matchers]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExperimentSpec:
        return cls(
            scope=data.get("scope", ""),
            target=data.get("target", ""),
            action=data.get("action", ""),
            desc=data.get("desc", ""),
            matchers=[FlagSpec.from_dict(item) for item in data.get("matchers") or []],
        )


@dataclass
class ChaosBladeSpec:
    """Desired state of a ChaosBlade resource."""

    experiments: list[ExperimentSpec] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"experiments": [exp.to_dict() for exp in self.experiments]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChaosBladeSpec:
        return cls(
            experiments=[ExperimentSpec.from_dict(item) for item in data.get("experiments") or []]
        )


@dataclass
class ResourceStatus:
    """Result of an experiment on one resource."""

    id: str = ""
    state: str = ""
    code: int = 0
    error: str = ""
    success: bool = False
    kind: str = ""
    identifier: str = ""

    def fail(self, error: str, code: int) -> ResourceStatus:
        """Mark this status as failed and return it."""
        self.state = ERROR_STATE
        self.error = error
        self.success = False
        self.code = code
        return self

    def succeed(self) -> ResourceStatus:
        """Mark this status as successful and return it."""
        self.state = SUCCESS_STATE
        self.success = True
        return self

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.id:
            data["id"] = self.id
        data["state"] = self.state
        if self.code:
            data["code"] = self.code
        if self.error:
            data["error"] = self.error
        data["success"] = self.success
        data["kind"] = self.kind
        if self.identifier:
            data["identifier"] = self.identifier
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ResourceStatus:
        return cls(
            id=data.get("id", ""),
            state=data.get("state", ""),
            code=int(data.get("code", 0)),
            error=data.get("error", ""),
            success=bool(data.get("success", False)),
            kind=data.get("kind", ""),
            identifier=data.get("identifier", ""),
        )


@dataclass
class ExperimentStatus:
    """Result of one experiment with the details per resource."""

    scope: str = ""
    target: str = ""
    action: str = ""
    success: bool = False
    state: str = ""
    error: str = ""
    res_statuses: list[ResourceStatus] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "scope": self.scope,
            "target": self.target,
            "action": self.action,
            "success": self.success,
            "state": self.state,
        }
        if self.error:
            data["error"] = self.error
        if self.res_statuses:
            data["resStatuses"] = [status.to_dict() for status in self.res_statuses]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExperimentStatus:
        return cls(
            scope=data.get("scope", ""),
            target=data.get("target", ""),
            action=data.get("action", ""),
            success=bool(data.get("success", False)),
            state=data.get("state", ""),
            error=data.get("error", ""),
            res_statuses=[ResourceStatus.from_dict(item) for item in data.get("resStatuses") or []],
        )


@dataclass
class ChaosBladeStatus:
    """Observed state of a ChaosBlade resource."""

    phase: ClusterPhase = ClusterPhase.INITIAL
    exp_statuses: list[ExperimentStatus] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.phase.value:
            data["phase"] = self.phase.value
        data["expStatuses"] = [status.to_dict() for status in self.exp_statuses]
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChaosBladeStatus:
        return cls(
            phase=ClusterPhase(data.get("phase", "")),
            exp_statuses=[ExperimentStatus.from_dict(item) for item in data.get("expStatuses") or []],
        )


@dataclass
class ObjectMeta:
    """The object metadata the operator works with."""

    name: str = ""
    namespace: str = ""
    uid: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    finalizers: list[str] = field(default_factory=list)
    deletion_timestamp: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.name:
            data["name"] = self.name
        if self.namespace:
            data["namespace"] = self.namespace
        if self.uid:
            data["uid"] = self.uid
        if self.labels:
            data["labels"] = dict(self.labels)
        if self.annotations:
            data["annotations"] = dict(self.annotations)
        if self.finalizers:
            data["finalizers"] = list(self.finalizers)
        if self.deletion_timestamp is not None:
            data["deletionTimestamp"] = _format_time(self.deletion_timestamp)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ObjectMeta:
        timestamp = data.get("deletionTimestamp")
        return cls(
            name=data.get("name", ""),
            namespace=data.get("namespace", ""),
            uid=data.get("uid", ""),
            labels=dict(data.get("labels") or {}),
            annotations=dict(data.get("annotations") or {}),
            finalizers=list(data.get("finalizers") or []),
            deletion_timestamp=_parse_time(timestamp) if timestamp else None,
        )


@dataclass
class ChaosBlade:
    """A ChaosBlade resource."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: ChaosBladeSpec = field(default_factory=ChaosBladeSpec)
    status: ChaosBladeStatus = field(default_factory=ChaosBladeStatus)
    api_version: str = API_VERSION
    kind: str = KIND

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.api_version:
            data["apiVersion"] = self.api_version
        if self.kind:
            data["kind"] = self.kind
        data["metadata"] = self.metadata.to_dict()
        data["spec"] = self.spec.to_dict()
        data["status"] = self.status.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChaosBlade:
        return cls(
            metadata=ObjectMeta.from_dict(data.get("metadata") or {}),
            spec=ChaosBladeSpec.from_dict(data.get("spec") or {}),
            status=ChaosBladeStatus.from_dict(data.get("status") or {}),
            api_version=data.get("apiVersion", ""),
            kind=data.get("kind", ""),
        )


def create_fail_experiment_status(error: str, res_statuses: list[ResourceStatus]) -> ExperimentStatus:
    """Build a failed experiment status."""
    return ExperimentStatus(success=False, state=ERROR_STATE, error=error, res_statuses=res_statuses)


def create_success_experiment_status(res_statuses: list[ResourceStatus]) -> ExperimentStatus:
    """Build a successful experiment status."""
    return ExperimentStatus(success=True, state=SUCCESS_STATE, res_statuses=res_statuses)


def create_destroyed_experiment_status(res_statuses: list[ResourceStatus]) -> ExperimentStatus:
    """Build the status of a destroyed experiment."""
    return ExperimentStatus(success=True, state=DESTROYED_STATE, res_statuses=res_statuses)


def create_fail_res_statuses(code: int, error: str, uid: str) -> list[ResourceStatus]:
    """Build a one-element list holding a failed resource status."""
    return [ResourceStatus(error=error, code=code, id=uid, success=False)]