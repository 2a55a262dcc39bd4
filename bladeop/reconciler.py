"""Reconciliation of ChaosBlade resources through their lifecycle phases."""

from __future__ import annotations

import copy
import json
import logging
import re
import threading
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Iterable, Protocol

from bladeop.predicate import CHAOSBLADE_FINALIZER, PRE_SPEC_ANNOTATION
from bladeop.settings import DEFAULT_REMOVE_BLADE_INTERVAL
from bladeop.types import (
    ChaosBlade,
    ChaosBladeSpec,
    ClusterPhase,
    ExperimentSpec,
    ExperimentStatus,
)

log = logging.getLogger(__name__)

_UNITS = {
    "ns": 1,
    "us": 10**3,
    "µs": 10**3,
    "μs": 10**3,
    "ms": 10**6,
    "s": 10**9,
    "m": 60 * 10**9,
    "h": 3600 * 10**9,
}
_SEGMENT = re.compile(r"(\d+\.?\d*|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_MAX_NANOSECONDS = 2**63 - 1


class ExperimentExecutor(Protocol):
    """Runs and reverts the experiments of a blade."""

    def create(self, name: str, experiment: ExperimentSpec) -> ExperimentStatus: ...

    def destroy(
        self, name: str, experiment: ExperimentSpec, old_status: ExperimentStatus
    ) -> ExperimentStatus: ...


class BladeStore:
    """In-memory store of ChaosBlade resources with API-server semantics.

    Updates of the object leave its status alone and status updates leave
    the rest alone. An object marked for deletion disappears once it has no
    finalizers left.
    """

    def __init__(self, blades: Iterable[ChaosBlade] = ()) -> None:
        self._blades: dict[str, ChaosBlade] = {}
        self._lock = threading.Lock()
        for blade in blades:
            self.add(blade)

    def add(self, blade: ChaosBlade) -> None:
        """Store a blade, replacing one of the same name."""
        with self._lock:
            self._blades[blade.metadata.name] = copy.deepcopy(blade)

    def get(self, name: str) -> ChaosBlade:
        """Return a copy of the named blade; raise KeyError when missing."""
        with self._lock:
            return copy.deepcopy(self._blades[name])

    def list(self) -> list[ChaosBlade]:
        """Return copies of all stored blades."""
        with self._lock:
            return [copy.deepcopy(blade) for blade in self._blades.values()]

    def _settle(self, name: str) -> None:
        blade = self._blades[name]
        if blade.metadata.deletion_timestamp is not None and not blade.metadata.finalizers:
            del self._blades[name]

    def update(self, blade: ChaosBlade) -> None:
        """Store metadata and spec of a blade, keeping the stored status."""
        with self._lock:
            existing = self._blades[blade.metadata.name]
            stored = copy.deepcopy(blade)
            stored.status = existing.status
            self._blades[blade.metadata.name] = stored
            self._settle(blade.metadata.name)

    def update_status(self, blade: ChaosBlade) -> None:
        """Store the status of a blade, keeping everything else."""
        with self._lock:
            self._blades[blade.metadata.name].status = copy.deepcopy(blade.status)

    def clear_finalizers(self, name: str) -> None:
        """Drop all finalizers of the named blade."""
        with self._lock:
            self._blades[name].metadata.finalizers = []
            self._settle(name)

    def delete(self, name: str, now: datetime | None = None) -> None:
        """Delete a blade, or mark it for deletion while finalizers remain."""
        with self._lock:
            blade = self._blades[name]
            if not blade.metadata.finalizers:
                del self._blades[name]
                return
            if blade.metadata.deletion_timestamp is None:
                blade.metadata.deletion_timestamp = now or datetime.now(timezone.utc)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._blades


class FinalizeError(Exception):
    """Raised when the experiments of a blade could not all be destroyed."""


def contains(items: Iterable[str], value: str) -> bool:
    """Return whether ``value`` is among ``items``."""
    return value in items


def remove(items: Iterable[str], value: str) -> list[str]:
    """Return ``items`` without ``value``."""
    return [item for item in items if item != value]


def parse_interval(text: str) -> timedelta:
    """Parse a duration such as "72h", "1h30m" or "1.5s".

    Raises ValueError for malformed text.
    """
    rest = text
    sign = 1
    if rest and rest[0] in "+-":
        sign = -1 if rest[0] == "-" else 1
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise ValueError(f"invalid duration {text!r}")
    total = 0
    position = 0
    while position < len(rest):
        match = _SEGMENT.match(rest, position)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        total += int(Decimal(match.group(1)) * _UNITS[match.group(2)])
        if total > _MAX_NANOSECONDS:
            raise ValueError(f"invalid duration {text!r}")
        position = match.end()
    return timedelta(microseconds=sign * (total // 1000))


def _aware(moment: datetime) -> datetime:
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=timezone.utc)


def clean_up_destroying(
    store: BladeStore, interval: timedelta, now: datetime | None = None
) -> list[str]:
    """Clear the finalizers of blades stuck destroying for longer than ``interval``.

    Returns the names of the blades that were cleared.
    """
    moment = _aware(now or datetime.now(timezone.utc))
    try:
        blades = store.list()
    except Exception:
        log.exception("periodically clean up, list blade error")
        blades = []
    log.info("periodically clean up blade, blade size: %d", len(blades))
    cleared = []
    for blade in blades:
        deleted_at = blade.metadata.deletion_timestamp
        if deleted_at is None:
            continue
        elapsed = moment - _aware(deleted_at)
        if (
            blade.status.phase is ClusterPhase.DESTROYING
            and elapsed.total_seconds() > interval.total_seconds()
        ):
            log.info("periodically clean up blade %s, deletion time: %s",
                     blade.metadata.name, deleted_at)
            try:
                store.clear_finalizers(blade.metadata.name)
            except Exception:
                log.exception("patch blade %s failed", blade.metadata.name)
                continue
            cleared.append(blade.metadata.name)
    return cleared


def start_periodic_cleanup(
    store: BladeStore,
    interval_text: str,
    stop: threading.Event,
    clock: Callable[[], datetime] | None = None,
) -> threading.Thread:
    """Clean up at once and then every interval until ``stop`` is set.

    An unparsable interval falls back to the default one.
    """
    try:
        interval = parse_interval(interval_text)
    except ValueError:
        log.error("parse interval %r failed, use default interval: %s",
                  interval_text, DEFAULT_REMOVE_BLADE_INTERVAL)
        interval = parse_interval(DEFAULT_REMOVE_BLADE_INTERVAL)
    period = int(interval.total_seconds())
    if period <= 0:
        raise ValueError(f"non-positive clean up interval {interval_text!r}")
    now = clock or (lambda: datetime.now(timezone.utc))

    def run() -> None:
        clean_up_destroying(store, interval, now())
        while not stop.wait(period):
            clean_up_destroying(store, interval, now())

    thread = threading.Thread(target=run, name="blade-cleanup", daemon=True)
    thread.start()
    return thread


class Reconciler:
    """Moves ChaosBlade resources from one phase to the next."""

    def __init__(self, store: BladeStore, executor: ExperimentExecutor) -> None:
        self.store = store
        self.executor = executor

    def _save(self, action: Callable[[ChaosBlade], None], blade: ChaosBlade, message: str) -> None:
        try:
            action(blade)
        except Exception:
            log.exception(message)

    def reconcile(self, name: str) -> ChaosBlade | None:
        """Handle one request for the named blade; return the blade as handled."""
        try:
            blade = self.store.get(name)
        except KeyError:
            return None
        if not blade.spec.experiments:
            return blade
        status = blade.status
        phase = status.phase

        if phase is ClusterPhase.DESTROYED:
            blade.metadata.finalizers = remove(blade.metadata.finalizers, CHAOSBLADE_FINALIZER)
            self._save(self.store.update, blade,
                       "remove chaosblade finalizer failed at destroyed phase")
            return blade

        if phase is ClusterPhase.DESTROYING or blade.metadata.deletion_timestamp is not None:
            try:
                self.finalize(blade)
            except FinalizeError as exc:
                log.error("finalize chaosblade %s failed at destroying phase: %s", name, exc)
            return blade

        if phase is ClusterPhase.INITIAL:
            if contains(blade.metadata.finalizers, CHAOSBLADE_FINALIZER):
                status.phase = ClusterPhase.INITIALIZED
                status.exp_statuses = []
                self._save(self.store.update_status, blade,
                           "update chaosblade phase to Initialized failed")
            else:
                blade.metadata.finalizers.append(CHAOSBLADE_FINALIZER)
                self._save(self.store.update, blade, "add finalizer to chaosblade failed")
            return blade

        if phase in (ClusterPhase.INITIALIZED, ClusterPhase.UPDATING):
            new_phase = ClusterPhase.ERROR
            statuses = []
            for experiment in blade.spec.experiments:
                result = self.executor.create(name, experiment)
                if result.success:
                    new_phase = ClusterPhase.RUNNING
                statuses.append(result)
            status.exp_statuses = statuses
            status.phase = new_phase
            self._save(self.store.update_status, blade,
                       f"update phase from {phase.value} to {new_phase.value} failed")
            return blade

        if phase in (ClusterPhase.RUNNING, ClusterPhase.ERROR):
            pre_spec = blade.metadata.annotations.get(PRE_SPEC_ANNOTATION, "")
            if not pre_spec:
                log.error("can not found matchers in annotations field")
                return blade
            try:
                data = json.loads(pre_spec)
                if data is not None and not isinstance(data, dict):
                    raise ValueError("spec must be a JSON object")
                old_spec = ChaosBladeSpec.from_dict(data or {})
            except (ValueError, TypeError, AttributeError) as exc:
                log.error("unmarshal old spec failed, %s: %s", pre_spec, exc)
                return blade
            self._save(self.store.update, blade, "add annotation to chaosblade failed")
            new_phase = ClusterPhase.UPDATING
            for index, old_status in enumerate(status.exp_statuses):
                result = self.executor.destroy(name, old_spec.experiments[index], old_status)
                if not result.success:
                    new_phase = ClusterPhase.DESTROYING
                status.exp_statuses[index] = result
            status.phase = new_phase
            self._save(self.store.update_status, blade,
                       f"update phase from {phase.value} to {new_phase.value} failed")
        return blade

    def finalize(self, blade: ChaosBlade) -> None:
        """Destroy the experiments of a blade and record the outcome.

        Raises FinalizeError when the status cannot be stored or an
        experiment could not be destroyed.
        """
        log.info("finalize the chaosblade %s", blade.metadata.name)
        status = blade.status
        phase = ClusterPhase.DESTROYED
        if status.exp_statuses and len(blade.spec.experiments) == len(status.exp_statuses):
            for index, experiment in enumerate(blade.spec.experiments):
                result = self.executor.destroy(
                    blade.metadata.name, experiment, status.exp_statuses[index]
                )
                if not result.success:
                    phase = ClusterPhase.DESTROYING
                status.exp_statuses[index] = result
        status.phase = phase
        try:
            self.store.update_status(blade)
        except Exception as exc:
            raise FinalizeError(
                f"update chaosblade status failed in finalize phase, {exc}"
            ) from exc
        if status.phase is ClusterPhase.DESTROYING:
            raise FinalizeError("failed to destory, please see the experiment status")
        log.info("successfully finalized chaosblade %s", blade.metadata.name)