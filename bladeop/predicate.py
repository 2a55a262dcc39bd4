"""Event filter deciding which ChaosBlade events reach the reconciler."""

from __future__ import annotations

import json
import logging
from typing import Any

from bladeop.types import ChaosBlade, ClusterPhase

log = logging.getLogger(__name__)

CHAOSBLADE_FINALIZER = "finalizer.chaosblade.io"
PRE_SPEC_ANNOTATION = "preSpec"


class UpdatePredicate:
    """Lets through creations, deletions and spec or status updates worth acting on."""

    def create(self, obj: Any) -> bool:
        """Accept a created blade only while it is still in the initial phase."""
        if not isinstance(obj, ChaosBlade):
            return False
        log.info("trigger create event, name: %s", obj.metadata.name)
        if obj.metadata.deletion_timestamp is not None:
            log.info("unexpected phase for cb creating, name: %s, phase: %s",
                     obj.metadata.name, obj.status.phase.value)
            return False
        if obj.status.phase is ClusterPhase.INITIAL:
            return True
        log.info("unexpected phase for cb creating, name: %s, phase: %s",
                 obj.metadata.name, obj.status.phase.value)
        return False

    def delete(self, obj: Any) -> bool:
        """Accept a deleted blade that still carries the finalizer."""
        if not isinstance(obj, ChaosBlade):
            return False
        log.info("trigger delete event, name: %s", obj.metadata.name)
        return CHAOSBLADE_FINALIZER in obj.metadata.finalizers

    def update(self, old: Any, new: Any) -> bool:
        """Decide whether an update is handled.

        A changed spec is accepted and the old spec is stored on ``new`` as
        the only annotation, under "preSpec".
        """
        if not isinstance(old, ChaosBlade):
            return False
        log.info("trigger update event, name: %s", old.metadata.name)
        if not isinstance(new, ChaosBlade):
            return False
        if new.spec != old.spec:
            encoded = json.dumps(old.spec.to_dict(), separators=(",", ":"))
            new.metadata.annotations = {PRE_SPEC_ANNOTATION: encoded}
            return True
        if new.status.phase is ClusterPhase.INITIAL:
            return True
        if old.metadata.deletion_timestamp is None and new.metadata.deletion_timestamp is not None:
            return True
        if new.status.phase in (ClusterPhase.RUNNING, ClusterPhase.ERROR, ClusterPhase.DESTROYING):
            return False
        if new.status.phase != old.status.phase:
            return True
        if new.status != old.status:
            return True
        if new.metadata.deletion_timestamp is not None:
            if CHAOSBLADE_FINALIZER in new.metadata.finalizers:
                return True
            log.info("cannot find the %s finalizer, so skip the update event", CHAOSBLADE_FINALIZER)
            return False
        log.info("spec not changed under %s phase, so skip the update event", new.status.phase.value)
        return False

    def generic(self, obj: Any) -> bool:
        """Generic events are never handled; the skipped event is logged."""
        name = obj.metadata.name if isinstance(obj, ChaosBlade) else type(obj).__name__
        log.debug("skip generic event, name: %s", name)
        return False