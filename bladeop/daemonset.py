"""Manifest of the DaemonSet that runs the chaosblade tool on every node."""

from __future__ import annotations

from typing import Any

from bladeop.settings import DAEMONSET_POD_LABELS, DAEMONSET_POD_NAME, OperatorSettings


def owner_references(deployment: dict[str, Any]) -> list[dict[str, Any]]:
    """Return owner references pointing at the operator deployment as controller."""
    metadata = deployment.get("metadata") or {}
    return [
        {
            "apiVersion": deployment.get("apiVersion", ""),
            "kind": deployment.get("kind", ""),
            "name": metadata.get("name", ""),
            "uid": metadata.get("uid", ""),
            "controller": True,
        }
    ]


def build_container(settings: OperatorSettings) -> dict[str, Any]:
    """Return the privileged chaosblade tool container."""
    return {
        "name": DAEMONSET_POD_NAME,
        "image": f"{settings.image_repo()}:{settings.chaosblade_version}",
        "imagePullPolicy": settings.chaosblade_image_pull_policy,
        "volumeMounts": [
            {"name": "docker-socket", "mountPath": "/var/run/docker.sock"},
            {"name": "chaosblade-db-volume", "mountPath": "/opt/chaosblade/chaosblade.dat"},
            {"name": "hosts", "mountPath": "/etc/hosts"},
        ],
        "securityContext": {"privileged": True},
    }


def _affinity() -> dict[str, Any]:
    return {
        "nodeAffinity": {
            "requiredDuringSchedulingIgnoredDuringExecution": {
                "nodeSelectorTerms": [
                    {
                        "matchExpressions": [
                            {"key": "type", "operator": "NotIn", "values": ["virtual-kubelet"]}
                        ]
                    }
                ]
            }
        }
    }


def build_pod_spec(settings: OperatorSettings) -> dict[str, Any]:
    """Return the pod spec of the tool: host network and PID, tolerating all nodes."""
    return {
        "containers": [build_container(settings)],
        "affinity": _affinity(),
        "dnsPolicy": "ClusterFirstWithHostNet",
        "hostNetwork": True,
        "hostPID": True,
        "tolerations": [{"effect": "NoSchedule", "operator": "Exists"}],
        "terminationGracePeriodSeconds": 30,
        "schedulerName": "default-scheduler",
        "restartPolicy": "Always",
        "volumes": [
            {"name": "docker-socket", "hostPath": {"path": "/var/run/docker.sock"}},
            {
                "name": "chaosblade-db-volume",
                "hostPath": {"path": "/var/run/chaosblade.dat", "type": "FileOrCreate"},
            },
            {"name": "hosts", "hostPath": {"path": "/etc/hosts"}},
        ],
    }


def build_daemonset(
    settings: OperatorSettings, references: list[dict[str, Any]] | None = None
) -> dict[str, Any]:
    """Return the DaemonSet manifest of the chaosblade tool."""
    metadata: dict[str, Any] = {
        "name": DAEMONSET_POD_NAME,
        "namespace": settings.chaosblade_namespace,
        "labels": dict(DAEMONSET_POD_LABELS),
    }
    if references:
        metadata["ownerReferences"] = [dict(reference) for reference in references]
    return {
        "apiVersion": "apps/v1",
        "kind": "DaemonSet",
        "metadata": metadata,
        "spec": {
            "selector": {"matchLabels": dict(DAEMONSET_POD_LABELS)},
            "template": {
                "metadata": {"name": DAEMONSET_POD_NAME, "labels": dict(DAEMONSET_POD_LABELS)},
                "spec": build_pod_spec(settings),
            },
            "minReadySeconds": 5,
            "updateStrategy": {"type": "RollingUpdate"},
        },
    }