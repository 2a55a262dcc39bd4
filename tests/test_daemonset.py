from bladeop.daemonset import build_container, build_daemonset, build_pod_spec, owner_references
from bladeop.settings import DAEMONSET_POD_LABELS, DAEMONSET_POD_NAME, OperatorSettings

DEPLOYMENT = {
    "apiVersion": "apps/v1",
    "kind": "Deployment",
    "metadata": {"name": "chaosblade-operator", "uid": "uid-0001"},
}


def settings():
    return OperatorSettings(product="community", chaosblade_version="1.6.0",
                            chaosblade_namespace="chaos-ns")


def test_owner_references_point_at_deployment():
    (reference,) = owner_references(DEPLOYMENT)
    assert reference == {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "name": "chaosblade-operator",
        "uid": "uid-0001",
        "controller": True,
    }


def test_container_uses_repository_and_version():
    config = settings()
    container = build_container(config)
    assert container["name"] == DAEMONSET_POD_NAME
    assert container["image"].startswith(config.chaosblade_image_repository + ":")
    assert container["image"].endswith(":1.6.0")
    assert container["imagePullPolicy"] == config.chaosblade_image_pull_policy
    assert container["securityContext"]["privileged"] is True


def test_container_mounts_match_pod_volumes():
    config = settings()
    spec = build_pod_spec(config)
    mounts = {mount["name"] for mount in spec["containers"][0]["volumeMounts"]}
    volumes = {volume["name"] for volume in spec["volumes"]}
    assert mounts == volumes


def test_pod_spec_runs_on_host():
    spec = build_pod_spec(settings())
    assert spec["hostNetwork"] is True
    assert spec["hostPID"] is True
    assert spec["dnsPolicy"] == "ClusterFirstWithHostNet"
    expression = spec["affinity"]["nodeAffinity"][
        "requiredDuringSchedulingIgnoredDuringExecution"]["nodeSelectorTerms"][0][
        "matchExpressions"][0]
    assert expression["values"] == ["virtual-kubelet"]


def test_daemonset_selector_matches_template_labels():
    manifest = build_daemonset(settings(), owner_references(DEPLOYMENT))
    assert manifest["spec"]["selector"]["matchLabels"] == DAEMONSET_POD_LABELS
    assert manifest["spec"]["template"]["metadata"]["labels"] == DAEMONSET_POD_LABELS
    assert manifest["metadata"]["namespace"] == "chaos-ns"
    assert manifest["metadata"]["ownerReferences"] == owner_references(DEPLOYMENT)
    assert manifest["spec"]["minReadySeconds"] == 5


def test_daemonset_labels_are_copies():
    manifest = build_daemonset(settings())
    manifest["metadata"]["labels"]["extra"] = "x"
    assert "extra" not in DAEMONSET_POD_LABELS
    assert "ownerReferences" not in manifest["metadata"]