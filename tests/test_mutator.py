import copy
import json

import pytest

from bladeop.mutator import (
    SIDECAR_NAME,
    MutationError,
    PodMutator,
    get_sidecar_image,
)
from bladeop.settings import OperatorSettings


def make_pod(name, volume, sub_path, mount_name, mount_path="/data", propagation=None):
    mount = {"name": mount_name, "mountPath": mount_path}
    if propagation is not None:
        mount["mountPropagation"] = propagation
    return {
        "metadata": {
            "name": name,
            "annotations": {
                "chaosblade/inject-volume": volume,
                "chaosblade/inject-volume-subpath": sub_path,
            },
        },
        "spec": {
            "containers": [
                {"name": f"test-{name[-1]}", "image": f"test-{name[-1]}", "volumeMounts": [mount]}
            ]
        },
    }


@pytest.fixture
def mutator():
    return PodMutator(OperatorSettings(), version="1.6.0")


def test_case_success_injects_sidecar(mutator):
    pod = make_pod("pod-0", "fuse-test", "data", "fuse-test", propagation="Bidirectional")
    assert mutator.mutate(pod) is True
    containers = pod["spec"]["containers"]
    assert [c["name"] for c in containers] == [SIDECAR_NAME, "test-0"]
    sidecar = containers[0]
    assert sidecar["args"] == [
        "--address=:65534",
        "--mountpoint=/data/data",
        "--original=/data/fuse-data",
    ]
    assert sidecar["command"] == ["/opt/chaosblade/bin/chaos_fuse"]
    assert sidecar["ports"] == [{"name": "fuse-port", "containerPort": 65534}]
    assert sidecar["volumeMounts"][0]["mountPropagation"] == "Bidirectional"
    assert sidecar["securityContext"] == {"privileged": True, "runAsUser": 0}


def test_case_missing_volume_mount(mutator):
    pod = make_pod("pod-1", "fuse-test", "/data", "data", propagation="Bidirectional")
    with pytest.raises(MutationError) as info:
        mutator.mutate(pod)
    assert str(info.value) == "pod has no volume mount fuse-test"


def test_case_missing_propagation(mutator):
    pod = make_pod("pod-2", "data", "/data", "data")
    with pytest.raises(MutationError) as info:
        mutator.mutate(pod)
    assert str(info.value) == (
        "target volume mount propagation must be HostToContainer or Bidirectional"
    )


def test_case_unsupported_propagation(mutator):
    pod = make_pod("pod-3", "data", "/data", "data", propagation="None")
    with pytest.raises(MutationError) as info:
        mutator.mutate(pod)
    assert str(info.value) == "target volume mount propagation is not support"


def test_host_to_container_is_forced_bidirectional(mutator):
    pod = make_pod("pod-4", "data", "data", "data", propagation="HostToContainer")
    mutator.mutate(pod)
    assert pod["spec"]["containers"][0]["volumeMounts"][0]["mountPropagation"] == "Bidirectional"
    assert pod["spec"]["containers"][1]["volumeMounts"][0]["mountPropagation"] == "HostToContainer"


def test_empty_subpath_uses_parent_directory(mutator):
    pod = make_pod("pod-5", "data", "", "data", propagation="Bidirectional")
    mutator.mutate(pod)
    args = pod["spec"]["containers"][0]["args"]
    assert args[1] == "--mountpoint=/data"
    assert args[2] == "--original=/fuse-data"


def test_without_annotations_pod_is_untouched(mutator):
    pod = {"metadata": {"name": "plain"}, "spec": {"containers": [{"name": "app"}]}}
    before = copy.deepcopy(pod)
    assert mutator.mutate(pod) is False
    assert pod == before


def test_already_injected_is_untouched(mutator):
    pod = make_pod("pod-6", "data", "data", "data", propagation="Bidirectional")
    mutator.mutate(pod)
    snapshot = copy.deepcopy(pod)
    assert mutator.mutate(pod) is False
    assert pod == snapshot


def test_handle_returns_patch(mutator):
    pod = make_pod("pod-0", "fuse-test", "data", "fuse-test", propagation="Bidirectional")
    expected = copy.deepcopy(pod)
    mutator.mutate(expected)
    response = mutator.handle(pod)
    assert response["allowed"] is True
    assert response["patchType"] == "JSONPatch"
    assert response["patch"] == [
        {"op": "replace", "path": "/spec/containers", "value": expected["spec"]["containers"]}
    ]
    assert len(pod["spec"]["containers"]) == 1


def test_handle_accepts_json_text(mutator):
    pod = make_pod("pod-0", "fuse-test", "data", "fuse-test", propagation="Bidirectional")
    response = mutator.handle(json.dumps(pod))
    assert response["allowed"] is True
    assert response["patch"][0]["path"] == "/spec/containers"


def test_handle_without_change_has_no_patch(mutator):
    response = mutator.handle({"metadata": {"name": "plain"}})
    assert response == {"allowed": True}


def test_handle_mutation_error_is_500(mutator):
    pod = make_pod("pod-3", "data", "/data", "data", propagation="None")
    response = mutator.handle(pod)
    assert response["allowed"] is False
    assert response["status"]["code"] == 500
    assert response["status"]["message"] == "target volume mount propagation is not support"


def test_handle_bad_document_is_400(mutator):
    response = mutator.handle(b"{not json")
    assert response["allowed"] is False
    assert response["status"]["code"] == 400


def test_sidecar_image_prefers_configured_image():
    settings = OperatorSettings(fuse_sidecar_image="registry.example.com/fuse:dev")
    assert get_sidecar_image(settings, "1.6.0") == "registry.example.com/fuse:dev"


def test_sidecar_image_defaults_to_tool_image():
    settings = OperatorSettings(product="community")
    image = get_sidecar_image(settings, "1.6.0")
    assert image.startswith(settings.chaosblade_image_repository + ":")
    assert image.endswith("1.6.0")