# bladeop

`bladeop` holds the working parts of a chaos-experiment operator for a
container cluster: the experiment resource model, the reconciliation of
resources through their lifecycle, the event filter in front of it, the pod
mutation that adds a fuse sidecar, the tool daemonset manifest, and
file-system fault injection with an HTTP endpoint to control it. It has no
dependencies outside the standard library.

## Modules

- `bladeop.version`: `parse_combined_version(combined, delimiter=",")`
  splits a "version,product" string, falling back to `"unknown"` and
  `"community"`. `has_cri_command(version=None)` tells whether a
  three-part version is at least 1.5.0.
- `bladeop.types`: the resource model `ChaosBlade`, `ObjectMeta`,
  `ChaosBladeSpec`, `ExperimentSpec`, `FlagSpec`, `ChaosBladeStatus`,
  `ExperimentStatus`, `ResourceStatus`, and the `ClusterPhase` enum
  (Initial, Initialized, Running, Updating, Destroying, Destroyed, Error).
  These classes convert to and from plain dictionaries in the API's JSON
  field names with `to_dict()` / `from_dict()`. `ResourceStatus.fail(error,
  code)` and `ResourceStatus.succeed()` mark a status in place and return it;
  `create_success_experiment_status`, `create_fail_experiment_status`,
  `create_destroyed_experiment_status` and `create_fail_res_statuses` build
  statuses.
- `bladeop.settings`: `OperatorSettings`, a dataclass of the operator's
  options (log level, reconcile count, client QPS, tool version, image
  repository and pull policy, daemonset switch, clean-up interval, download
  URL, namespace, fuse sidecar image and port, webhook port and switch).
  `build_parser()` returns an `argparse` parser for the matching
  `--log-level`, `--reconcile-count`, `--qps`, `--aliyun-region-id`,
  `--aliyun-environment`, `--chaosblade-version`,
  `--chaosblade-image-repository`, `--chaosblade-image-pull-policy`,
  `--daemonset-enable`, `--remove-blade-interval`,
  `--chaosblade-download-url`, `--chaosblade-namespace`,
  `--fuse-sidecar-image`, `--fuse-server-port`, `--webhook-port` and
  `--webhook-enable` options, and `parse_settings(argv)` turns an argument
  list into settings. `OperatorSettings.image_repo(product=None)` returns the
  tool image repository for the `"community"` or `"ahas"` product and raises
  `ValueError` for any other; `aliyun_image_repo(region_id, environment)`
  gives the one for the cloud product.
- `bladeop.faults`: an `InjectMessage` names the operations to break, an
  optional path prefix, a delay in milliseconds, a percentage, an errno or a
  random errno, and converts to and from JSON. `FaultRegistry` keeps the rule
  for each operation (thread-safe); `recover()` clears the default hook
  points. `FaultHook(mount_point, registry)` applies the rules:
  `inject_fault(relative_path, method)` returns the `OSError` to report or
  `None`, `pre_operation(method, *args)` raises it, and `pre_release(path)`
  applies delays but never fails. `random_errno()` and `probable()` take an
  optional random source.
- `bladeop.server`: `HookServer(address)` serves `/inject` and `/recover`
  over HTTP from a background thread; `start()` returns the bound address,
  `stop()` shuts it down, and it works as a context manager.
  `handle_inject(body)` and `handle_recover()` can be called directly.
- `bladeop.client`: `HookClient(address)` posts a rule with
  `inject_fault(message)` and clears rules with `revoke()`, raising
  `HookClientError` on connection failures and non-200 answers.
- `bladeop.mutator`: `PodMutator.mutate(pod)` adds the fuse sidecar to a pod
  dictionary carrying the `chaosblade/inject-volume` and
  `chaosblade/inject-volume-subpath` annotations and raises `MutationError`
  when the volume mount is missing or its mount propagation is neither
  `HostToContainer` nor `Bidirectional`. `PodMutator.handle(pod)` answers an
  admission request with an allow and a JSON Patch (built by `json_patch`),
  or an error status. `get_sidecar_image(settings, version)` picks the
  sidecar image.
- `bladeop.predicate`: `UpdatePredicate` decides which create, update,
  delete and generic events of a `ChaosBlade` need reconciling; on a spec
  change it stores the old spec under the `preSpec` annotation.
- `bladeop.daemonset`: `owner_references`, `build_container`,
  `build_pod_spec` and `build_daemonset` produce the manifest of the tool
  daemonset as dictionaries.
- `bladeop.reconciler`: `Reconciler(store, executor)` moves a blade
  through its phases with `reconcile(name)` and destroys its experiments
  with `finalize(blade)`, raising `FinalizeError` when that fails.
  `BladeStore` is an in-memory store that keeps status and the rest apart
  and drops a deleted blade once its finalizers are gone; the executor is
  anything with the `ExperimentExecutor` methods `create` and `destroy`.
  `parse_interval` reads durations such as `"72h"` or `"1h30m"`,
  `clean_up_destroying` clears the finalizers of blades stuck destroying
  longer than the interval, and `start_periodic_cleanup` runs it in a thread.

## A short tour

```python
from bladeop.version import has_cri_command
from bladeop.types import (
    ResourceStatus,
    create_fail_experiment_status,
    create_success_experiment_status,
)

assert has_cri_command("1.6.0")
assert not has_cri_command("1.4.9")

ok = ResourceStatus(kind="pod", identifier="default/node-1/nginx").succeed()
status = create_success_experiment_status([ok])
assert status.success and status.state == "Success"

failed = create_fail_experiment_status("see resStatuses for details", [])
assert failed.to_dict()["state"] == "Error"
```

Injecting a fault and recovering from it:

```python
from bladeop.faults import FaultRegistry, InjectMessage

registry = FaultRegistry()
registry.inject(InjectMessage(methods=["read", "write"], path="/data", delay=100, errno=28))
assert registry.get("read").errno == 28
registry.recover()
assert registry.get("read") is None
```

## What it does not do

- It talks to no cluster. Blades live in the in-memory `BladeStore`, pods
  are plain dictionaries, and the experiments themselves are run by an
  executor you supply.
- It mounts no file system. `FaultHook` decides what each operation should
  suffer, but wiring it into a FUSE mount is left to the caller.
- It serves no admission webhook over HTTPS; `PodMutator.handle` only
  computes the answer.
- It installs no command. `parse_settings` reads options, but there is no
  entry point that starts the operator.

## Running the tests

Install the `test` extra and run `pytest`.