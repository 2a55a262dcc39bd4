"""Command-line settings of the operator and product image repositories."""

from __future__ import annotations

import argparse
from dataclasses import dataclass

from bladeop import version

OPERATOR_CHAOSBLADE_PATH = "/opt/chaosblade"
OPERATOR_CHAOSBLADE_BIN = "/opt/chaosblade/bin"
OPERATOR_CHAOSBLADE_LIB = "/opt/chaosblade/lib"
OPERATOR_CHAOSBLADE_YAML = "/opt/chaosblade/yaml"
OPERATOR_CHAOSBLADE_BLADE = "/opt/chaosblade/blade"

DAEMONSET_POD_NAME = "chaosblade-tool"
DAEMONSET_POD_LABELS = {"app": "chaosblade-tool"}
DEFAULT_REMOVE_BLADE_INTERVAL = "72h"
DEFAULT_IMAGE_REPOSITORY = "chaosbladeio/chaosblade-tool"

AHAS = "ahas"
COMMUNITY = "community"
_PROD_ENV = "prod"
_PUBLIC_REGION = "cn-public"

_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


@dataclass
class OperatorSettings:
    """All settings the operator takes from the command line."""

    log_level: str = "info"
    reconcile_count: int = 20
    qps: float = 20.0
    aliyun_region_id: str = ""
    aliyun_environment: str = ""
    chaosblade_version: str = version.VERSION
    chaosblade_image_repository: str = DEFAULT_IMAGE_REPOSITORY
    chaosblade_image_pull_policy: str = "IfNotPresent"
    daemonset_enable: bool = False
    remove_blade_interval: str = DEFAULT_REMOVE_BLADE_INTERVAL
    chaosblade_download_url: str = ""
    chaosblade_namespace: str = "chaosblade"
    fuse_sidecar_image: str = ""
    fuse_server_port: int = 65534
    webhook_port: int = 9443
    webhook_enable: bool = False
    product: str = version.PRODUCT

    def image_repo(self, product: str | None = None) -> str:
        """Return the chaosblade tool image repository for a product."""
        if product is None:
            product = self.product
        if product == COMMUNITY:
            return self.chaosblade_image_repository
        if product == AHAS:
            return aliyun_image_repo(self.aliyun_region_id, self.aliyun_environment)
        raise ValueError(f"unknown product {product!r}")


def aliyun_image_repo(region_id: str, environment: str) -> str:
    """Return the image repository of the cloud product for a region and environment."""
    if region_id == _PUBLIC_REGION:
        if environment == _PROD_ENV:
            return "registry.cn-hangzhou.aliyuncs.com/ahascr-public/chaosblade-tool"
        return "registry.cn-hangzhou.aliyuncs.com/ahas-public/chaosblade-tool"
    if environment == _PROD_ENV:
        return f"registry-vpc.{region_id}.aliyuncs.com/ahascr/chaosblade-tool"
    return f"registry-vpc.{region_id}.aliyuncs.com/ahas/chaosblade-tool"


def _parse_bool(text: str) -> bool:
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value {text!r}")


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for all operator flags."""
    defaults = OperatorSettings()
    parser = argparse.ArgumentParser(prog="chaosblade-operator")

    def add_bool(flag: str, dest: str, help_text: str) -> None:
        parser.add_argument(
            flag, dest=dest, type=_parse_bool, nargs="?", const=True,
            default=getattr(defaults, dest), help=help_text,
        )

    parser.add_argument("--log-level", dest="log_level", default=defaults.log_level,
                        help="Log level, such as panic|fatal|error|warn|info|debug|trace")
    parser.add_argument("--reconcile-count", dest="reconcile_count", type=int,
                        default=defaults.reconcile_count,
                        help="Max concurrent reconciles count, default value is 20")
    parser.add_argument("--qps", dest="qps", type=float, default=defaults.qps,
                        help="qps of kubernetes client")
    parser.add_argument("--aliyun-region-id", dest="aliyun_region_id",
                        default=defaults.aliyun_region_id, help="Region id for cloud provider")
    parser.add_argument("--aliyun-environment", dest="aliyun_environment",
                        default=defaults.aliyun_environment, help="Environment for cloud provider")
    parser.add_argument("--chaosblade-version", dest="chaosblade_version",
                        default=defaults.chaosblade_version, help="Chaosblade tool version")
    parser.add_argument("--chaosblade-image-repository", dest="chaosblade_image_repository",
                        default=defaults.chaosblade_image_repository,
                        help="Image repository of chaosblade tool")
    parser.add_argument("--chaosblade-image-pull-policy", dest="chaosblade_image_pull_policy",
                        default=defaults.chaosblade_image_pull_policy,
                        help="Pulling policy of chaosblade image")
    add_bool("--daemonset-enable", "daemonset_enable",
             "Deploy chaosblade daemonset to resolve chaos experiment environment of network")
    parser.add_argument("--remove-blade-interval", dest="remove_blade_interval",
                        default=defaults.remove_blade_interval,
                        help="Periodically clean up blades whose state is destroying")
    parser.add_argument("--chaosblade-download-url", dest="chaosblade_download_url",
                        default=defaults.chaosblade_download_url,
                        help="The chaosblade download address used in download mode")
    parser.add_argument("--chaosblade-namespace", dest="chaosblade_namespace",
                        default=defaults.chaosblade_namespace,
                        help="The chaosblade deployment namespace")
    parser.add_argument("--fuse-sidecar-image", dest="fuse_sidecar_image",
                        default=defaults.fuse_sidecar_image, help="Fuse sidecar image")
    parser.add_argument("--fuse-server-port", dest="fuse_server_port", type=int,
                        default=defaults.fuse_server_port, help="Fuse server port")
    parser.add_argument("--webhook-port", dest="webhook_port", type=int,
                        default=defaults.webhook_port, help="The port on which to serve HTTPS.")
    add_bool("--webhook-enable", "webhook_enable", "Whether to enable webhook")
    return parser


def parse_settings(argv: list[str] | None = None) -> OperatorSettings:
    """Parse command-line arguments into operator settings."""
    args = build_parser().parse_args(argv)
    return OperatorSettings(**vars(args))