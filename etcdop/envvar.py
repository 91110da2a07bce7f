"""Environment variables rendered into the etcd static pods."""

from __future__ import annotations

import ipaddress
import logging
import platform
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional, Sequence, Union

import yaml

from etcdop.endpoints import (
    ETCD_CLIENT_PORT,
    ETCD_ENDPOINTS_NAME,
    TARGET_NAMESPACE,
    ConfigMap,
    Node,
    join_host_port,
)
from etcdop.members import BOOTSTRAP_IP_ANNOTATION_KEY

log = logging.getLogger(__name__)

FIXED_ETCD_ENV_VARS: dict[str, str] = {
    "ETCD_DATA_DIR": "/var/lib/etcd",
    "ETCD_QUOTA_BACKEND_BYTES": "8589934592",  # 8 GB
    "ETCD_INITIAL_CLUSTER_STATE": "existing",
    "ETCD_ENABLE_PPROF": "true",
    "ETCD_EXPERIMENTAL_WATCH_PROGRESS_NOTIFY_INTERVAL": "5s",
    "ETCD_SOCKET_REUSE_ADDRESS": "true",
    "ETCD_EXPERIMENTAL_WARNING_APPLY_DURATION": "200ms",
}

CLUSTER_CONFIG_NAME = "cluster-config-v1"
CLUSTER_CONFIG_KEY = "install-config"

PLATFORM_AZURE = "Azure"
PLATFORM_IBM_CLOUD = "IBMCloud"
IBM_CLOUD_PROVIDER_TYPE_VPC = "VPC"

UNSUPPORTED_ARCHES = frozenset({"arm64", "s390x"})

SUPPORTED_ETCD_CIPHERS = frozenset(
    {
        "TLS_RSA_WITH_RC4_128_SHA",
        "TLS_RSA_WITH_3DES_EDE_CBC_SHA",
        "TLS_RSA_WITH_AES_128_CBC_SHA",
        "TLS_RSA_WITH_AES_256_CBC_SHA",
        "TLS_RSA_WITH_AES_128_CBC_SHA256",
        "TLS_RSA_WITH_AES_128_GCM_SHA256",
        "TLS_RSA_WITH_AES_256_GCM_SHA384",
        "TLS_ECDHE_ECDSA_WITH_RC4_128_SHA",
        "TLS_ECDHE_ECDSA_WITH_AES_128_CBC_SHA",
        "TLS_ECDHE_ECDSA_WITH_AES_256_CBC_SHA",
        "TLS_ECDHE_RSA_WITH_RC4_128_SHA",
        "TLS_ECDHE_RSA_WITH_3DES_EDE_CBC_SHA",
        "TLS_ECDHE_RSA_WITH_AES_128_CBC_SHA",
        "TLS_ECDHE_RSA_WITH_AES_256_CBC_SHA",
        "TLS_ECDHE_ECDSA_WITH_AES_128_CBC_SHA256",
        "TLS_ECDHE_RSA_WITH_AES_128_CBC_SHA256",
        "TLS_ECDHE_RSA_WITH_AES_128_GCM_SHA256",
        "TLS_ECDHE_ECDSA_WITH_AES_128_GCM_SHA256",
        "TLS_ECDHE_RSA_WITH_AES_256_GCM_SHA384",
        "TLS_ECDHE_ECDSA_WITH_AES_256_GCM_SHA384",
        "TLS_ECDHE_RSA_WITH_CHACHA20_POLY1305_SHA256",
        "TLS_ECDHE_ECDSA_WITH_CHACHA20_POLY1305_SHA256",
    }
)

_ARCH_NAMES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "s390x": "s390x",
    "ppc64le": "ppc64le",
}

_INTEGER = re.compile(r"[+-]?[0-9]+")


class EnvVarError(Exception):
    """Raised when the etcd environment cannot be generated."""


def _host_arch() -> str:
    machine = platform.machine().lower()
    return _ARCH_NAMES.get(machine, machine)


@dataclass
class EnvVarContext:
    """Everything the etcd environment is computed from."""

    node_names: Sequence[str] = ()
    nodes: Mapping[str, Node] = field(default_factory=dict)
    endpoints_configmap: Optional[ConfigMap] = None
    cluster_config: Optional[ConfigMap] = None
    observed_config: Union[bytes, str] = b""
    target_image_pull_spec: str = ""
    platform: Optional[str] = None
    ibm_cloud_provider_type: str = ""
    arch: str = field(default_factory=_host_arch)


def env_var_safe(node_name: str) -> str:
    """Turn a node name into a fragment usable in an environment variable name."""
    return node_name.replace("-", "_").replace(".", "_")


def _require_node_names(context: EnvVarContext, source: str) -> Sequence[str]:
    if not context.node_names:
        raise EnvVarError(f"empty NodeStatuses, can't generate environment for {source}")
    return context.node_names


def _escaped_ip(context: EnvVarContext, node_name: str) -> str:
    try:
        node = context.nodes[node_name]
    except KeyError:
        raise EnvVarError(f'node "{node_name}" not found') from None
    if not node.internal_ip:
        raise EnvVarError(f"node/{node_name} missing an internal IP")
    try:
        address = ipaddress.ip_address(node.internal_ip)
    except ValueError as err:
        raise EnvVarError(f"node/{node_name} has an invalid internal IP: {err}") from err
    if address.version == 6:
        return f"[{node.internal_ip}]"
    return node.internal_ip


def _escaped_ip_addresses(context: EnvVarContext) -> dict[str, str]:
    names = _require_node_names(context, "getEscapedIPAddress")
    return {f"NODE_{env_var_safe(n)}_IP": _escaped_ip(context, n) for n in names}


def _etcd_url_hosts(context: EnvVarContext) -> dict[str, str]:
    names = _require_node_names(context, "getEtcdURLHost")
    return {f"NODE_{env_var_safe(n)}_ETCD_URL_HOST": _escaped_ip(context, n) for n in names}


def _fixed_env_vars(_: EnvVarContext) -> dict[str, str]:
    return dict(FIXED_ETCD_ENV_VARS)


def _etcd_names(context: EnvVarContext) -> dict[str, str]:
    names = _require_node_names(context, "getEtcdName")
    return {f"NODE_{env_var_safe(n)}_ETCD_NAME": n for n in names}


def _all_etcd_endpoints(context: EnvVarContext) -> dict[str, str]:
    return {"ALL_ETCD_ENDPOINTS": get_etcd_endpoints(context.endpoints_configmap, False)}


def _etcdctl_env_vars(context: EnvVarContext) -> dict[str, str]:
    endpoints = get_etcd_endpoints(context.endpoints_configmap, True)
    return {
        "ETCDCTL_API": "3",
        "ETCDCTL_CACERT": "/etc/kubernetes/static-pod-certs/configmaps/etcd-serving-ca/ca-bundle.crt",
        "ETCDCTL_CERT": "/etc/kubernetes/static-pod-certs/secrets/etcd-all-certs/etcd-peer-NODE_NAME.crt",
        "ETCDCTL_KEY": "/etc/kubernetes/static-pod-certs/secrets/etcd-all-certs/etcd-peer-NODE_NAME.key",
        "ETCDCTL_ENDPOINTS": endpoints,
        "ETCD_IMAGE": context.target_image_pull_spec,
    }


def _is_slow_platform(context: EnvVarContext) -> bool:
    if context.platform == PLATFORM_AZURE:
        return True
    return (
        context.platform == PLATFORM_IBM_CLOUD
        and context.ibm_cloud_provider_type == IBM_CLOUD_PROVIDER_TYPE_VPC
    )


def _heartbeat_interval(context: EnvVarContext) -> dict[str, str]:
    return {"ETCD_HEARTBEAT_INTERVAL": "500" if _is_slow_platform(context) else "100"}


def _election_timeout(context: EnvVarContext) -> dict[str, str]:
    return {"ETCD_ELECTION_TIMEOUT": "2500" if _is_slow_platform(context) else "1000"}


def _unsupported_arch(context: EnvVarContext) -> Optional[dict[str, str]]:
    if context.arch not in UNSUPPORTED_ARCHES:
        return None
    return {"ETCD_UNSUPPORTED_ARCH": context.arch}


def _load_yaml_mapping(raw: Union[bytes, str]) -> dict[str, Any]:
    loaded = yaml.safe_load(raw) if raw else None
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError(f"expected a mapping, got {type(loaded).__name__}")
    return loaded


def _nested_string_list(obj: Mapping[str, Any], *path: str) -> list[str]:
    current: Any = obj
    for depth, key in enumerate(path):
        if not isinstance(current, Mapping):
            accessor = "." + ".".join(path[:depth])
            raise ValueError(f"{accessor} accessor error: {current!r} is not a map")
        if key not in current:
            return []
        current = current[key]
    accessor = "." + ".".join(path)
    if not isinstance(current, list):
        raise ValueError(f"{accessor} accessor error: {current!r} is not a list")
    for item in current:
        if not isinstance(item, str):
            raise ValueError(f"{accessor} contains non-string value: {item!r}")
    return list(current)


def _cipher_suites(context: EnvVarContext) -> dict[str, str]:
    try:
        observed = _load_yaml_mapping(context.observed_config)
    except (yaml.YAMLError, ValueError) as err:
        raise EnvVarError(f"failed to unmarshal the observedConfig: {err}") from err
    try:
        observed_suites = _nested_string_list(observed, "servingInfo", "cipherSuites")
    except ValueError as err:
        raise EnvVarError(f"couldn't get cipherSuites from observedConfig: {err}") from err

    actual = [suite for suite in observed_suites if suite in SUPPORTED_ETCD_CIPHERS]
    if not actual:
        raise EnvVarError("no supported cipherSuites not found in observedConfig")
    return {"ETCD_CIPHER_SUITES": ",".join(actual)}


def _max_learners(context: EnvVarContext) -> dict[str, str]:
    cluster_config = context.cluster_config
    if cluster_config is None:
        err = EnvVarError(
            f"failed to get configmap {TARGET_NAMESPACE}/{CLUSTER_CONFIG_NAME} :"
            f'configmaps "{CLUSTER_CONFIG_NAME}" not found'
        )
        log.error("%s", err)
        raise err

    try:
        install_config = _load_yaml_mapping(cluster_config.data.get(CLUSTER_CONFIG_KEY, ""))
        control_plane = install_config.get("controlPlane") or {}
        if not isinstance(control_plane, dict):
            raise ValueError("controlPlane is not a mapping")
    except (yaml.YAMLError, ValueError) as cause:
        err = EnvVarError(
            f"{CLUSTER_CONFIG_KEY} key doesn't exist in configmap "
            f"{TARGET_NAMESPACE}/{CLUSTER_CONFIG_NAME} :{cause}"
        )
        log.error("%s", err)
        raise err from cause

    replicas = control_plane.get("replicas")
    replicas_text = "" if replicas is None else str(replicas)
    if not _INTEGER.fullmatch(replicas_text):
        err = EnvVarError(
            f'failed to convert replica {replicas_text}: invalid syntax for "{replicas_text}"'
        )
        log.error("%s", err)
        raise err
    return {"ETCD_EXPERIMENTAL_MAX_LEARNERS": str(int(replicas_text))}


_ENV_VAR_FUNCS: tuple[Callable[[EnvVarContext], Optional[dict[str, str]]], ...] = (
    _escaped_ip_addresses,
    _etcd_url_hosts,
    _fixed_env_vars,
    _etcd_names,
    _all_etcd_endpoints,
    _etcdctl_env_vars,
    _heartbeat_interval,
    _election_timeout,
    _unsupported_arch,
    _cipher_suites,
    _max_learners,
)


def get_etcd_env_vars(context: EnvVarContext) -> dict[str, str]:
    """Return the environment variables to set on the etcd static pods."""
    result: dict[str, str] = {}
    for func in _ENV_VAR_FUNCS:
        new_vars = func(context)
        if new_vars is None:
            continue
        for key, value in new_vars.items():
            if key in result:
                raise EnvVarError(f'key "{key}" already set to "{result[key]}"')
            result[key] = value
    return result


def _is_ip(text: str) -> bool:
    if "%" in text:
        return False
    try:
        ipaddress.ip_address(text)
    except ValueError:
        return False
    return True


def get_etcd_endpoints(configmap: Optional[ConfigMap], skip_bootstrap: bool) -> str:
    """Comma-separated, sorted client URLs from the endpoints ConfigMap."""
    if configmap is None:
        raise EnvVarError(f'configmaps "{ETCD_ENDPOINTS_NAME}" not found')

    urls: list[str] = []
    bootstrap = configmap.annotations.get(BOOTSTRAP_IP_ANNOTATION_KEY, "")
    if not skip_bootstrap and bootstrap:
        if not _is_ip(bootstrap):
            raise EnvVarError(
                f"configmaps/{ETCD_ENDPOINTS_NAME} contains invalid bootstrap ip address: {bootstrap}"
            )
        urls.append(f"https://{join_host_port(bootstrap, ETCD_CLIENT_PORT)}")
    for address in configmap.data.values():
        if not _is_ip(address):
            raise EnvVarError(
                f"configmaps/{ETCD_ENDPOINTS_NAME} contains invalid ip address: {address}"
            )
        urls.append(f"https://{join_host_port(address, ETCD_CLIENT_PORT)}")
    return ",".join(sorted(urls))


@dataclass
class FakeEnvVar:
    """A fixed set of environment variables for tests of dependent controllers."""

    env_vars: dict[str, str] = field(default_factory=dict)
    listeners: list[Any] = field(default_factory=list)

    def add_listener(self, listener: Any) -> None:
        """Register a listener to be notified of changes."""
        self.listeners.append(listener)

    def get_env_vars(self) -> dict[str, str]:
        """Return the configured environment variables."""
        return self.env_vars