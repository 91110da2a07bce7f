"""Discovery of the etcd client endpoints from the endpoints ConfigMap or control-plane nodes."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from etcdop.members import BOOTSTRAP_IP_ANNOTATION_KEY

log = logging.getLogger(__name__)

TARGET_NAMESPACE = "openshift-etcd"
ETCD_ENDPOINTS_NAME = "etcd-endpoints"
ETCD_CLIENT_PORT = "2379"
MASTER_NODE_LABEL = "node-role.kubernetes.io/master"


class EndpointsError(Exception):
    """Raised when no usable etcd endpoints can be determined."""


@dataclass
class ConfigMap:
    """A named set of string data with annotations."""

    name: str
    namespace: str = TARGET_NAMESPACE
    data: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)


@dataclass
class Node:
    """A cluster node with its internal address and labels."""

    name: str
    internal_ip: str = ""
    labels: dict[str, str] = field(default_factory=dict)

    @property
    def is_master(self) -> bool:
        """True for control-plane nodes."""
        return MASTER_NODE_LABEL in self.labels


def join_host_port(host: str, port: object) -> str:
    """Combine host and port, bracketing hosts that contain a colon."""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def _client_url(host: str) -> str:
    return f"https://{join_host_port(host, ETCD_CLIENT_PORT)}"


def endpoints(configmap: Optional[ConfigMap], nodes: Iterable[Node] = ()) -> list[str]:
    """Return the sorted client URLs of the voting etcd members.

    The endpoints ConfigMap is used when present; otherwise the internal
    addresses of the control-plane nodes are used.
    """
    urls: list[str] = []
    if configmap is None:
        log.error(
            "failed to list endpoints from %s/%s, falling back to listing nodes",
            TARGET_NAMESPACE,
            ETCD_ENDPOINTS_NAME,
        )
        for node in nodes:
            if not node.is_master:
                continue
            if not node.internal_ip:
                raise EndpointsError(
                    f"failed to get internal IP for node: node/{node.name} missing an internal IP"
                )
            urls.append(_client_url(node.internal_ip))
    else:
        bootstrap_ip = configmap.annotations.get(BOOTSTRAP_IP_ANNOTATION_KEY, "")
        if bootstrap_ip:
            urls.append(_client_url(bootstrap_ip))
        urls.extend(_client_url(address) for address in configmap.data.values())

    if not urls:
        raise EndpointsError("endpoints func found no etcd endpoints")
    return sorted(urls)