import pytest

from etcdop.endpoints import (
    MASTER_NODE_LABEL,
    ConfigMap,
    EndpointsError,
    Node,
    endpoints,
    join_host_port,
)
from etcdop.members import BOOTSTRAP_IP_ANNOTATION_KEY


def _master(name, ip):
    return Node(name=name, internal_ip=ip, labels={MASTER_NODE_LABEL: ""})


def test_happy_path():
    cm = ConfigMap(
        name="etcd-endpoints",
        data={"0": "10.0.0.0", "1": "10.0.0.1", "2": "10.0.0.2"},
    )
    assert endpoints(cm, []) == [
        "https://10.0.0.0:2379",
        "https://10.0.0.1:2379",
        "https://10.0.0.2:2379",
    ]


def test_happy_path_with_bootstrap():
    cm = ConfigMap(
        name="etcd-endpoints",
        data={"0": "10.0.0.0"},
        annotations={BOOTSTRAP_IP_ANNOTATION_KEY: "10.0.0.42"},
    )
    assert endpoints(cm, []) == ["https://10.0.0.0:2379", "https://10.0.0.42:2379"]


def test_empty_bootstrap_annotation_is_ignored():
    cm = ConfigMap(
        name="etcd-endpoints",
        data={"0": "10.0.0.0"},
        annotations={BOOTSTRAP_IP_ANNOTATION_KEY: ""},
    )
    assert endpoints(cm, []) == ["https://10.0.0.0:2379"]


def test_configmap_not_available_with_nodes():
    nodes = [_master("0", "10.0.0.0"), _master("2", "10.0.0.2")]
    assert endpoints(None, nodes) == ["https://10.0.0.0:2379", "https://10.0.0.2:2379"]


def test_configmap_not_available_with_ipv6_nodes():
    nodes = [
        _master("0", "fda6:cfed:b298:2514:0000:0000:0000:0000"),
        _master("2", "fda6:cfed:b298:2514:0000:0000:0000:0001"),
    ]
    assert endpoints(None, nodes) == [
        "https://[fda6:cfed:b298:2514:0000:0000:0000:0000]:2379",
        "https://[fda6:cfed:b298:2514:0000:0000:0000:0001]:2379",
    ]


def test_configmap_not_available_no_nodes():
    with pytest.raises(EndpointsError, match="endpoints func found no etcd endpoints"):
        endpoints(None, [])


def test_non_master_nodes_are_skipped():
    nodes = [_master("0", "10.0.0.0"), Node(name="worker", internal_ip="10.0.0.9")]
    assert endpoints(None, nodes) == ["https://10.0.0.0:2379"]


def test_master_without_internal_ip_fails():
    with pytest.raises(EndpointsError, match="failed to get internal IP for node"):
        endpoints(None, [_master("0", "")])


def test_configmap_present_ignores_nodes():
    cm = ConfigMap(name="etcd-endpoints", data={"0": "10.0.0.5"})
    assert endpoints(cm, [_master("0", "10.0.0.0")]) == ["https://10.0.0.5:2379"]


@pytest.mark.parametrize(
    "host, port, expected",
    [
        ("10.0.0.1", "2379", "10.0.0.1:2379"),
        ("::1", "2379", "[::1]:2379"),
        ("localhost", 2380, "localhost:2380"),
    ],
)
def test_join_host_port(host, port, expected):
    assert join_host_port(host, port) == expected


def test_node_is_master():
    assert _master("0", "10.0.0.0").is_master
    assert not Node(name="w").is_master