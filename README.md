# etcdop

Building blocks for an operator that manages an etcd cluster.

- **Members** (`etcdop.members`): the `Member` model, the `MemberStatus`
  enum, `ClientOptions` (dial timeout, changed with `with_dial_timeout`), the
  `EtcdClient` protocol listing the operations an etcd client offers, and the
  helpers `filter_voting_members`, `has_started` and
  `get_member_name_or_host`. `MemberNotFoundError` is raised by `get_member`
  when no member has the requested name.
- **Health and quorum** (`etcdop.health`): `get_member_health` runs a
  caller-supplied checker against every started member, each in its own
  thread with a timeout (30 seconds by default), and returns a `MemberHealth`
  list of `HealthCheck` results. `MemberHealth.status()` summarises the
  cluster. `healthy_members()`, `unhealthy_members()` and
  `unstarted_members()` filter the results. Raft terms returned by the checker
  are recorded in a `RaftTermsCollector`; members that are no longer in the
  cluster are dropped from it. The quorum helpers are
  `minimum_tolerable_quorum`, `is_quorum_fault_tolerant`,
  `check_quorum_fault_tolerant` (raises `QuorumError`) and
  `is_cluster_healthy`.
- **Fake client** (`etcdop.fakeclient`): `FakeEtcdClient` keeps a member list
  in memory. Its health is configured with `FakeMemberHealth`, and it can
  also be given status responses and queued defragment errors.
  `member_promote` raises `MemberNotLearnerError` when asked to promote a
  voting member.
- **Endpoints** (`etcdop.endpoints`): `endpoints()` builds the sorted list of
  client URLs. It takes them from the endpoints `ConfigMap`, including the
  bootstrap address annotation. When there is no ConfigMap it uses the
  internal IPs of the control-plane `Node`s instead. It raises
  `EndpointsError` when it finds none. `join_host_port` puts IPv6 hosts in
  brackets.
- **Static pod environment** (`etcdop.envvar`): `get_etcd_env_vars()` renders
  the environment variables for the etcd static pods from an `EnvVarContext`:
  node IPs and names, endpoints, etcdctl settings, heartbeat and election
  timeouts for the platform, cipher suites from the observed config, and
  max learners from the install config. It raises `EnvVarError` on bad input
  or when a key is set twice. `get_etcd_endpoints` and `env_var_safe` are
  available on their own. `FakeEnvVar` holds a fixed environment.
- **Conditions** (`etcdop.conditions`): `Condition` and `OperatorStatus`.
  `set_condition` adds or updates a condition, and moves its transition time
  only when its status changes. `get_condition` and `is_condition_true` read
  conditions back.

## Installation

```
pip install .
```

## Examples

Quorum:

```python
from etcdop.health import minimum_tolerable_quorum

minimum_tolerable_quorum(3)   # 2
minimum_tolerable_quorum(5)   # 3
```

A fake cluster:

```python
from etcdop.members import Member
from etcdop.fakeclient import FakeEtcdClient, FakeMemberHealth

members = [
    Member(id=1, name="etcd-1", peer_urls=["https://10.0.0.1:2380"],
           client_urls=["https://10.0.0.1:2379"]),
    Member(id=2, name="etcd-2", peer_urls=["https://10.0.0.2:2380"],
           client_urls=["https://10.0.0.2:2379"]),
]
client = FakeEtcdClient(members, health=FakeMemberHealth(healthy=2, unhealthy=0))
print(client.member_health().status())   # "2 members are available"
```

Health checks with your own checker:

```python
from etcdop.health import get_member_health

def checker(member):
    # read from the member here; return the raft term, or None
    return 7

health = get_member_health(members, checker)
print(health.status())
```

Endpoints:

```python
from etcdop.endpoints import ConfigMap, endpoints
from etcdop.members import BOOTSTRAP_IP_ANNOTATION_KEY

cm = ConfigMap(
    name="etcd-endpoints",
    data={"member-0": "10.0.0.1"},
    annotations={BOOTSTRAP_IP_ANNOTATION_KEY: "10.0.0.42"},
)
endpoints(cm)   # ["https://10.0.0.1:2379", "https://10.0.0.42:2379"]
```

## What this package does not do

The package does not talk to a live etcd cluster. It has no network client,
no TLS setup and no cache of open connections. The `EtcdClient` protocol
describes the operations such a client offers, and `FakeEtcdClient` is the
only implementation here. Health checks call whatever checker you pass in.

There are no controllers, reconcile loops, event recording, or commands to
run. Nothing here removes the bootstrap member or waits for it to be removed.
Deciding when and how to call these functions is up to the caller.

## Running the tests

```
pip install ".[test]"
pytest
```