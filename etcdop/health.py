"""Health checks of etcd members and quorum calculations."""

from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from etcdop.members import Member, get_member_name_or_host, has_started

log = logging.getLogger(__name__)

RAFT_TERMS_METRIC_NAME = "etcd_debugging_raft_terms_total"
DEFAULT_HEALTH_TIMEOUT = 30.0


class QuorumError(Exception):
    """Raised when the cluster's quorum cannot tolerate a member loss."""


@dataclass
class HealthCheck:
    """Outcome of checking a single member."""

    member: Member
    healthy: bool = False
    took: Optional[float] = None
    error: Optional[BaseException] = None


class MemberHealth(list):
    """A list of HealthCheck results for a cluster."""

    def status(self) -> str:
        """Describe how many members are available and which are not."""
        healthy = self.healthy_members()
        if len(self) == len(healthy):
            return f"{len(self)} members are available"
        parts = [f"{len(healthy)} of {len(self)} members are available"]
        for check in self:
            if not has_started(check.member):
                parts.append(f"{get_member_name_or_host(check.member)} has not started")
            elif not check.healthy:
                parts.append(f"{check.member.name} is unhealthy")
        return ", ".join(parts)

    def healthy_members(self) -> list[Member]:
        """Members whose check succeeded."""
        return [check.member for check in self if check.healthy]

    def unhealthy_members(self) -> list[Member]:
        """Members whose check failed."""
        return [check.member for check in self if not check.healthy]

    def unstarted_members(self) -> list[Member]:
        """Members that have not started yet."""
        return [check.member for check in self if not has_started(check.member)]


class RaftTermsCollector:
    """Thread-safe record of the raft term observed by each member."""

    def __init__(self) -> None:
        self.name = RAFT_TERMS_METRIC_NAME
        self.description = "Number of etcd raft terms as observed by each member."
        self._terms: dict[str, int] = {}
        self._lock = threading.Lock()

    def set(self, member: str, value: int) -> None:
        """Record the raft term seen by a member."""
        with self._lock:
            self._terms[member] = value

    def forget(self, member: str) -> None:
        """Drop a member; forgetting an unknown member is harmless."""
        with self._lock:
            self._terms.pop(member, None)

    def members(self) -> list[str]:
        """Names of the members with a recorded term."""
        with self._lock:
            return list(self._terms)

    def collect(self) -> list[tuple[str, float]]:
        """Return (member, term) samples sorted by member name."""
        with self._lock:
            return sorted((member, float(term)) for member, term in self._terms.items())


RAFT_TERMS = RaftTermsCollector()

# A checker receives a member, performs a read against it and returns the raft
# term from the response header (or None when the response carried none).
HealthChecker = Callable[[Member], Optional[int]]


def _check_single_member(
    member: Member, checker: HealthChecker, collector: RaftTermsCollector
) -> HealthCheck:
    start = time.monotonic()
    try:
        term = checker(member)
    except Exception as err:  # noqa: BLE001 - any failure marks the member unhealthy
        log.error("health check for member (%s) failed: err(%s)", member.name, err)
        wrapped = RuntimeError(f"health check failed: {err}")
        wrapped.__cause__ = err
        return HealthCheck(member, healthy=False, took=time.monotonic() - start, error=wrapped)
    took = time.monotonic() - start
    if term is not None:
        collector.set(member.name, term)
    return HealthCheck(member, healthy=True, took=took)


def get_member_health(
    members: Iterable[Member],
    checker: HealthChecker,
    collector: Optional[RaftTermsCollector] = None,
    timeout: float = DEFAULT_HEALTH_TIMEOUT,
) -> MemberHealth:
    """Check every member in turn, giving each at most ``timeout`` seconds."""
    collector = RAFT_TERMS if collector is None else collector
    members = list(members)
    result = MemberHealth()
    for member in members:
        if not has_started(member):
            result.append(HealthCheck(member, healthy=False))
            continue

        outcome: queue.Queue[HealthCheck] = queue.Queue(maxsize=1)
        worker = threading.Thread(
            target=lambda m=member: outcome.put(_check_single_member(m, checker, collector)),
            daemon=True,
        )
        worker.start()
        try:
            result.append(outcome.get(timeout=timeout))
        except queue.Empty:
            result.append(
                HealthCheck(
                    member,
                    healthy=False,
                    error=TimeoutError(
                        f"{timeout:g}s timeout waiting for member {member.name} "
                        "to respond to health check"
                    ),
                )
            )

    known = {member.name for member in members}
    for cached in collector.members():
        if cached not in known:
            collector.forget(cached)
    return result


def get_unhealthy_member_names(member_health: Iterable[HealthCheck]) -> list[str]:
    """Names (or pending hosts) of unhealthy members."""
    return [get_member_name_or_host(c.member) for c in member_health if not c.healthy]


def get_healthy_member_names(member_health: Iterable[HealthCheck]) -> list[str]:
    """Names of healthy members."""
    return [c.member.name for c in member_health if c.healthy]


def get_unstarted_member_names(member_health: Iterable[HealthCheck]) -> list[str]:
    """Pending names of members that have not started."""
    return [get_member_name_or_host(c.member) for c in member_health if not has_started(c.member)]


def minimum_tolerable_quorum(members: int) -> int:
    """Return the quorum size for a cluster of ``members`` members."""
    if members <= 0:
        raise QuorumError(f"invalid etcd member length: {members}")
    return members // 2 + 1


def check_quorum_fault_tolerant(member_health: Iterable[HealthCheck]) -> None:
    """Raise QuorumError unless the cluster can lose one member and keep quorum."""
    checks = list(member_health)
    total = len(checks)
    try:
        quorum = minimum_tolerable_quorum(total)
    except QuorumError as err:
        raise QuorumError(
            "etcd cluster could not determine minimum quorum required. "
            f"total number of members is {total}. minimum quorum required is 0: {err}"
        ) from err
    healthy = len(get_healthy_member_names(checks))
    if total - quorum < 1:
        raise QuorumError(
            f"etcd cluster has quorum of {quorum} which is not fault tolerant: {checks!r}"
        )
    if healthy - quorum < 1:
        raise QuorumError(
            f"etcd cluster has quorum of {quorum} and {healthy} healthy members "
            f"which is not fault tolerant: {checks!r}"
        )


def is_quorum_fault_tolerant(member_health: Iterable[HealthCheck]) -> bool:
    """Report whether the cluster can lose one member and keep quorum."""
    try:
        check_quorum_fault_tolerant(member_health)
    except QuorumError as err:
        log.error("%s", err)
        return False
    return True


def is_cluster_healthy(member_health: Iterable[HealthCheck]) -> bool:
    """True when no member is unhealthy."""
    return not MemberHealth(member_health).unhealthy_members()