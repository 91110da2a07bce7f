"""An in-memory etcd client for exercising controllers without a cluster."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from etcdop.health import HealthCheck, MemberHealth
from etcdop.members import Member, MemberNotFoundError, filter_voting_members


class MemberNotLearnerError(Exception):
    """Raised when promoting a member that is already a voting member."""

    def __init__(self) -> None:
        super().__init__("membership: can only promote a learner member")


@dataclass(frozen=True)
class FakeMemberHealth:
    """How many members the fake client reports as healthy and unhealthy."""

    healthy: int = 0
    unhealthy: int = 0


class FakeEtcdClient:
    """Keeps a member list in memory and answers from configured outcomes.

    ``status`` maps member IDs to the status response returned for that
    member's first client URL. ``defrag_errors`` are raised one per call to
    ``defragment`` before it starts succeeding.
    """

    def __init__(
        self,
        members: Iterable[Member],
        *,
        health: Optional[FakeMemberHealth] = None,
        status: Optional[Mapping[int, Any]] = None,
        defrag_errors: Optional[Iterable[BaseException]] = None,
        db_size: int = 0,
        db_size_in_use: int = 0,
    ) -> None:
        self._members = list(members)
        self._health = health or FakeMemberHealth()
        if self._health.healthy > 0 or self._health.unhealthy > 0:
            total = self._health.healthy + self._health.unhealthy
            if total != len(self._members):
                raise ValueError(
                    "cluster health count must equal the number of members: "
                    f"have {total}, want {len(self._members)}"
                )
        self._status = dict(status or {})
        self._defrag_errors = list(defrag_errors or [])
        self.db_size = db_size
        self.db_size_in_use = db_size_in_use

    def defragment(self, member: Member) -> None:
        """Raise the next queued error, or shrink the database to its in-use size."""
        if self._defrag_errors:
            raise self._defrag_errors.pop(0)
        self.db_size = self.db_size_in_use

    def status(self, target: str) -> Any:
        """Return the configured status of the member whose first client URL is target."""
        for member in self._members:
            if member.client_urls and member.client_urls[0] == target:
                try:
                    return self._status[member.id]
                except KeyError:
                    raise LookupError(
                        f"no status found for member {member.id} matching target {target!r}."
                    ) from None
        raise LookupError(f"status failed no match for target: {target!r}")

    def member_add_as_learner(self, peer_url: str) -> None:
        """Append a learner member with the given peer URL."""
        count = len(self._members)
        self._members.append(
            Member(
                name=f"m-{count + 1}",
                id=count + 1,
                peer_urls=[peer_url],
                is_learner=True,
            )
        )

    def member_promote(self, member: Member) -> None:
        """Turn the learner with the member's ID into a voting member."""
        target = next((m for m in self._members if m.id == member.id), None)
        if target is None:
            raise LookupError(
                f"member with the given (ID: {member.id}) and (name: {member.name}) doesn't exist"
            )
        if not target.is_learner:
            raise MemberNotLearnerError()
        target.is_learner = False

    def member_list(self) -> list[Member]:
        """All members."""
        return list(self._members)

    def voting_member_list(self) -> list[Member]:
        """All non-learner members."""
        return filter_voting_members(self._members)

    def member_remove(self, member_id: int) -> None:
        """Remove the member with the given ID."""
        if not any(m.id == member_id for m in self._members):
            raise LookupError(f"member with the given ID: {member_id} doesn't exist")
        self._members = [m for m in self._members if m.id != member_id]

    def member_health(self) -> MemberHealth:
        """Report the first members healthy as configured; all healthy by default."""
        healthy = unhealthy = 0
        result = MemberHealth()
        for member in self._members:
            check = HealthCheck(member)
            if self._health.healthy == 0 and self._health.unhealthy == 0:
                check.healthy = True
            elif self._health.healthy > 0 and healthy < self._health.healthy:
                check.healthy = True
                healthy += 1
            elif self._health.unhealthy > 0 and unhealthy < self._health.unhealthy:
                unhealthy += 1
            result.append(check)
        return result

    def is_member_healthy(self, member: Member) -> bool:
        """True when every member is configured healthy."""
        return len(self._members) == self._health.healthy

    def unhealthy_members(self) -> list[Member]:
        """The first ``unhealthy`` members."""
        if self._health.unhealthy > 0:
            return self._members[: self._health.unhealthy]
        return []

    def unhealthy_voting_members(self) -> list[Member]:
        """Unhealthy members that are not learners."""
        return filter_voting_members(self.unhealthy_members())

    def healthy_members(self) -> list[Member]:
        """The members after the unhealthy ones, when any are configured healthy."""
        if self._health.healthy > 0:
            return self._members[self._health.unhealthy :]
        return []

    def healthy_voting_members(self) -> list[Member]:
        """Healthy members that are not learners."""
        return filter_voting_members(self.healthy_members())

    def get_member(self, name: str) -> Member:
        """Return the member with the given name."""
        for member in self._members:
            if member.name == name:
                return member
        raise MemberNotFoundError(name)