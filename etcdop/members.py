"""Etcd cluster members, client options and the client interface used to manage them."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable, Protocol, runtime_checkable
from urllib.parse import urlsplit

if TYPE_CHECKING:
    from etcdop.health import MemberHealth

BOOTSTRAP_IP_ANNOTATION_KEY = "alpha.installer.openshift.io/etcd-bootstrap"
DEFAULT_DIAL_TIMEOUT = 15.0
DEFRAG_DIAL_TIMEOUT = 60.0
DEFAULT_CLIENT_TIMEOUT = 30.0

_MEMBER_GROUP = "etcd.operator.openshift.io"
_MEMBER_RESOURCE = "etcdmembers"


@dataclass
class Member:
    """A member of an etcd cluster as reported by the member list API."""

    name: str = ""
    id: int = 0
    peer_urls: list[str] = field(default_factory=list)
    client_urls: list[str] = field(default_factory=list)
    is_learner: bool = False


class MemberStatus(str, Enum):
    """Reachability of a single etcd member."""

    AVAILABLE = "EtcdMemberAvailable"
    NOT_STARTED = "EtcdMemberNotStarted"
    UNHEALTHY = "EtcdMemberUnhealthy"
    UNKNOWN = "EtcdMemberUnknown"


@dataclass(frozen=True)
class ClientOptions:
    """Options used when dialing a new etcd client."""

    dial_timeout: float = DEFAULT_DIAL_TIMEOUT

    def with_dial_timeout(self, timeout: float) -> ClientOptions:
        """Return a copy of these options with another dial timeout."""
        return replace(self, dial_timeout=timeout)


class MemberNotFoundError(LookupError):
    """Raised when no member carries the requested name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f'{_MEMBER_RESOURCE}.{_MEMBER_GROUP} "{name}" not found')


@runtime_checkable
class EtcdClient(Protocol):
    """Operations the operator performs against an etcd cluster."""

    def defragment(self, member: Member) -> Any:
        """Defragment the storage of a member."""
        ...

    def status(self, target: str) -> Any:
        """Return the endpoint status of a client URL."""
        ...

    def member_add_as_learner(self, peer_url: str) -> None:
        """Add a new learner member with the given peer URL."""
        ...

    def member_promote(self, member: Member) -> None:
        """Promote a learner member to a voting member."""
        ...

    def member_health(self) -> MemberHealth:
        """Check the health of every member."""
        ...

    def is_member_healthy(self, member: Member) -> bool:
        """Report whether a single member is healthy."""
        ...

    def member_list(self) -> list[Member]:
        """List all members of the cluster."""
        ...

    def voting_member_list(self) -> list[Member]:
        """List all non-learner members of the cluster."""
        ...

    def member_remove(self, member_id: int) -> None:
        """Remove the member with the given ID."""
        ...

    def healthy_members(self) -> list[Member]:
        """List all healthy members."""
        ...

    def healthy_voting_members(self) -> list[Member]:
        """List all healthy non-learner members."""
        ...

    def unhealthy_members(self) -> list[Member]:
        """List all unhealthy members."""
        ...

    def unhealthy_voting_members(self) -> list[Member]:
        """List all unhealthy non-learner members."""
        ...

    def member_status(self, member: Member) -> MemberStatus:
        """Report the reachability of a member."""
        ...

    def get_member(self, name: str) -> Member:
        """Return the member with the given name or raise MemberNotFoundError."""
        ...

    def member_update_peer_url(self, member_id: int, peer_urls: list[str]) -> None:
        """Replace the peer URLs of a member."""
        ...


def filter_voting_members(members: Iterable[Member]) -> list[Member]:
    """Return the members that are not learners."""
    return [member for member in members if not member.is_learner]


def has_started(member: Member) -> bool:
    """A member has started once it advertises a client URL."""
    return bool(member.client_urls)


def _url_hostname(url: str) -> str:
    parts = urlsplit(url)
    parts.port  # raises ValueError on a malformed port
    netloc = parts.netloc.rpartition("@")[2]
    if netloc.startswith("["):
        return netloc[1:].partition("]")[0]
    return netloc.partition(":")[0]


def get_member_name_or_host(member: Member) -> str:
    """Return the member's name, or a pending name built from its peer URL host."""
    if member.name:
        return member.name
    try:
        host = _url_hostname(member.peer_urls[0])
    except ValueError:
        return "NAME-PENDING-BAD-PEER-URL"
    return f"NAME-PENDING-{host}"