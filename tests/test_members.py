import pytest

from etcdop.members import (
    DEFAULT_DIAL_TIMEOUT,
    ClientOptions,
    Member,
    MemberNotFoundError,
    filter_voting_members,
    get_member_name_or_host,
    has_started,
)


def fake_member(n: int) -> Member:
    return Member(
        name=f"etcd-{n}",
        id=n,
        peer_urls=[f"https://10.0.0.{n}:2380"],
        client_urls=[f"https://10.0.0.{n}:2379"],
    )


def as_learner(member: Member) -> Member:
    member.is_learner = True
    return member


@pytest.mark.parametrize(
    "members, expected",
    [
        ([fake_member(1), fake_member(2), fake_member(3)], 3),
        ([as_learner(fake_member(1)), as_learner(fake_member(2)), as_learner(fake_member(3))], 0),
        ([as_learner(fake_member(1)), fake_member(2), fake_member(3)], 2),
    ],
    ids=["all voting members", "all learner members", "one learner two voting members"],
)
def test_filter_voting_members(members, expected):
    assert len(filter_voting_members(members)) == expected


def test_filter_voting_members_keeps_order():
    members = [fake_member(1), as_learner(fake_member(2)), fake_member(3)]
    assert [m.name for m in filter_voting_members(members)] == ["etcd-1", "etcd-3"]


def test_has_started():
    assert has_started(fake_member(1)) is True
    assert has_started(Member(peer_urls=["https://10.0.0.1:2380"])) is False


def test_name_or_host_prefers_name():
    assert get_member_name_or_host(fake_member(2)) == "etcd-2"


def test_name_or_host_uses_peer_host():
    member = Member(peer_urls=["https://10.0.0.3:2380"])
    assert get_member_name_or_host(member) == "NAME-PENDING-10.0.0.3"


def test_name_or_host_ipv6():
    member = Member(peer_urls=["https://[fd00::1]:2380"])
    assert get_member_name_or_host(member) == "NAME-PENDING-fd00::1"


@pytest.mark.parametrize("url", ["https://[fd00::1:2380", "https://host:abc"])
def test_name_or_host_bad_url(url):
    assert get_member_name_or_host(Member(peer_urls=[url])) == "NAME-PENDING-BAD-PEER-URL"


def test_client_options_default_and_override():
    options = ClientOptions()
    assert options.dial_timeout == DEFAULT_DIAL_TIMEOUT == 15.0
    longer = options.with_dial_timeout(60.0)
    assert longer.dial_timeout == 60.0
    assert options.dial_timeout == 15.0


def test_member_not_found_message():
    err = MemberNotFoundError("master-0")
    assert err.name == "master-0"
    assert str(err) == 'etcdmembers.etcd.operator.openshift.io "master-0" not found'
    with pytest.raises(LookupError):
        raise err