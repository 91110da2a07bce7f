"""Membership, health, quorum, endpoint, static pod environment and condition logic for etcd clusters."""

__version__ = "0.1.0"