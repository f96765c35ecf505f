"""
Subscription keys.

A watch is identified by the cluster it targets, the resource path and the
serialized query. Equal triples always produce equal keys.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class SubscriptionKey:
    """Canonical, hashable identifier of one logical watch."""

    cluster_id: str
    path: str
    query: str = ""

    def __str__(self) -> str:
        return f"{self.cluster_id}:{self.path}:{self.query}"


@dataclass(frozen=True, slots=True)
class SubscriptionRecord:
    """Parameters needed to reissue a REQUEST frame for a key."""

    cluster_id: str
    path: str
    query: str = ""

    @property
    def key(self) -> SubscriptionKey:
        return SubscriptionKey(self.cluster_id, self.path, self.query)


def create_key(cluster_id: str, path: str, query: str | None = "") -> SubscriptionKey:
    """
    Create the subscription key for a watch.

    Args:
        cluster_id: Cluster identifier.
        path: API resource path.
        query: Query parameters; None is treated as empty.

    Returns:
        Subscription key.
    """
    return SubscriptionKey(cluster_id, path, query or "")
