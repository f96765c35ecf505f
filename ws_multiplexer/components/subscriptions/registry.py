"""
Subscription Registry.

Holds every piece of per-key subscription state of a multiplexer:
- listeners: callbacks registered per key (interest reference count)
- records: parameters needed to reissue a REQUEST for each active key
- completed: keys that received COMPLETE on the current connection
- requested: keys whose REQUEST was sent on the current connection
- status: last upstream status reported per key

All methods are synchronous; the registry is only touched from the event
loop thread.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Any, Callable

from ws_multiplexer.components.subscriptions.keys import (
    SubscriptionKey,
    SubscriptionRecord,
)

Listener = Callable[[Any], None]


class SubscriptionRegistry:
    """
    Per-key listener sets and subscription records.

    Invariant: a record exists while its listener set is non-empty or a
    teardown for it is pending. The registry keeps records when the last
    listener leaves; the teardown path removes them explicitly.
    """

    def __init__(self) -> None:
        self._listeners: dict[SubscriptionKey, set[Listener]] = {}
        self._records: dict[SubscriptionKey, SubscriptionRecord] = {}
        self._completed: set[SubscriptionKey] = set()
        self._requested: set[SubscriptionKey] = set()
        self._status: dict[SubscriptionKey, dict[str, Any]] = {}

    # =========================================================================
    # Listeners
    # =========================================================================

    def add_listener(self, key: SubscriptionKey, listener: Listener) -> bool:
        """
        Register a listener for a key, creating its record if needed.

        Args:
            key: Subscription key.
            listener: Callback receiving decoded payloads.

        Returns:
            True if this created the subscription record.
        """
        created = key not in self._records
        if created:
            self._records[key] = SubscriptionRecord(key.cluster_id, key.path, key.query)
        self._listeners.setdefault(key, set()).add(listener)
        return created

    def remove_listener(self, key: SubscriptionKey, listener: Listener) -> bool:
        """
        Remove a listener; deletes the key's set when it becomes empty.

        Returns:
            True if the listener was registered for the key.
        """
        listeners = self._listeners.get(key)
        if not listeners or listener not in listeners:
            return False
        listeners.discard(listener)
        if not listeners:
            del self._listeners[key]
        return True

    def has_listener(self, key: SubscriptionKey, listener: Listener) -> bool:
        return listener in self._listeners.get(key, ())

    def has_listeners(self, key: SubscriptionKey) -> bool:
        return key in self._listeners

    def get_listeners(self, key: SubscriptionKey) -> tuple[Listener, ...]:
        """Snapshot of a key's listeners (safe against mutation during dispatch)."""
        return tuple(self._listeners.get(key, ()))

    def listener_count(self, key: SubscriptionKey | None = None) -> int:
        """Listeners for one key, or across all keys when key is None."""
        if key is not None:
            return len(self._listeners.get(key, ()))
        return sum(len(listeners) for listeners in self._listeners.values())

    # =========================================================================
    # Records
    # =========================================================================

    @property
    def records(self) -> MappingProxyType[SubscriptionKey, SubscriptionRecord]:
        """Read-only view of the active subscription records."""
        return MappingProxyType(self._records)

    def has_record(self, key: SubscriptionKey) -> bool:
        return key in self._records

    def get_record(self, key: SubscriptionKey) -> SubscriptionRecord | None:
        return self._records.get(key)

    def remove_record(self, key: SubscriptionKey) -> SubscriptionRecord | None:
        """
        Remove a torn-down key's record along with its completion and status.

        The requested flag is left for the caller, which needs it to decide
        whether a CLOSE frame is due.
        """
        self._completed.discard(key)
        self._status.pop(key, None)
        return self._records.pop(key, None)

    @property
    def active_count(self) -> int:
        """Number of subscription records."""
        return len(self._records)

    # =========================================================================
    # Per-connection state
    # =========================================================================

    def mark_completed(self, key: SubscriptionKey) -> bool:
        """Mark a key completed; ignored for keys without a record."""
        if key not in self._records:
            return False
        self._completed.add(key)
        return True

    def is_completed(self, key: SubscriptionKey) -> bool:
        return key in self._completed

    @property
    def completed_keys(self) -> frozenset[SubscriptionKey]:
        return frozenset(self._completed)

    def mark_requested(self, key: SubscriptionKey) -> None:
        self._requested.add(key)

    def is_requested(self, key: SubscriptionKey) -> bool:
        return key in self._requested

    def forget_requested(self, key: SubscriptionKey) -> bool:
        """Drop the requested flag; returns whether it was set."""
        if key in self._requested:
            self._requested.discard(key)
            return True
        return False

    def set_status(self, key: SubscriptionKey, status: dict[str, Any]) -> None:
        if key in self._records:
            self._status[key] = status

    def get_status(self, key: SubscriptionKey) -> dict[str, Any] | None:
        return self._status.get(key)

    def reset_connection_state(self) -> None:
        """Forget everything that only made sense on the previous connection."""
        self._completed.clear()
        self._requested.clear()
        self._status.clear()

    # =========================================================================
    # Stats
    # =========================================================================

    def get_stats(self) -> dict[str, int]:
        return {
            "active_subscriptions": len(self._records),
            "keys_with_listeners": len(self._listeners),
            "total_listeners": self.listener_count(),
            "completed_keys": len(self._completed),
            "requested_keys": len(self._requested),
        }
