"""
Resubscription Coordinator.

After the transport drops and a new connection opens, the backend has no
memory of the previous watches. Every subscription record still held is
requested again, including keys whose teardown is pending: their CLOSE then
goes out on the new connection if nobody reclaims them.
"""

from __future__ import annotations

from typing import Callable

from shared.config.logging import get_logger, mask_user_id
from ws_multiplexer.components.events.frames import OutboundFrame, RequestFrame
from ws_multiplexer.components.subscriptions.registry import SubscriptionRegistry

logger = get_logger(__name__)


class ResubscriptionCoordinator:
    """Replays REQUEST frames for every held subscription record."""

    def __init__(
        self,
        registry: SubscriptionRegistry,
        send: Callable[[OutboundFrame], bool],
        user_id: Callable[[], str],
    ) -> None:
        """
        Args:
            registry: Registry holding the subscription records.
            send: Queues a frame on the connection; returns False if not open.
            user_id: Resolves the caller identity at send time.
        """
        self._registry = registry
        self._send = send
        self._user_id = user_id

    def resubscribe(self) -> int:
        """
        Request every held record again on the current connection.

        Returns:
            Number of REQUEST frames queued.
        """
        user_id = self._user_id()
        replayed = 0
        for record in list(self._registry.records.values()):
            frame = RequestFrame(record.cluster_id, record.path, record.query, user_id)
            if not self._send(frame):
                logger.warning(
                    "Connection closed during resubscription",
                    replayed=replayed,
                    remaining=self._registry.active_count - replayed,
                )
                break
            self._registry.mark_requested(record.key)
            replayed += 1

        if replayed:
            logger.info(
                "Subscriptions restored",
                count=replayed,
                user=mask_user_id(user_id),
            )
        return replayed
