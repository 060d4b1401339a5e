"""
Realtime Subscription Manager
=============================

Owns the change-feed channels one session (or one websocket connection)
listens on, at most one per entity type.

WHAT:
    `subscribe()` opens a channel named `<entity>_changes`, filtered to the
    user's rows, and routes INSERT/UPDATE/DELETE payloads to the matching
    callback. Handles are kept by entity type so they can be closed
    individually or all at once.

WHY:
    Each owner creates its own manager and closes it when done. There is no
    module-level instance, so two sessions never share or clobber each
    other's handles.

USAGE:
    manager = RealtimeManager(client)
    manager.subscribe_to_kpi_data(user_id, on_insert=store.merge_row)
    ...
    manager.unsubscribe_all()

REFERENCES:
    - kpidash/hosted/channels.py (ChangeFeed, Channel)
    - kpidash/session.py (applies events to the AppStore)
    - kpidash/routers/realtime.py (forwards events over a websocket)
"""

import logging
from typing import Callable, Dict, Optional

from .hosted.channels import CLOSED, Channel, RealtimePayload
from .hosted.client import HostedClient

logger = logging.getLogger(__name__)

Callback = Callable[[RealtimePayload], None]

ENTITY_TYPES = ("kpi_data", "integrations", "sync_logs")

# Channel names used by the dashboard frontend, kept for compatibility
CHANNEL_NAMES = {
    "kpi_data": "kpi_data_changes",
    "integrations": "integration_changes",
    "sync_logs": "sync_log_changes",
}


class RealtimeManager:
    """Registry of open channel handles keyed by entity type."""

    def __init__(self, client: HostedClient):
        self.client = client
        self._subscriptions: Dict[str, Channel] = {}

    def subscribe(
        self,
        entity_type: str,
        user_id: str,
        on_insert: Optional[Callback] = None,
        on_update: Optional[Callback] = None,
        on_delete: Optional[Callback] = None,
    ) -> Channel:
        """Open a user-filtered channel for one table. Replaces any existing handle for it."""
        if entity_type not in CHANNEL_NAMES:
            raise ValueError(f"Unknown entity type: {entity_type}")

        previous = self._subscriptions.pop(entity_type, None)
        if previous is not None:
            logger.warning("[REALTIME] Replacing open %s subscription", entity_type)
            self.client.remove_channel(previous)

        callbacks = {"INSERT": on_insert, "UPDATE": on_update, "DELETE": on_delete}

        def dispatch(payload: RealtimePayload) -> None:
            callback = callbacks.get(payload.event_type)
            if callback is not None:
                callback(payload)

        channel = (
            self.client.channel(CHANNEL_NAMES[entity_type])
            .on("*", table=entity_type, filter=f"user_id=eq.{user_id}", handler=dispatch)
            .subscribe()
        )
        self._subscriptions[entity_type] = channel
        logger.info("[REALTIME] Subscribed to %s for user %s", entity_type, user_id)
        return channel

    def subscribe_to_kpi_data(self, user_id: str, on_insert=None, on_update=None, on_delete=None) -> Channel:
        return self.subscribe("kpi_data", user_id, on_insert, on_update, on_delete)

    def subscribe_to_integrations(self, user_id: str, on_insert=None, on_update=None, on_delete=None) -> Channel:
        return self.subscribe("integrations", user_id, on_insert, on_update, on_delete)

    def subscribe_to_sync_logs(self, user_id: str, on_insert=None, on_update=None, on_delete=None) -> Channel:
        return self.subscribe("sync_logs", user_id, on_insert, on_update, on_delete)

    def unsubscribe(self, entity_type: str) -> None:
        channel = self._subscriptions.pop(entity_type, None)
        if channel is None:
            return
        self.client.remove_channel(channel)
        logger.info("[REALTIME] Unsubscribed from %s", entity_type)

    def unsubscribe_all(self) -> None:
        for entity_type in list(self._subscriptions):
            self.unsubscribe(entity_type)

    def get_subscription_status(self, entity_type: str) -> str:
        channel = self._subscriptions.get(entity_type)
        return channel.state if channel is not None else CLOSED

    @property
    def active(self) -> Dict[str, Channel]:
        return dict(self._subscriptions)
