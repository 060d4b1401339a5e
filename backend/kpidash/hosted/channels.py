"""
Change Feed Channels
====================

Channel-based change notifications for the hosted tables.

WHAT:
    A ChangeFeed owns every open Channel. Table writes call
    `ChangeFeed.publish()` after commit; each joined channel whose table and
    `user_id=eq.<id>` filter match receives a RealtimePayload.

WHY:
    Clients keep their view current without polling. This is the transport
    only: it adds no ordering, dedup or replay on top of commit order.

USAGE:
    channel = feed.channel("kpi_data_changes")
    channel.on("*", table="kpi_data", filter="user_id=eq.123", handler=print)
    channel.subscribe()
    ...
    feed.remove_channel(channel)

REFERENCES:
    - kpidash/hosted/tables.py (publisher)
    - kpidash/realtime.py (RealtimeManager, the subscriber side)
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

EVENT_TYPES = ("INSERT", "UPDATE", "DELETE")

CLOSED = "closed"
JOINING = "joining"
JOINED = "joined"


@dataclass
class RealtimePayload:
    """One row change as delivered to channel handlers."""
    event_type: str
    table: str
    new: Dict[str, Any] = field(default_factory=dict)
    old: Dict[str, Any] = field(default_factory=dict)
    schema: str = "public"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "eventType": self.event_type,
            "table": self.table,
            "schema": self.schema,
            "new": self.new,
            "old": self.old,
        }


def parse_filter(expression: Optional[str]) -> Optional[Tuple[str, str]]:
    """Parse `column=eq.value` into (column, value). Only equality is supported."""
    if not expression:
        return None
    column, sep, rest = expression.partition("=")
    if not sep or not rest.startswith("eq."):
        raise ValueError(f"Unsupported channel filter: {expression!r}")
    return column.strip(), rest[len("eq."):]


@dataclass
class _Binding:
    event: str
    table: str
    filter: Optional[Tuple[str, str]]
    handler: Callable[[RealtimePayload], None]

    def matches(self, payload: RealtimePayload) -> bool:
        if self.table != payload.table:
            return False
        if self.event != "*" and self.event != payload.event_type:
            return False
        if self.filter is None:
            return True
        column, expected = self.filter
        row = payload.new or payload.old
        return str(row.get(column)) == expected


class Channel:
    """A named subscription to row changes. Created through ChangeFeed.channel()."""

    def __init__(self, feed: "ChangeFeed", name: str):
        self._feed = feed
        self.name = name
        self.state = CLOSED
        self._bindings: List[_Binding] = []

    def on(
        self,
        event: str,
        *,
        table: str,
        handler: Callable[[RealtimePayload], None],
        filter: Optional[str] = None,
    ) -> "Channel":
        if event != "*" and event not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {event}")
        self._bindings.append(_Binding(event=event, table=table, filter=parse_filter(filter), handler=handler))
        return self

    def subscribe(self) -> "Channel":
        self.state = JOINING
        self._feed._join(self)
        self.state = JOINED
        return self

    def _dispatch(self, payload: RealtimePayload) -> bool:
        matched = False
        for binding in self._bindings:
            if binding.matches(payload):
                binding.handler(payload)
                matched = True
        return matched

    def __repr__(self) -> str:
        return f"Channel(name={self.name!r}, state={self.state!r})"


class ChangeFeed:
    """
    Registry of open channels.

    One feed is shared by the whole process (see kpidash/main.py). Requests
    run on a thread pool, so registry changes are lock-protected; handlers run
    outside the lock on the publishing thread.
    """

    def __init__(self):
        self._channels: List[Channel] = []
        self._lock = threading.Lock()

    def channel(self, name: str) -> Channel:
        return Channel(self, name)

    def _join(self, channel: Channel) -> None:
        with self._lock:
            if channel not in self._channels:
                self._channels.append(channel)
        logger.debug("[CHANNELS] Joined %s", channel.name)

    def remove_channel(self, channel: Channel) -> None:
        with self._lock:
            if channel in self._channels:
                self._channels.remove(channel)
        channel.state = CLOSED
        logger.debug("[CHANNELS] Removed %s", channel.name)

    def publish(
        self,
        table: str,
        event_type: str,
        new: Optional[Dict[str, Any]] = None,
        old: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Deliver a change to every matching channel. Returns the number of channels notified."""
        payload = RealtimePayload(event_type=event_type, table=table, new=new or {}, old=old or {})
        with self._lock:
            targets = list(self._channels)

        delivered = 0
        for channel in targets:
            if channel.state != JOINED:
                continue
            if channel._dispatch(payload):
                delivered += 1
        return delivered

    @property
    def open_channels(self) -> List[Channel]:
        with self._lock:
            return list(self._channels)
