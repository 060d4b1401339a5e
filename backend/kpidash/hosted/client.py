"""Hosted backend client: one database session, one change feed, one auth state."""

from typing import Callable, Optional

from sqlalchemy.orm import Session

from .auth import AuthClient
from .channels import Channel, ChangeFeed
from .tables import TableClient


class HostedClient:
    """
    Entry point used by the data-access layer and the realtime manager.

    Example:
        client = HostedClient(db, feed, access_token=token)
        rows = client.table("kpi_data").select({"user_id": uid})
    """

    def __init__(
        self,
        session: Session,
        feed: ChangeFeed,
        access_token: Optional[str] = None,
        notifier: Optional[Callable[[str, str], None]] = None,
    ):
        self.session = session
        self.feed = feed
        self.auth = AuthClient(session, access_token=access_token, notifier=notifier)

    def table(self, name: str) -> TableClient:
        return TableClient(self.session, name, feed=self.feed)

    def channel(self, name: str) -> Channel:
        return self.feed.channel(name)

    def remove_channel(self, channel: Channel) -> None:
        self.feed.remove_channel(channel)
