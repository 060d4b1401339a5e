"""
Hosted Backend Surface
======================

Table CRUD, auth and change-feed channels. Application code goes through
`HostedClient` and never touches SQLAlchemy directly.
"""

from kpidash.hosted.auth import AuthClient, AuthSession
from kpidash.hosted.channels import ChangeFeed, Channel, RealtimePayload
from kpidash.hosted.client import HostedClient
from kpidash.hosted.tables import TableClient

__all__ = [
    "AuthClient",
    "AuthSession",
    "ChangeFeed",
    "Channel",
    "HostedClient",
    "RealtimePayload",
    "TableClient",
]
