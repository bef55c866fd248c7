"""Peer synchronization of derived state.

- RealtimeSyncChannel: throttled broadcast/subscribe with presence tracking
- InMemoryRealtimeHub: in-process SyncTransport
"""

from transport_core.sync.channel import (
    UPDATE_EVENT,
    ConnectionState,
    RealtimeSyncChannel,
    SyncSnapshot,
)
from transport_core.sync.hub import ChannelMembership, InMemoryRealtimeHub, SyncTransport

__all__ = [
    "UPDATE_EVENT",
    "ChannelMembership",
    "ConnectionState",
    "InMemoryRealtimeHub",
    "RealtimeSyncChannel",
    "SyncSnapshot",
    "SyncTransport",
]
