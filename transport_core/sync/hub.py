"""Sync transport protocol and an in-process realtime hub.

A SyncTransport joins named channels. Each join returns a ChannelMembership
used to broadcast events, publish this member's presence record and leave.
The hub delivers broadcasts to every member of the channel, the sender
included, as JSON text, and notifies every member with the full presence
state whenever presence changes.

InMemoryRealtimeHub is the transport used by the CLI and tests; a networked
transport only has to satisfy the same two protocols.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from typing import Any, Callable, Optional, Protocol

logger = logging.getLogger(__name__)

BroadcastHandler = Callable[[str, str], None]
PresenceState = dict[str, list[dict[str, Any]]]
PresenceHandler = Callable[[PresenceState], None]


class ChannelMembership(Protocol):
    """Handle for one member's subscription to a channel."""

    def send(self, event: str, payload: dict[str, Any]) -> None: ...

    def track(self, metadata: dict[str, Any]) -> None: ...

    def presence_state(self) -> PresenceState: ...

    def leave(self) -> None: ...


class SyncTransport(Protocol):
    """Publish/subscribe transport keyed by channel name."""

    def join(
        self,
        channel_name: str,
        presence_key: str,
        on_broadcast: BroadcastHandler,
        on_presence_sync: Optional[PresenceHandler] = None,
    ) -> ChannelMembership: ...


class _Member:
    def __init__(
        self,
        hub: "InMemoryRealtimeHub",
        channel_name: str,
        presence_key: str,
        on_broadcast: BroadcastHandler,
        on_presence_sync: Optional[PresenceHandler],
    ):
        self.member_id = uuid.uuid4().hex
        self.hub = hub
        self.channel_name = channel_name
        self.presence_key = presence_key
        self.on_broadcast = on_broadcast
        self.on_presence_sync = on_presence_sync
        self.presence: Optional[dict[str, Any]] = None
        self.active = True

    def send(self, event: str, payload: dict[str, Any]) -> None:
        if not self.active:
            raise RuntimeError(f"Member left channel {self.channel_name}")
        self.hub._broadcast(self.channel_name, event, json.dumps(payload))

    def track(self, metadata: dict[str, Any]) -> None:
        if not self.active:
            raise RuntimeError(f"Member left channel {self.channel_name}")
        self.presence = dict(metadata)
        self.hub._presence_changed(self.channel_name)

    def presence_state(self) -> PresenceState:
        return self.hub.presence_state(self.channel_name)

    def leave(self) -> None:
        if not self.active:
            return
        self.active = False
        self.hub._remove(self)


class InMemoryRealtimeHub:
    """Thread-safe in-process channel registry.

    Handlers run synchronously on the caller's thread. A handler that
    raises is logged and does not prevent delivery to other members.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._channels: dict[str, dict[str, _Member]] = {}
        self.messages_sent = 0

    def join(
        self,
        channel_name: str,
        presence_key: str,
        on_broadcast: BroadcastHandler,
        on_presence_sync: Optional[PresenceHandler] = None,
    ) -> _Member:
        member = _Member(self, channel_name, presence_key, on_broadcast, on_presence_sync)
        with self._lock:
            self._channels.setdefault(channel_name, {})[member.member_id] = member
        logger.debug(f"Member {presence_key} joined {channel_name}")
        self._presence_changed(channel_name)
        return member

    def channel_names(self) -> list[str]:
        with self._lock:
            return sorted(self._channels)

    def member_count(self, channel_name: str) -> int:
        with self._lock:
            return len(self._channels.get(channel_name, {}))

    def presence_state(self, channel_name: str) -> PresenceState:
        """Tracked presence records grouped by presence key."""
        state: PresenceState = {}
        with self._lock:
            members = list(self._channels.get(channel_name, {}).values())
        for member in members:
            if member.presence is not None:
                state.setdefault(member.presence_key, []).append(dict(member.presence))
        return state

    def _members(self, channel_name: str) -> list[_Member]:
        with self._lock:
            return list(self._channels.get(channel_name, {}).values())

    def _broadcast(self, channel_name: str, event: str, raw: str) -> None:
        self.messages_sent += 1
        for member in self._members(channel_name):
            try:
                member.on_broadcast(event, raw)
            except Exception as e:
                logger.warning(f"Broadcast handler for {member.presence_key} failed: {e}")

    def _presence_changed(self, channel_name: str) -> None:
        state = self.presence_state(channel_name)
        for member in self._members(channel_name):
            if member.on_presence_sync is None:
                continue
            try:
                member.on_presence_sync(state)
            except Exception as e:
                logger.warning(f"Presence handler for {member.presence_key} failed: {e}")

    def _remove(self, member: _Member) -> None:
        with self._lock:
            members = self._channels.get(member.channel_name, {})
            members.pop(member.member_id, None)
            if not members:
                self._channels.pop(member.channel_name, None)
        logger.debug(f"Member {member.presence_key} left {member.channel_name}")
        self._presence_changed(member.channel_name)
