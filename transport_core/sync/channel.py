"""Throttled realtime sync channel.

One channel per session (``cti-cascade-<session_id>``). broadcast() is
gated by a minimum interval (100 ms by default, at most 10 sends per second):
calls inside the window are dropped silently, never queued or retried.
Calls while disconnected are logged and dropped without touching the
throttle. Inbound updates are validated into SyncSnapshot and handed to the
``on_update`` callback; they are never applied to local state.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from transport_core.config import SyncConfig
from transport_core.persistence import FallbackRecordSink, RecordKind
from transport_core.scheduling import fire_hook
from transport_core.sync.hub import ChannelMembership, PresenceState, SyncTransport

logger = logging.getLogger(__name__)

UPDATE_EVENT = "cti-update"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"


class SyncSnapshot(BaseModel):
    """Shared derived-state snapshot.

    Payload fields are free-form extras next to the stamped ``session_id``
    and ``timestamp`` (epoch milliseconds).
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    session_id: str = Field(min_length=1)
    timestamp: int = Field(ge=0)

    @property
    def payload(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class RealtimeSyncChannel:
    """Broadcast/subscribe endpoint for one session.

    Attributes:
        session_id: Session the channel belongs to
        client_id: This instance's presence key
        sends: Number of messages handed to the transport
    """

    def __init__(
        self,
        session_id: str,
        transport: SyncTransport,
        config: Optional[SyncConfig] = None,
        on_update: Optional[Callable[[SyncSnapshot], Any]] = None,
        sink: Optional[FallbackRecordSink] = None,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
    ):
        if not session_id:
            raise ValueError("session_id is required")
        self.session_id = session_id
        self.transport = transport
        self.config = config or SyncConfig()
        self.on_update = on_update
        self.sink = sink
        self._clock = clock
        self._wall_clock = wall_clock

        self.client_id = uuid.uuid4().hex
        self.state = ConnectionState.DISCONNECTED
        self._membership: Optional[ChannelMembership] = None
        self._last_sent_at: Optional[float] = None
        self._peers_count = 0
        self.sends = 0
        self.throttled = 0

    @property
    def channel_name(self) -> str:
        return f"{self.config.channel_prefix}{self.session_id}"

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    @property
    def peers_count(self) -> int:
        return self._peers_count

    def connect(self) -> bool:
        """Join the session channel.

        Returns:
            True once connected. False when sync is disabled or the
            transport refused the join.
        """
        if self.is_connected:
            return True
        if not self.config.enabled:
            logger.info("Realtime sync disabled; not connecting")
            return False

        try:
            self._membership = self.transport.join(
                self.channel_name,
                self.client_id,
                self._handle_broadcast,
                self._handle_presence_sync,
            )
        except Exception as e:
            logger.warning(f"Failed to join {self.channel_name}: {e}")
            self._membership = None
            return False

        self.state = ConnectionState.CONNECTED
        logger.info(f"Connected to channel: {self.channel_name}")
        return True

    def close(self) -> None:
        """Unsubscribe and mark the channel disconnected."""
        membership = self._membership
        self._membership = None
        self.state = ConnectionState.DISCONNECTED
        self._peers_count = 0
        if membership is None:
            return
        try:
            membership.leave()
        except Exception as e:
            logger.warning(f"Error leaving {self.channel_name}: {e}")
        logger.info(f"Disconnected from channel: {self.channel_name}")

    def broadcast(self, update: Mapping[str, Any]) -> bool:
        """Send ``update`` to all peers, subject to the throttle.

        Returns:
            True if the update was handed to the transport.
        """
        now = self._clock()
        if (
            self._last_sent_at is not None
            and (now - self._last_sent_at) * 1000 < self.config.min_broadcast_interval_ms
        ):
            self.throttled += 1
            return False

        if not self.is_connected or self._membership is None:
            logger.warning("Cannot broadcast - not connected")
            return False

        snapshot = {
            **update,
            "session_id": self.session_id,
            "timestamp": int(self._wall_clock() * 1000),
        }
        try:
            self._membership.send(UPDATE_EVENT, snapshot)
        except Exception as e:
            logger.warning(f"Broadcast on {self.channel_name} failed: {e}")
            return False
        finally:
            self._last_sent_at = now

        self.sends += 1
        if self.sink is not None:
            self.sink.record(RecordKind.SYNC_SNAPSHOT, snapshot)
        return True

    def track_presence(self, metadata: Optional[Mapping[str, Any]] = None) -> bool:
        """Publish this peer's presence record; no-op while disconnected."""
        if not self.is_connected or self._membership is None:
            return False
        record = {"online_at": datetime.now(timezone.utc).isoformat(), **(metadata or {})}
        try:
            self._membership.track(record)
        except Exception as e:
            logger.warning(f"Presence update on {self.channel_name} failed: {e}")
            return False
        return True

    def _handle_broadcast(self, event: str, raw: Any) -> None:
        if event != UPDATE_EVENT or raw is None:
            return
        try:
            data = json.loads(raw) if isinstance(raw, (str, bytes)) else raw
            snapshot = SyncSnapshot.model_validate(data)
        except (ValueError, ValidationError) as e:
            logger.debug(f"Dropping malformed sync payload: {e}")
            return
        fire_hook(self.on_update, snapshot, name="on_sync_update")

    def _handle_presence_sync(self, state: PresenceState) -> None:
        self._peers_count = len(state)
