"""Channel start/stop transitions.

A channel is either stopped (remux_port == 0) or running (remux_port set).
Start and stop refresh the embedded copies held by bouquets inside the same
write section as the transition, so readers never see a bouquet out of step
with the canonical channel.
"""

import copy
import logging

from fuzzy.models import Channel
from fuzzy.models._time import utcnow

logger = logging.getLogger(__name__)

REMUX_BASE_PORT = 8000
REMUX_PORT_STEP = 10


def remux_port_for(channel_id: int) -> int:
    """Placeholder port scheme; no process is bound to the port."""
    return REMUX_BASE_PORT + channel_id * REMUX_PORT_STEP


class ChannelLifecycleMixin:
    """Start/stop operations for :class:`fuzzy.core.store.Store`.

    Relies on the store's ``_lock``, ``_channels`` and ``_bouquets``.
    """

    def start_channel(self, channel_id: int) -> int | None:
        """Mark a channel running and return its remux port.

        Returns None when the channel does not exist. Starting a running
        channel returns the port it already has.
        """
        with self._lock.write():
            channel = self._channels.records.get(channel_id)
            if channel is None:
                return None
            if channel.running:
                return channel.remux_port

            port = remux_port_for(channel_id)
            channel.running = True
            channel.remux_port = port
            channel.updated_at = utcnow()
            touched = self._sync_bouquet_copies_locked(channel)

        logger.info(
            "Channel %d started on port %d (%d bouquet(s) updated)", channel_id, port, touched
        )
        return port

    def stop_channel(self, channel_id: int) -> bool:
        """Mark a channel stopped. False only when the channel does not exist."""
        with self._lock.write():
            channel = self._channels.records.get(channel_id)
            if channel is None:
                return False
            channel.running = False
            channel.remux_port = 0
            channel.updated_at = utcnow()
            touched = self._sync_bouquet_copies_locked(channel)

        logger.info("Channel %d stopped (%d bouquet(s) updated)", channel_id, touched)
        return True

    def update_channel_in_bouquets(self, channel_id: int) -> int:
        """Overwrite bouquet copies of a channel with its current record.

        Copies are matched on (name, manifest). Returns the number of
        bouquets changed; 0 when the channel does not exist.
        """
        with self._lock.write():
            channel = self._channels.records.get(channel_id)
            if channel is None:
                return 0
            return self._sync_bouquet_copies_locked(channel)

    def _sync_bouquet_copies_locked(self, channel: Channel, match: Channel | None = None) -> int:
        """Replace copies matching ``match`` (default: ``channel``). Caller holds the write lock."""
        match = match or channel
        now = utcnow()
        touched = 0
        for bouquet in self._bouquets.records.values():
            changed = False
            for idx, embedded in enumerate(bouquet.channels):
                if embedded.same_source(match):
                    bouquet.channels[idx] = copy.deepcopy(channel)
                    changed = True
            if changed:
                bouquet.updated_at = now
                touched += 1
        return touched
