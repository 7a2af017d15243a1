"""Delta batching and hello messages for the sending side."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from pydeltalink._constants import MAX_DELTAS_BUFFER_SIZE, VESSEL_URN_PREFIX

_logger = logging.getLogger(__name__)

# NMEA satellites-in-view sentences are verbose and not worth the bandwidth.
_SKIPPED_SENTENCES: frozenset[str] = frozenset({"GSV"})


def _sentence_of(delta: Any) -> str | None:
    if not isinstance(delta, dict):
        return None
    updates = delta.get("updates")
    if not isinstance(updates, list) or not updates or not isinstance(updates[0], dict):
        return None
    source = updates[0].get("source")
    if not isinstance(source, dict):
        return None
    sentence = source.get("sentence")
    return sentence if isinstance(sentence, str) else None


class DeltaBuffer:
    """Collects deltas between sends.

    When the buffer reaches *max_size* it is cleared before the next
    delta is added, so a stalled link cannot grow it without bound.
    """

    def __init__(self, max_size: int = MAX_DELTAS_BUFFER_SIZE) -> None:
        self._max_size = max_size
        self._deltas: list[dict[str, Any]] = []

    def __len__(self) -> int:
        return len(self._deltas)

    def push(self, delta: dict[str, Any]) -> bool:
        """Buffer *delta*; returns ``False`` when it was filtered out."""
        if _sentence_of(delta) in _SKIPPED_SENTENCES:
            return False
        if len(self._deltas) >= self._max_size:
            _logger.error("Delta buffer overflow (%d items), clearing buffer", len(self._deltas))
            self._deltas = []
        self._deltas.append(delta)
        return True

    def drain(self) -> list[dict[str, Any]]:
        """Return everything buffered and start a new batch."""
        deltas, self._deltas = self._deltas, []
        return deltas


def build_hello_delta(mmsi: str | int, now: datetime | None = None) -> dict[str, Any]:
    """Build the periodic hello message for vessel *mmsi*.

    The timestamp and latency value are native datetimes; they reach the
    receiver as ISO-8601 strings.
    """
    when = now or datetime.now(UTC)
    return {
        "context": f"{VESSEL_URN_PREFIX}{mmsi}",
        "updates": [
            {
                "timestamp": when,
                "values": [{"path": "networking.modem.latencyTime", "value": when}],
            }
        ],
    }
