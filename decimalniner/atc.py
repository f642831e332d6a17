"""Air traffic control service and its controller positions."""

from __future__ import annotations

import queue
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Position:
    """A controller position and the frequency it works on."""

    name: str
    frequency: float


def default_positions() -> list[Position]:
    """Return the standard set of controller positions."""
    return [
        Position("Clearance Delivery", 118.1),
        Position("Ground", 121.9),
        Position("Tower", 118.1),
        Position("Departure", 122.6),
        Position("Center", 128.2),
        Position("Approach", 124.5),
        Position("TRACON", 127.2),
        Position("Oceanic", 135.0),
    ]


@dataclass
class Service:
    """ATC service holding its positions and a one-slot trigger channel."""

    channel: queue.Queue = field(default_factory=lambda: queue.Queue(maxsize=1))
    positions: list[Position] = field(default_factory=default_positions)

    def run(self) -> int:
        """Consume the instruction triggers currently waiting on the channel.

        Returns the number of triggers consumed.
        """
        handled = 0
        while True:
            try:
                self.channel.get_nowait()
            except queue.Empty:
                return handled
            handled += 1