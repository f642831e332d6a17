"""Domain model of tracked traffic."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Position:
    lat: float = 0.0
    long: float = 0.0
    altitude: float = 0.0
    heading: float = 0.0


@dataclass
class Comms:
    callsign: str = ""
    frequency: float = 0.0
    last_transmission: str = ""
    last_instruction: str = ""


@dataclass
class Phase:
    """Flight phase state.

    ``previous`` is the phase at the last update, used to detect changes,
    not necessarily the phase that came before the current one.
    """

    current: int = 0
    previous: int = 0
    transition: datetime | None = None


@dataclass
class Flight:
    position: Position = field(default_factory=Position)
    flight_num: int = 0
    taxi_route: str = ""
    origin: str = ""
    destination: str = ""
    phase: Phase = field(default_factory=Phase)
    comms: Comms = field(default_factory=Comms)


@dataclass
class Aircraft:
    flight: Flight = field(default_factory=Flight)
    type: str = ""
    size_class: str = ""
    code: str = ""
    airline: str = ""
    registration: str = ""