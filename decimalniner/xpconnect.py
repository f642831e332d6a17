"""Client for the simulator's web API: dataref lookup, subscription and traffic tracking."""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
from datetime import datetime
from enum import IntEnum
from typing import Any, Iterable
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import aiohttp

from decimalniner.model import Aircraft, Flight, Phase
from decimalniner.util import decode_null_terminated_string, send_json
from decimalniner.xpapimodel import (
    Dataref,
    DatarefInfo,
    DatarefSubscriptionRequest,
    SubscriptionResponse,
    parse_datarefs_response,
)

log = logging.getLogger(__name__)

# The web API serves both REST and WebSocket on the same port.
XPLANE_API_PORT = "8086"
XPLANE_REST_BASE_URL = f"http://127.0.0.1:{XPLANE_API_PORT}/api/v2/datarefs"
XPLANE_WS_URL = f"ws://127.0.0.1:{XPLANE_API_PORT}/api/v2"
REST_TIMEOUT = 10.0

STRING_ARRAY = "string_array"
FLOAT_ARRAY = "float_array"
INT_ARRAY = "int_array"

TAIL_NUMBER = "trafficglobal/ai/tail_number"
FLIGHT_PHASE = "trafficglobal/ai/flight_phase"

# Datarefs the client subscribes to, with the way their values are decoded.
DATAREFS: tuple[tuple[str, str], ...] = (
    ("trafficglobal/ai/position_lat", FLOAT_ARRAY),
    ("trafficglobal/ai/position_long", FLOAT_ARRAY),
    ("trafficglobal/ai/position_heading", FLOAT_ARRAY),
    # Altitude in metres.
    ("trafficglobal/ai/position_elev", FLOAT_ARRAY),
    ("trafficglobal/ai/aircraft_code", STRING_ARRAY),
    ("trafficglobal/ai/airline_code", STRING_ARRAY),
    (TAIL_NUMBER, STRING_ARRAY),
    ("trafficglobal/ai/ai_type", INT_ARRAY),
    ("trafficglobal/ai/ai_class", INT_ARRAY),
    ("trafficglobal/ai/flight_num", INT_ARRAY),
    ("trafficglobal/ai/parking", STRING_ARRAY),
    (FLIGHT_PHASE, INT_ARRAY),
)

_request_ids = itertools.count(1)


class FlightPhase(IntEnum):
    """Flight phases reported by the traffic plugin."""

    UNKNOWN = -1
    CRUISE = 0  # Normal cruise phase.
    APPROACH = 1  # Positioning from cruise to the runway.
    FINAL = 2  # Gear down on final approach.
    TAXI_IN = 3  # Any ground movement after touchdown.
    SHUTDOWN = 4  # Spooling down engines and electrics.
    PARKED = 5  # Long period parked.
    STARTUP = 6  # Spooling up engines and electrics.
    TAXI_OUT = 7  # Ground movement from the gate to the runway.
    DEPART = 8  # Initial ground roll and first part of climb.
    GO_AROUND = 9  # Unplanned transition from approach to cruise.
    CLIMBOUT = 10  # Remainder of climb, gear up.
    BRAKING = 11  # From touchdown until fast-taxi speed is reached.
    HOLDING = 12  # Waiting for a flow to complete changing.


def build_url_with_filters(base_url: str) -> str:
    """Return ``base_url`` with a ``filter[name]`` parameter for every tracked dataref."""
    parts = urlsplit(base_url)
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    pairs.extend(("filter[name]", name) for name, _ in DATAREFS)
    pairs.sort(key=lambda pair: pair[0])
    return urlunsplit(parts._replace(query=urlencode(pairs)))


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class XPConnect:
    """Connects to the simulator, subscribes to traffic datarefs and tracks aircraft."""

    def __init__(
        self,
        atc_service: Any = None,
        rest_base_url: str = XPLANE_REST_BASE_URL,
        ws_url: str = XPLANE_WS_URL,
    ) -> None:
        self.atc_service = atc_service
        self.rest_base_url = rest_base_url
        self.ws_url = ws_url
        self.datarefs: dict[int, Dataref] = {}
        self.aircraft: dict[str, Aircraft] = {}
        self.initialised = False
        self._stop_event = asyncio.Event()
        self._loop: asyncio.AbstractEventLoop | None = None

    async def start(self) -> None:
        """Look up dataref ids, subscribe over WebSocket and process updates until stopped."""
        self._loop = asyncio.get_running_loop()
        async with aiohttp.ClientSession() as session:
            log.info("--- Stage 1: Get DataRef Indices via REST (HTTP GET) ---")
            await self.get_dataref_indices(session)
            self._report_indices()

            log.info("--- Stage 2: Connect to WebSocket ---")
            try:
                ws = await session.ws_connect(self.ws_url)
            except (aiohttp.ClientError, OSError) as exc:
                raise ConnectionError(
                    f"could not connect to the simulator WebSocket at {self.ws_url}: {exc}"
                ) from exc
            log.info("SUCCESS: WebSocket connection established.")

            async with ws:
                listener = asyncio.create_task(self._listen(ws))
                try:
                    log.info("--- Sending Subscription Requests ---")
                    await self.send_dataref_subscription(ws)
                    await self._stop_event.wait()
                    log.info("Stop requested. Disconnecting...")
                    await ws.close()
                    await listener
                finally:
                    if not listener.done():
                        listener.cancel()

    def stop(self) -> None:
        """Ask a running ``start`` to close the connection and return."""
        loop = self._loop
        if loop is not None and loop.is_running() and not loop.is_closed():
            loop.call_soon_threadsafe(self._stop_event.set)
        else:
            self._stop_event.set()

    async def _listen(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        async for msg in ws:
            if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                self.process_message(msg.data)
            elif msg.type == aiohttp.WSMsgType.ERROR:
                log.error("Read error: %s", ws.exception())
                return
        log.info("Connection closed.")

    def _report_indices(self) -> None:
        found = len(self.datarefs)
        if found == len(DATAREFS):
            log.info("SUCCESS: All DataRef Indices received.")
            for dataref_id, dataref in self.datarefs.items():
                log.info("  - %-40s -> ID: %d", dataref.name, dataref_id)
        elif found > 0:
            log.warning(
                "WARNING: Only %d of %d indices were received. Some datarefs may be invalid.",
                found,
                len(DATAREFS),
            )
        else:
            raise RuntimeError(
                "received no dataref indices; check the simulator REST configuration "
                f"(port {XPLANE_API_PORT}) and firewall"
            )

    async def get_dataref_indices(self, session: aiohttp.ClientSession) -> dict[int, Dataref]:
        """Query the REST API for the ids of the tracked datarefs and store them."""
        url = build_url_with_filters(self.rest_base_url)
        log.info("Querying: %s", url)
        try:
            async with session.get(
                url,
                headers={"Accept": "application/json"},
                timeout=aiohttp.ClientTimeout(total=REST_TIMEOUT),
            ) as resp:
                body = await resp.read()
                status = resp.status
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise ConnectionError(f"error performing HTTP GET to {url}: {exc}") from exc
        if status != 200:
            text = body.decode("utf-8", errors="replace")
            raise RuntimeError(
                f"received non-OK status code {status} from the REST API. Response: {text}"
            )
        try:
            return self.load_indices(body)
        except ValueError as exc:
            raise ValueError(f"error decoding response body: {exc}") from exc

    def load_indices(self, response: Any) -> dict[int, Dataref]:
        """Store the tracked datarefs found in a REST response, keyed by id.

        ``response`` is either a parsed list of ``DatarefInfo`` or a raw
        ``{"data": [...]}`` body. Datarefs that are not tracked are ignored.
        """
        if isinstance(response, list):
            infos: Iterable[DatarefInfo] = response
        else:
            infos = parse_datarefs_response(response)
        kinds = dict(DATAREFS)
        self.datarefs = {
            info.id: Dataref(name=info.name, api_info=info, decoded_data_type=kinds[info.name])
            for info in infos
            if info.name in kinds
        }
        return self.datarefs

    def subscription_request(self) -> DatarefSubscriptionRequest:
        """Build a subscription request for every known dataref id, with a fresh request id."""
        return DatarefSubscriptionRequest(
            request_id=next(_request_ids),
            type="dataref_subscribe_values",
            datarefs=list(self.datarefs),
        )

    async def send_dataref_subscription(self, ws: Any) -> DatarefSubscriptionRequest:
        """Send a subscription request on ``ws`` and return it."""
        request = self.subscription_request()
        await send_json(ws, request)
        log.info("-> Sent Request ID %d: Subscribing to datarefs", request.request_id)
        return request

    def process_message(self, message: str | bytes) -> SubscriptionResponse | None:
        """Parse and dispatch one incoming WebSocket message.

        Returns the parsed message, or None if it could not be parsed.
        """
        try:
            response = SubscriptionResponse.from_json(message)
        except ValueError as exc:
            log.error("Error parsing top-level response: %s. Raw: %r", exc, message)
            return None

        if response.type == "dataref_update_values":
            self.handle_dataref_update(response.data or {})
        elif response.type == "result":
            outcome = "Success" if response.success else "Failure"
            log.info("<- Received Response ID %d: %s", response.request_id, outcome)
        else:
            log.info(
                "[UNKNOWN] Req ID %d, Type: %s, Payload: %r",
                response.request_id,
                response.type,
                message,
            )
        return response

    def handle_dataref_update(self, data: dict[str, Any]) -> list[str]:
        """Decode updated values into the stored datarefs, then refresh aircraft.

        Returns the registrations whose flight phase changed.
        """
        for key, value in data.items():
            try:
                dataref_id = int(key)
            except ValueError:
                log.error("Error converting dataref ID %s to int", key)
                continue
            dataref = self.datarefs.get(dataref_id)
            if dataref is None:
                log.warning("Received update for unknown DataRef ID %d", dataref_id)
                continue

            kind = dataref.decoded_data_type
            if kind == STRING_ARRAY:
                if not isinstance(value, str):
                    log.error("DataRef %s: expected a string, got %r", key, value)
                    continue
                try:
                    decoded = decode_null_terminated_string(value)
                except ValueError:
                    decoded = []
                if decoded:
                    dataref.value = decoded
                    log.info("DataRef %s: decoded strings: %s", key, decoded)
                else:
                    log.info("DataRef %s: string: %s", key, value)
            elif kind in (FLOAT_ARRAY, INT_ARRAY):
                if not isinstance(value, list) or not all(_is_number(v) for v in value):
                    log.error("DataRef %s: expected a numeric array, got %r", key, value)
                    continue
                if kind == FLOAT_ARRAY:
                    dataref.value = [float(v) for v in value]
                    log.info("DataRef %s: floats: %s", key, dataref.value)
                else:
                    dataref.value = [int(v) for v in value]
                    log.info("DataRef %s: ints: %s", key, dataref.value)
            else:
                log.info("DataRef %s: raw payload: %r", key, value)

        return self.update_aircraft_data()

    def update_aircraft_data(self) -> list[str]:
        """Create or update tracked aircraft from the latest dataref values.

        Returns the registrations whose flight phase changed since the
        previous update; the first update only initialises.
        """
        tail_dataref = self.get_dataref_by_name(TAIL_NUMBER)
        if tail_dataref is None:
            log.error("Error: tail number dataref not found")
            return []
        tail_numbers = tail_dataref.value
        if not isinstance(tail_numbers, list):
            log.error("Error: tail number dataref has invalid type")
            return []

        for index, tail_number in enumerate(tail_numbers):
            aircraft = self.aircraft.get(tail_number)
            if aircraft is None:
                aircraft = Aircraft(
                    registration=tail_number,
                    flight=Flight(
                        phase=Phase(
                            current=FlightPhase.UNKNOWN,
                            previous=FlightPhase.UNKNOWN,
                            transition=datetime.now(),
                        )
                    ),
                )
                self.aircraft[tail_number] = aircraft
                log.info("New aircraft detected: %s", tail_number)

            phase_value = self.get_dataref_value(FLIGHT_PHASE, index)
            if phase_value is not None:
                phase = aircraft.flight.phase
                phase.previous = phase.current
                phase.current = phase_value

        changed: list[str] = []
        if not self.initialised:
            self.initialised = True
            log.info("Initial aircraft data loaded.")
        else:
            for aircraft in self.aircraft.values():
                phase = aircraft.flight.phase
                if phase.current != phase.previous:
                    log.info(
                        "Aircraft %s changed phase from %d to %d",
                        aircraft.registration,
                        phase.previous,
                        phase.current,
                    )
                    phase.transition = datetime.now()
                    changed.append(aircraft.registration)

        log.info("Total tracked aircraft: %d", len(self.aircraft))
        self.print_aircraft_data()
        return changed

    def get_dataref_value(self, name: str, index: int) -> Any:
        """Return element ``index`` of an array dataref, or the raw value of any other.

        Returns None if the dataref is unknown, has no value yet, or the
        index is out of range.
        """
        dataref = self.get_dataref_by_name(name)
        if dataref is None:
            return None
        if dataref.decoded_data_type in (STRING_ARRAY, FLOAT_ARRAY, INT_ARRAY):
            values = dataref.value
            if not isinstance(values, list) or not 0 <= index < len(values):
                return None
            return values[index]
        return dataref.value

    def get_dataref_by_name(self, name: str) -> Dataref | None:
        """Return the stored dataref with this name, if any."""
        return next((d for d in self.datarefs.values() if d.name == name), None)

    def print_aircraft_data(self) -> list[str]:
        """Log one line per tracked aircraft and return those lines."""
        lines = [
            f"Aircraft: {ac.registration}, Flight Phase: {int(ac.flight.phase.current)} "
            f"(previous {int(ac.flight.phase.previous)})"
            for ac in self.aircraft.values()
        ]
        for line in lines:
            log.info("%s", line)
        return lines