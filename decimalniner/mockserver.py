"""A local stand-in for the simulator's REST and WebSocket dataref API."""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import threading
from typing import Any, Iterable

from aiohttp import WSMsgType, web

from decimalniner.xpapimodel import DatarefInfo

log = logging.getLogger(__name__)

DEFAULT_DATAREF = "trafficglobal/ai/aircraft_code"
DEFAULT_VALUE_TYPE = "binary[]"
FIRST_ID = 1000

# Known datarefs and their canonical value types.
DATAREF_DEFS: dict[str, str] = {
    "trafficglobal/ai/position_lat": "float[]",
    "trafficglobal/ai/position_long": "float[]",
    "trafficglobal/ai/position_heading": "float[]",
    "trafficglobal/ai/position_elev": "float[]",
    "trafficglobal/ai/aircraft_code": "binary[]",
    "trafficglobal/ai/airline_code": "binary[]",
    "trafficglobal/ai/tail_number": "binary[]",
    "trafficglobal/ai/ai_type": "int[]",
    "trafficglobal/ai/ai_class": "int[]",
    "trafficglobal/ai/flight_num": "int[]",
    # ICAO codes are served as binary strings here.
    "trafficglobal/ai/source_icao": "binary[]",
    "trafficglobal/ai/dest_icao": "binary[]",
    "trafficglobal/ai/parking": "binary[]",
    "trafficglobal/ai/flight_phase": "int[]",
    "trafficglobal/ai/runway": "int[]",
    "trafficglobal/ai/taxi_route": "binary[]",
    "trafficglobal/airport_flows": "binary[]",
}


def _b64(data: str | bytes) -> str:
    raw = data.encode("latin-1") if isinstance(data, str) else data
    return base64.b64encode(raw).decode("ascii")


def sample_payload_for_name(name: str, value_type: str, iteration: int) -> Any:
    """Return a JSON-serialisable sample value for a dataref.

    Name-specific samples are preferred; otherwise the value type decides
    between a float list, an int list or base64 of null-terminated strings.
    """
    i = iteration
    if name == "trafficglobal/ai/position_lat":
        return [35.145877838134766 + i, 35.1459 + i, 35.146 + i]
    if name == "trafficglobal/ai/position_long":
        return [24.120702743530273 + i, 24.121 + i, 24.122 + i]
    if name == "trafficglobal/ai/position_heading":
        return [180.0 + i, 181.0 + i, 182.0 + i]
    if name == "trafficglobal/ai/position_elev":
        return [10372.2021484375 + i, 10380.0 + i, 10390.0 + i]
    if name == "trafficglobal/ai/aircraft_code":
        return _b64(f"AC{i:02d}\x00BC{i:02d}\x00CC{i:02d}\x00")
    if name == "trafficglobal/ai/airline_code":
        return _b64(f"AL{i:02d}\x00BL{i:02d}\x00CL{i:02d}\x00")
    if name == "trafficglobal/ai/tail_number":
        return _b64("TN02\x00AB006\x00DE544\x00")
    if name == "trafficglobal/ai/source_icao":
        return _b64(f"SRC{i:02d}\x00SRC{i:02d}\x00")
    if name == "trafficglobal/ai/dest_icao":
        return _b64(f"DST{i:02d}\x00DST{i:02d}\x00")
    if name == "trafficglobal/ai/parking":
        return _b64(f"RAMP {i}\x00APRON {i}\x00")
    if name == "trafficglobal/ai/ai_type":
        return [0 + i, 0 + i, 1 + i]
    if name == "trafficglobal/ai/ai_class":
        return [2, 2, 2]
    if name == "trafficglobal/ai/flight_num":
        return [471 + i, 472 + i, 473 + i]
    if name == "trafficglobal/ai/flight_phase":
        return [1 + i, 2, 3]
    if name == "trafficglobal/ai/runway":
        return [538756, 13107, 0, 0]
    if name == "trafficglobal/ai/taxi_route":
        # Empty when nothing is taxiing.
        return _b64("")
    if name == "trafficglobal/airport_flows":
        return _b64(bytes([0x0B, 0x00, 0x01]))

    if value_type == "float[]":
        return [1.1 + i, 2.2 + i]
    if value_type == "int[]":
        return [1 + i, 2 + i, 3 + i]
    return _b64(f"VAL{i:02d}\x00VAL{i:02d}\x00")


def _subscribed_ids(message: dict) -> list[int]:
    params = message.get("params")
    if not isinstance(params, dict):
        return []
    entries = params.get("datarefs")
    if not isinstance(entries, list):
        return []
    return [
        entry["id"]
        for entry in entries
        if isinstance(entry, dict)
        and isinstance(entry.get("id"), int)
        and not isinstance(entry.get("id"), bool)
    ]


class MockServer:
    """Serves dataref lookups over REST and pushes sample updates over WebSocket."""

    def __init__(self, update_interval: float = 0.75, update_count: int = 3) -> None:
        self.update_interval = update_interval
        self.update_count = update_count
        self._lock = threading.Lock()
        self._ids: dict[str, int] = {}
        self._next_id = FIRST_ID
        self._id_to_name: dict[int, str] = {}
        self._id_to_value_type: dict[int, str] = {}
        self._tasks: set[asyncio.Task] = set()
        self._runner: web.AppRunner | None = None

    def id_for(self, name: str) -> int:
        """Return the stable id for a dataref name, allocating one if new."""
        with self._lock:
            existing = self._ids.get(name)
            if existing is not None:
                return existing
            new_id = self._next_id
            self._next_id += 1
            self._ids[name] = new_id
            return new_id

    def describe(self, names: Iterable[str]) -> list[DatarefInfo]:
        """Describe the named datarefs and remember them for later updates."""
        wanted = list(names) or [DEFAULT_DATAREF]
        infos = []
        for name in wanted:
            dataref_id = self.id_for(name)
            value_type = DATAREF_DEFS.get(name, DEFAULT_VALUE_TYPE)
            with self._lock:
                self._id_to_name[dataref_id] = name
                self._id_to_value_type[dataref_id] = value_type
            infos.append(
                DatarefInfo(id=dataref_id, is_writable=False, name=name, value_type=value_type)
            )
        return infos

    def _update_payload(self, ids: list[int], iteration: int) -> dict[str, Any]:
        payload = {}
        for dataref_id in ids:
            with self._lock:
                value_type = self._id_to_value_type.get(dataref_id, "")
                name = self._id_to_name.get(dataref_id, "")
            payload[str(dataref_id)] = sample_payload_for_name(name, value_type, iteration)
        return payload

    async def _datarefs_handler(self, request: web.Request) -> web.Response:
        names = request.query.getall("filter[name]", [])
        infos = self.describe(names)
        return web.json_response({"data": [info.to_json() for info in infos]})

    async def _send_updates(self, ws: web.WebSocketResponse, ids: list[int]) -> None:
        for iteration in range(self.update_count):
            await asyncio.sleep(self.update_interval)
            if ws.closed:
                return
            message = {"type": "dataref_update_values", "data": self._update_payload(ids, iteration)}
            try:
                await ws.send_json(message)
            except (ConnectionResetError, RuntimeError) as exc:
                log.info("mockserver: update not sent: %s", exc)
                return

    async def _ws_handler(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        tasks: set[asyncio.Task] = set()
        try:
            async for msg in ws:
                if msg.type == WSMsgType.ERROR:
                    log.info("mockserver: read error: %s", ws.exception())
                    break
                if msg.type != WSMsgType.TEXT:
                    continue
                try:
                    incoming = json.loads(msg.data)
                except json.JSONDecodeError as exc:
                    log.info("mockserver: invalid JSON: %s", exc)
                    continue
                if not isinstance(incoming, dict):
                    log.info("mockserver: invalid JSON: not an object")
                    continue
                msg_type = incoming.get("type")
                if msg_type == "dataref_subscribe_values":
                    req_id = incoming.get("req_id")
                    if not isinstance(req_id, int) or isinstance(req_id, bool):
                        req_id = 0
                    await ws.send_json({"req_id": req_id, "type": "result", "success": True})
                    task = asyncio.create_task(self._send_updates(ws, _subscribed_ids(incoming)))
                    tasks.add(task)
                    self._tasks.add(task)
                    task.add_done_callback(tasks.discard)
                    task.add_done_callback(self._tasks.discard)
                else:
                    log.info("mockserver: received unknown ws type=%r msg=%s", msg_type, msg.data)
        finally:
            for task in list(tasks):
                task.cancel()
        return ws

    def make_app(self) -> web.Application:
        """Build the web application serving the REST and WebSocket endpoints."""
        app = web.Application()
        app.router.add_get("/api/v2/datarefs", self._datarefs_handler)
        app.router.add_get("/api/v2", self._ws_handler)
        return app

    async def start(self, port: int | str) -> int:
        """Start listening on ``port`` on all interfaces; return the bound port."""
        if self._runner is not None:
            raise RuntimeError("mock server already started")
        runner = web.AppRunner(self.make_app())
        await runner.setup()
        site = web.TCPSite(runner, port=int(port))
        try:
            await site.start()
        except OSError:
            await runner.cleanup()
            raise
        self._runner = runner
        bound = runner.addresses[0][1] if runner.addresses else int(port)
        log.info("mockserver: listening on :%s", bound)
        return bound

    async def close(self) -> None:
        """Stop the server and any pending update senders."""
        for task in list(self._tasks):
            task.cancel()
        if self._runner is not None:
            runner, self._runner = self._runner, None
            await runner.cleanup()