import asyncio
import json
import socket
from urllib.parse import parse_qs, urlsplit

import aiohttp
import pytest

from decimalniner.mockserver import MockServer, sample_payload_for_name
from decimalniner.xpapimodel import Dataref, DatarefInfo
from decimalniner.xpconnect import (
    DATAREFS,
    FLIGHT_PHASE,
    TAIL_NUMBER,
    FlightPhase,
    XPConnect,
    build_url_with_filters,
)

NAMES = [name for name, _ in DATAREFS]


def _loaded_client():
    server = MockServer()
    xpc = XPConnect()
    xpc.load_indices(server.describe(NAMES))
    return server, xpc


def _update(server, xpc, iteration):
    payload = {
        str(dataref_id): sample_payload_for_name(
            d.name, server.describe([d.name])[0].value_type, iteration
        )
        for dataref_id, d in xpc.datarefs.items()
    }
    return xpc.handle_dataref_update(payload)


class _FakeWS:
    def __init__(self):
        self.sent = []

    async def send_str(self, text):
        self.sent.append(text)


def _free_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_build_url_with_filters_lists_every_dataref_in_order():
    url = build_url_with_filters("http://127.0.0.1:8086/api/v2/datarefs")
    assert url.startswith(
        "http://127.0.0.1:8086/api/v2/datarefs?filter%5Bname%5D=trafficglobal%2Fai%2Fposition_lat"
    )
    assert parse_qs(urlsplit(url).query)["filter[name]"] == NAMES


def test_build_url_with_filters_keeps_existing_query():
    url = build_url_with_filters("http://localhost/api?b=1")
    query = parse_qs(urlsplit(url).query)
    assert query["b"] == ["1"]
    assert query["filter[name]"] == NAMES


def test_load_indices_keeps_only_tracked_datarefs():
    server = MockServer()
    infos = server.describe(NAMES + ["trafficglobal/ai/runway"])
    xpc = XPConnect()
    result = xpc.load_indices(infos)
    assert len(result) == len(DATAREFS)
    assert {d.name for d in result.values()} == set(NAMES)
    for dataref_id, dataref in result.items():
        assert dataref.api_info.id == dataref_id
        assert dataref.decoded_data_type == dict(DATAREFS)[dataref.name]


def test_load_indices_accepts_raw_body():
    body = json.dumps({"data": [DatarefInfo(id=7, name=TAIL_NUMBER).to_json()]})
    xpc = XPConnect()
    assert xpc.load_indices(body)[7].name == TAIL_NUMBER


def test_subscription_request_uses_known_ids_and_fresh_request_ids():
    _, xpc = _loaded_client()
    first = xpc.subscription_request()
    second = xpc.subscription_request()
    assert second.request_id > first.request_id
    assert first.type == "dataref_subscribe_values"
    assert first.datarefs == list(xpc.datarefs)


@pytest.mark.asyncio
async def test_send_dataref_subscription_writes_json():
    _, xpc = _loaded_client()
    ws = _FakeWS()
    request = await xpc.send_dataref_subscription(ws)
    sent = json.loads(ws.sent[0])
    assert sent["req_id"] == request.request_id
    assert [entry["id"] for entry in sent["params"]["datarefs"]] == list(xpc.datarefs)


def test_handle_dataref_update_decodes_each_kind():
    server, xpc = _loaded_client()
    _update(server, xpc, 0)
    assert xpc.get_dataref_by_name(TAIL_NUMBER).value == ["TN02", "AB006", "DE544"]
    assert xpc.get_dataref_by_name(FLIGHT_PHASE).value == sample_payload_for_name(
        FLIGHT_PHASE, "int[]", 0
    )
    assert xpc.get_dataref_by_name("trafficglobal/ai/position_lat").value == (
        sample_payload_for_name("trafficglobal/ai/position_lat", "float[]", 0)
    )
    assert xpc.get_dataref_value("trafficglobal/ai/flight_num", 1) == 472


def test_handle_dataref_update_ignores_bad_ids_and_values():
    _, xpc = _loaded_client()
    tail_id = next(i for i, d in xpc.datarefs.items() if d.name == TAIL_NUMBER)
    phase_id = next(i for i, d in xpc.datarefs.items() if d.name == FLIGHT_PHASE)
    changed = xpc.handle_dataref_update(
        {"abc": [1], "999999": [1], str(tail_id): 12, str(phase_id): "nope"}
    )
    assert changed == []
    assert xpc.datarefs[tail_id].value is None
    assert xpc.datarefs[phase_id].value is None
    assert xpc.aircraft == {}


def test_update_aircraft_data_creates_aircraft_and_detects_phase_changes():
    server, xpc = _loaded_client()
    assert _update(server, xpc, 0) == []
    assert xpc.initialised
    assert set(xpc.aircraft) == {"TN02", "AB006", "DE544"}
    first_transition = xpc.aircraft["TN02"].flight.phase.transition
    assert xpc.aircraft["TN02"].flight.phase.previous == FlightPhase.UNKNOWN

    assert _update(server, xpc, 1) == ["TN02"]
    phase = xpc.aircraft["TN02"].flight.phase
    assert phase.current == FlightPhase.FINAL
    assert phase.previous == FlightPhase.APPROACH
    assert phase.transition >= first_transition
    assert xpc.aircraft["AB006"].flight.phase.current == xpc.aircraft["AB006"].flight.phase.previous


def test_get_dataref_value_out_of_range_and_missing():
    server, xpc = _loaded_client()
    _update(server, xpc, 0)
    assert xpc.get_dataref_value(TAIL_NUMBER, 3) is None
    assert xpc.get_dataref_value(TAIL_NUMBER, -1) is None
    assert xpc.get_dataref_value("no/such/dataref", 0) is None


def test_get_dataref_value_returns_raw_for_other_kinds():
    xpc = XPConnect()
    xpc.datarefs = {1: Dataref(name="custom", value={"a": 1}, decoded_data_type="?")}
    assert xpc.get_dataref_value("custom", 5) == {"a": 1}


def test_process_message_dispatches_and_rejects_invalid_json():
    server, xpc = _loaded_client()
    assert xpc.process_message("not json") is None
    result = xpc.process_message('{"req_id": 4, "type": "result", "success": true}')
    assert result.request_id == 4 and result.success
    payload = {
        str(i): sample_payload_for_name(d.name, "", 0) for i, d in xpc.datarefs.items()
    }
    xpc.process_message(json.dumps({"type": "dataref_update_values", "data": payload}))
    assert set(xpc.aircraft) == {"TN02", "AB006", "DE544"}


def test_print_aircraft_data_has_a_line_per_aircraft():
    server, xpc = _loaded_client()
    _update(server, xpc, 0)
    lines = xpc.print_aircraft_data()
    assert len(lines) == len(xpc.aircraft)
    assert any("AB006" in line for line in lines)


@pytest.mark.asyncio
async def test_get_dataref_indices_from_mock_server():
    server = MockServer()
    port = await server.start(0)
    try:
        xpc = XPConnect(rest_base_url=f"http://127.0.0.1:{port}/api/v2/datarefs")
        async with aiohttp.ClientSession() as session:
            result = await xpc.get_dataref_indices(session)
        assert {d.name for d in result.values()} == set(NAMES)
        assert all(server.id_for(d.name) == i for i, d in result.items())
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_get_dataref_indices_non_ok_status_raises():
    server = MockServer()
    port = await server.start(0)
    try:
        xpc = XPConnect(rest_base_url=f"http://127.0.0.1:{port}/missing")
        async with aiohttp.ClientSession() as session:
            with pytest.raises(RuntimeError, match="404"):
                await xpc.get_dataref_indices(session)
    finally:
        await server.close()


@pytest.mark.asyncio
async def test_start_without_server_raises_connection_error():
    port = _free_port()
    xpc = XPConnect(
        rest_base_url=f"http://127.0.0.1:{port}/api/v2/datarefs",
        ws_url=f"ws://127.0.0.1:{port}/api/v2",
    )
    with pytest.raises(ConnectionError):
        await xpc.start()


@pytest.mark.asyncio
async def test_start_tracks_traffic_until_stopped():
    server = MockServer(update_interval=0.05, update_count=3)
    port = await server.start(0)
    try:
        xpc = XPConnect(
            rest_base_url=f"http://127.0.0.1:{port}/api/v2/datarefs",
            ws_url=f"ws://127.0.0.1:{port}/api/v2",
        )
        task = asyncio.create_task(xpc.start())
        for _ in range(100):
            if len(xpc.aircraft) == 3 or task.done():
                break
            await asyncio.sleep(0.05)
        xpc.stop()
        await asyncio.wait_for(task, 5)
        assert set(xpc.aircraft) == {"TN02", "AB006", "DE544"}
        assert xpc.aircraft["AB006"].flight.phase.current == 2
    finally:
        await server.close()