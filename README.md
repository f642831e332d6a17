# decimalniner

Tracks the AI traffic of an X-Plane session through the simulator's Web API.
It looks up the traffic datarefs over REST, subscribes to their values over a
WebSocket, decodes every update and keeps a record of each AI aircraft and its
flight phase.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Usage

With the simulator running and its Web API listening on port 8086:

```
decimalniner
```

The command:

1. queries `http://127.0.0.1:<port>/api/v2/datarefs` with one
   `filter[name]` parameter per tracked dataref and stores the returned ids
   (the request times out after 10 seconds);
2. connects to `ws://127.0.0.1:<port>/api/v2` and sends one
   `dataref_subscribe_values` request for all ids found;
3. decodes each `dataref_update_values` message, creates an aircraft for every
   new tail number and logs flight phase changes.

Progress is written through `logging` at INFO level. Ctrl+C closes the
WebSocket and ends the program. The exit status is 0 on a normal stop and 1
when the REST lookup, the connection or the response decoding fails, or when
no dataref ids are returned.

Options:

- `--port PORT` — port of the Web API (default 8086).
- `--mock` — start the built-in mock server on that port first, then connect
  to it.

To try it without the simulator:

```
decimalniner --mock
```

The mock server answers dataref lookups with ids counted from 1000 and, after
each subscription, sends three rounds of sample values 0.75 seconds apart.

## Library use

- `decimalniner.util`
  - `decode_null_terminated_string(encoded_data)` decodes base64 and splits it
    on NUL bytes, dropping empty pieces; raises `ValueError` on bad base64.
  - `decode_uint32(val)` reads a packed runway identifier such as `538756` as
    up to four little-endian characters, prints it and returns the text.
  - `send_json(ws, data)` (async) sends `data`, or `data.to_json()`, as a
    JSON text frame on an aiohttp WebSocket and returns the text sent.
- `decimalniner.xpapimodel` holds the wire structures: `DatarefInfo`,
  `Dataref`, `DatarefSubscriptionRequest`, `SubscriptionResponse`,
  `ErrorPayload` and `parse_datarefs_response`.
- `decimalniner.xpconnect`
  - `XPConnect(atc_service, rest_base_url, ws_url)` is the client. `start()`
    runs it until `stop()` is called. `load_indices`, `process_message` and
    `handle_dataref_update` can be fed data directly; `handle_dataref_update`
    returns the registrations whose phase changed. `get_dataref_by_name`,
    `get_dataref_value` and `print_aircraft_data` inspect the current state,
    and `aircraft` maps tail numbers to `Aircraft` records.
  - `FlightPhase` enumerates the phases (`UNKNOWN` is -1, `CRUISE` 0 up to
    `HOLDING` 12).
  - `build_url_with_filters(base_url)` builds the REST lookup URL.
- `decimalniner.mockserver`
  - `MockServer` is the emulated server. `make_app()` returns an aiohttp
    application; `start(port)` and `close()` run it on its own (port 0 picks
    a free port, and `start` returns the bound one).
  - `sample_payload_for_name(name, value_type, iteration)` returns the sample
    value the server sends for a dataref.
- `decimalniner.model` holds the `Aircraft`, `Flight`, `Phase`, `Position`
  and `Comms` data classes.
- `decimalniner.atc` holds `Service`, its controller `Position`s and
  `default_positions()`.

## What it does not do

- The ATC service issues no instructions and makes no transmissions.
  `Service.run()` only drains the triggers waiting on its channel and returns
  how many there were.
- Of the decoded traffic data, only the tail number and flight phase are copied
  onto `Aircraft` records. Positions, aircraft and airline codes, flight
  numbers and parking are decoded and kept on the datarefs but not on the
  aircraft.
- Runway, taxi route, source and destination airport and airport flow datarefs
  are not subscribed to by the client.