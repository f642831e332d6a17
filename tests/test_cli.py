import signal
import socket
import threading

import pytest

from decimalniner.cli import main, parse_args


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def test_parse_args_defaults():
    args = parse_args([])
    assert args.mock is False
    assert args.port == 8086


def test_parse_args_mock_flag():
    args = parse_args(["--mock"])
    assert args.mock is True


def test_parse_args_port_round_trip():
    port = _free_port()
    args = parse_args(["--port", str(port)])
    assert args.port == port


@pytest.mark.parametrize("value", ["0", "65536", "abc", "-5"])
def test_parse_args_rejects_bad_port(value):
    with pytest.raises(SystemExit) as info:
        parse_args(["--port", value])
    assert info.value.code == 2


def test_parse_args_rejects_unknown_option():
    with pytest.raises(SystemExit) as info:
        parse_args(["--no-such-option"])
    assert info.value.code == 2


def test_main_fails_when_simulator_unreachable():
    port = _free_port()
    assert main(["--port", str(port)]) == 1


def test_main_fails_when_mock_port_taken():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as busy:
        busy.bind(("", 0))
        busy.listen(1)
        port = busy.getsockname()[1]
        assert main(["--mock", "--port", str(port)]) == 1


def test_main_with_mock_stops_cleanly_on_interrupt():
    port = _free_port()
    timer = threading.Timer(2.0, signal.raise_signal, args=(signal.SIGINT,))
    timer.start()
    try:
        status = main(["--mock", "--port", str(port)])
    finally:
        timer.cancel()
    assert status == 0