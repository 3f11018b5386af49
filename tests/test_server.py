import io
import socket
import threading
import time

import pytest

from jfpowerctrl.commands import CommandRunner
from jfpowerctrl.server import Connection, Server
from jfpowerctrl.simulator import Simulator

IDN = b"JF4MD-CTRL\n"


@pytest.fixture
def runner(tmp_path):
    return CommandRunner(str(tmp_path), str(tmp_path), 1, 1)


@pytest.fixture
def pair():
    ours, theirs = socket.socketpair()
    theirs.settimeout(5)
    yield ours, theirs
    ours.close()
    theirs.close()


def test_feed_answers_complete_line(pair, runner):
    ours, theirs = pair
    conn = Connection(ours, runner)
    assert conn.feed(b"*IDN?\n") is True
    assert theirs.recv(1024) == IDN


def test_feed_joins_split_line(pair, runner):
    ours, theirs = pair
    conn = Connection(ours, runner)
    assert conn.feed(b"*ID") is True
    assert conn.feed(b"N?\r\n") is True
    assert theirs.recv(1024) == IDN


def test_feed_handles_several_commands(pair, runner):
    ours, theirs = pair
    conn = Connection(ours, runner)
    assert conn.feed(b"INTERVAL 7\r\nINTERVAL?\n") is True
    assert theirs.recv(1024) == b"7\n"
    assert runner.pause == 7


def test_overlong_line_is_dropped(pair, runner):
    ours, theirs = pair
    conn = Connection(ours, runner, bufsz=16)
    assert conn.feed(b"X" * 15) is True
    assert conn.feed(b"TAIL\n*IDN?\n") is True
    assert theirs.recv(1024) == IDN


def test_feed_without_runner_fails(pair):
    ours, _ = pair
    conn = Connection(ours, None)
    assert conn.feed(b"*IDN?\n") is False


def test_process_reads_and_replies(pair, runner):
    ours, theirs = pair
    conn = Connection(ours, runner)
    theirs.sendall(b"*IDN?\n")
    assert conn.process() is True
    assert theirs.recv(1024) == IDN
    theirs.close()
    assert conn.process() is False


def test_shutdown_closes_socket(pair, runner):
    ours, theirs = pair
    conn = Connection(ours, runner)
    conn.shutdown()
    assert conn.closed is True
    assert theirs.recv(1024) == b""


def _start(server):
    thread = threading.Thread(target=server.run, daemon=True)
    thread.start()
    return thread


def _connect(server):
    return socket.create_connection(("127.0.0.1", server.address[1]), timeout=5)


def test_server_answers_client(tmp_path):
    server = Server(str(tmp_path), str(tmp_path), 0, 2, host="127.0.0.1")
    thread = _start(server)
    try:
        with _connect(server) as client:
            client.sendall(b"*IDN?\n")
            assert client.recv(1024) == IDN
    finally:
        server.close()
        thread.join(5)
    assert not thread.is_alive()


def test_server_turns_away_extra_clients(tmp_path):
    server = Server(str(tmp_path), str(tmp_path), 0, 1, host="127.0.0.1")
    thread = _start(server)
    try:
        with _connect(server) as first:
            first.sendall(b"*IDN?\n")
            assert first.recv(1024) == IDN
            with _connect(server) as second:
                assert second.recv(1024) == b""
    finally:
        server.close()
        thread.join(5)


def test_server_checks_simulator(tmp_path):
    sink = io.BytesIO()
    sim = Simulator(str(tmp_path), output=sink)
    (tmp_path / "BME_humidity").write_text("40")
    server = Server(str(tmp_path), str(tmp_path), 0, 1, sim=sim, host="127.0.0.1")
    thread = _start(server)
    try:
        deadline = time.monotonic() + 5
        while not sink.getvalue() and time.monotonic() < deadline:
            time.sleep(0.05)
    finally:
        server.close()
        thread.join(5)
    assert sink.getvalue() == b"Humidity = 40.000000 %\r\n"


def test_closed_server_refuses_connections(tmp_path):
    server = Server(str(tmp_path), str(tmp_path), 0, 1, host="127.0.0.1")
    port = server.address[1]
    server.close()
    server.run()
    with pytest.raises(ConnectionRefusedError):
        socket.create_connection(("127.0.0.1", port), timeout=5)