"""TCP server that answers power-control commands, one command per line."""

from __future__ import annotations

import re
import selectors
import socket
import sys
import threading

from jfpowerctrl.commands import CommandRunner

_LINE_BREAKS = re.compile(rb"[\r\n]+")
_LISTENER = object()
_WAKE = object()
SIM_POLL_INTERVAL = 0.5


class Connection:
    """One client: splits its input into lines and sends back each command's reply.

    A line that does not fit in ``bufsz`` bytes is dropped whole.
    """

    def __init__(self, sock, runner, bufsz=1024):
        self.sock = sock
        self.runner = runner
        self.bufsz = bufsz
        self._pending = b""
        self._overflow = False
        self._closed = False

    @property
    def closed(self):
        return self._closed

    def shutdown(self):
        if not self._closed:
            self._closed = True
            self.sock.close()

    def process(self):
        """Read what the client sent and answer it; False means drop the connection."""
        try:
            data = self.sock.recv(self.bufsz - len(self._pending) - 1)
        except OSError as exc:
            print(f"Error: socket recv failed!: {exc}", file=sys.stderr)
            return False
        if not data:
            return False
        return self.feed(data)

    def feed(self, data):
        """Take received bytes, answer every complete line; False on a send failure."""
        text = self._pending + data
        lines = [line for line in _LINE_BREAKS.split(text) if line]
        if text.endswith(b"\n"):
            complete, rest = lines, b""
        else:
            complete, rest = lines[:-1], (lines[-1] if lines else b"")
        self._pending = b""
        for line in complete:
            if self._overflow:
                self._overflow = False
                continue
            if not self._reply(line):
                return False
        if len(rest) >= self.bufsz - 1:
            self._overflow = True
        else:
            self._pending = rest
        return True

    def _reply(self, line):
        if self.runner is None or self._closed:
            return False
        reply = self.runner.run(line.decode("utf-8", "surrogateescape"))
        try:
            self.sock.sendall(reply.encode("utf-8", "surrogateescape"))
        except OSError as exc:
            print(f"Error: socket send failed!: {exc}", file=sys.stderr)
            return False
        return True


class Server:
    """Listens on ``port`` and serves up to ``max_conns`` clients at once.

    Clients beyond that limit are accepted and closed straight away. With a
    simulator, its sensor files are checked after every poll.
    """

    def __init__(self, path, block, port, max_conns, sim=None, num_ps=1, num_gpios=1, host=""):
        self.max_conns = max_conns
        self.sim = sim
        self.runner = CommandRunner(path, block, num_ps, num_gpios)
        self._conns = [None] * max_conns
        self._lock = threading.Lock()
        self._running = False
        self._released = False

        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            if hasattr(socket, "SO_REUSEPORT"):
                listener.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            listener.bind((host, port))
            listener.listen(max_conns)
        except OSError:
            listener.close()
            raise
        self._listener = listener
        self.address = listener.getsockname()

        self._wake_r, self._wake_w = socket.socketpair()
        self._selector = selectors.DefaultSelector()
        self._selector.register(listener, selectors.EVENT_READ, _LISTENER)
        self._selector.register(self._wake_r, selectors.EVENT_READ, _WAKE)
        self._up = True

    def run(self):
        """Serve clients until :meth:`close` is called or the server fails."""
        with self._lock:
            if self._released:
                return
            self._running = True
        try:
            while self._up:
                self._prune()
                try:
                    events = self._selector.select(SIM_POLL_INTERVAL if self.sim else None)
                except OSError as exc:
                    print(f"Error: server poller failed: {exc}", file=sys.stderr)
                    self._up = False
                    break
                accept_ready = False
                for key, _ in events:
                    if key.data is _WAKE:
                        self._drain_wake()
                    elif key.data is _LISTENER:
                        accept_ready = True
                    else:
                        conn = self._conns[key.data]
                        if conn is not None and not conn.process():
                            self._remove(key.data)
                if accept_ready and self._up:
                    self._up = self._accept()
                if self.sim is not None:
                    self.sim.check_bme()
        finally:
            with self._lock:
                self._running = False
            self._release()

    def close(self):
        """Stop serving and release the sockets; safe from another thread."""
        self._up = False
        try:
            self._wake_w.send(b"\0")
        except OSError:
            pass
        with self._lock:
            running = self._running
        if not running:
            self._release()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _drain_wake(self):
        try:
            self._wake_r.recv(1024)
        except OSError:
            pass

    def _accept(self):
        try:
            sock, _ = self._listener.accept()
        except OSError as exc:
            print(f"Error: connection accept failed: {exc}", file=sys.stderr)
            return False
        free = next((i for i, conn in enumerate(self._conns) if conn is None), None)
        if free is None:
            sock.close()
            return True
        self._conns[free] = Connection(sock, self.runner)
        self._selector.register(sock, selectors.EVENT_READ, free)
        return True

    def _remove(self, idx):
        conn = self._conns[idx]
        if conn is None:
            return
        try:
            self._selector.unregister(conn.sock)
        except (KeyError, ValueError):
            pass
        conn.shutdown()
        self._conns[idx] = None

    def _prune(self):
        for idx, conn in enumerate(self._conns):
            if conn is not None and conn.closed:
                self._remove(idx)

    def _release(self):
        with self._lock:
            if self._released:
                return
            self._released = True
        for idx in range(len(self._conns)):
            self._remove(idx)
        self._selector.close()
        self._listener.close()
        self._wake_r.close()
        self._wake_w.close()