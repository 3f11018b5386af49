"""Simulated BME environment sensor that reports values dropped into files."""

from __future__ import annotations

import os
import re
import termios

from jfpowerctrl.files import File

_LEADING_FLOAT = re.compile(
    r"\s*([+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)"
)

_READINGS = (
    ("BME_temperature", "Temperature = %f *C\r\n"),
    ("BME_humidity", "Humidity = %f %%\r\n"),
    ("BME_pressure", "Pressure = %f hPa\r\n"),
    ("BME_altitude", "Approx. Altitude = %f m\r\n"),
)


def _open_bme_pty(link):
    """Open a pseudo terminal, link its terminal side to ``link`` and return the master fd."""
    master, slave = os.openpty()
    try:
        try:
            attrs = termios.tcgetattr(slave)
            attrs[3] &= ~termios.ECHO
            termios.tcsetattr(slave, termios.TCSANOW, attrs)
        except termios.error:
            pass
        name = os.ttyname(slave)
    finally:
        os.close(slave)
    try:
        os.unlink(link)
    except OSError:
        pass
    try:
        os.symlink(name, link)
    except OSError:
        pass
    return master


class Simulator:
    """Emits BME sensor lines for every reading file found in ``path``.

    Each reading file (``BME_temperature``, ``BME_humidity``, ``BME_pressure``,
    ``BME_altitude``) is consumed: its value is reported once and the file is
    removed. Lines go to ``output`` when given, otherwise to a pseudo terminal
    whose device is linked from ``<path>/BME``.
    """

    def __init__(self, path, output=None):
        self._output = output
        self._fd = None
        if output is None:
            self._fd = _open_bme_pty(File(path, "BME").filename)
        self._readings = [(File(path, name).filename, fmt) for name, fmt in _READINGS]

    def read_float(self, filename):
        """Return the number at the start of ``filename`` (0.0 if none) and remove the file."""
        result = 0.0
        try:
            with open(filename, encoding="utf-8") as handle:
                text = handle.read()
        except OSError:
            text = ""
        match = _LEADING_FLOAT.match(text)
        if match:
            result = float(match.group(1))
        try:
            os.unlink(filename)
        except OSError:
            pass
        return result

    def write_bme(self, fmt, value):
        """Format ``value`` with the printf-style ``fmt`` and send it to the sensor output."""
        data = (fmt % value).encode("ascii")
        try:
            if self._output is not None:
                self._output.write(data)
                flush = getattr(self._output, "flush", None)
                if flush is not None:
                    flush()
            elif self._fd is not None:
                os.write(self._fd, data)
        except OSError:
            pass

    def check_bme(self):
        """Report and consume every reading file that is present."""
        for filename, fmt in self._readings:
            if os.path.exists(filename):
                self.write_bme(fmt, self.read_float(filename))

    def close(self):
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()