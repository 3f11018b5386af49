"""Plain files that record the detector's state: log, block marker and state flag."""

from __future__ import annotations

import enum
import os
import re
import sys
import time

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


class LogLevel(enum.IntEnum):
    """How much a :class:`Logger` writes to its log file."""

    DEBUG = 0
    INFO = 1
    ERROR = 2


class File:
    """A file identified by a directory and a name."""

    def __init__(self, path, name, sep="/"):
        self.filename = f"{os.fspath(path)}{sep}{name}"

    def __repr__(self):
        return f"{type(self).__name__}({self.filename!r})"


class Logger(File):
    """Echoes messages to the console and appends them, timestamped, to a file.

    A message goes to the file when the logger's level is at least the
    message's own level.
    """

    def __init__(self, path, name, level=LogLevel.INFO):
        super().__init__(path, name)
        self.level = LogLevel(level)

    def debug(self, message):
        print(message)
        if self.level >= LogLevel.DEBUG:
            self._log(message)

    def info(self, message):
        print(message)
        if self.level >= LogLevel.INFO:
            self._log(message)

    def error(self, message):
        print(message, file=sys.stderr)
        if self.level >= LogLevel.ERROR:
            self._log(message)

    def _log(self, message):
        try:
            with open(self.filename, "a", encoding="utf-8") as handle:
                handle.write(f"{_timestamp()} {message}\n")
        except OSError:
            pass


def _timestamp():
    return time.strftime("%a %b %d %H:%M:%S %Z %Y", time.localtime())


class Block(File):
    """A marker file named ``block`` whose presence forbids powering on."""

    def __init__(self, path):
        super().__init__(path, "block")

    def is_set(self):
        return os.path.exists(self.filename)

    def set(self):
        """Create the marker; return whether that worked."""
        try:
            with open(self.filename, "w", encoding="utf-8"):
                pass
        except OSError as exc:
            print(f"Problem creating block file {self.filename}: {exc.strerror}", file=sys.stderr)
            return False
        return True

    def clear(self):
        """Remove the marker; a missing marker counts as success."""
        try:
            os.remove(self.filename)
        except FileNotFoundError:
            pass
        except OSError as exc:
            print(f"Problem removing block file {self.filename}: {exc.strerror}", file=sys.stderr)
            return False
        return True


class Flag(File):
    """A boolean persisted as ``0`` or ``1`` in a file."""

    def is_set(self):
        try:
            with open(self.filename, encoding="utf-8") as handle:
                text = handle.read()
        except OSError:
            return False
        match = _LEADING_INT.match(text)
        return bool(match) and int(match.group(1)) != 0

    def set(self):
        return self._write(True)

    def clear(self):
        return self._write(False)

    def _write(self, flag):
        try:
            with open(self.filename, "w", encoding="utf-8") as handle:
                handle.write("1" if flag else "0")
        except OSError:
            return False
        return True