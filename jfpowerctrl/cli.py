"""Command line entry point that starts the power-control server."""

from __future__ import annotations

import argparse
import re

from jfpowerctrl.server import Server
from jfpowerctrl.simulator import Simulator

VERSION = "1.0"
DEFAULT_PORT = 32415
DEFAULT_CONNECTIONS = 3
PROG = "jfpowerctrl"

_NUMBER = re.compile(r"\s*(0[xX][0-9a-fA-F]+|0[0-7]*|[1-9][0-9]*)")


class _UsageError(Exception):
    pass


class _Parser(argparse.ArgumentParser):
    def error(self, message):
        raise _UsageError(message)


def _number(text):
    """Read a leading decimal, 0x hex or 0 octal number; 0 when there is none."""
    match = _NUMBER.match(text)
    if not match:
        return 0
    digits = match.group(1)
    if digits[:2] in ("0x", "0X"):
        return int(digits, 16)
    if digits.startswith("0"):
        return int(digits, 8)
    return int(digits, 10)


def _usage(prog):
    return "\n".join(
        (
            f"Usage: {prog} [-v|--version] [-h|--help]",
            "-p|--path <path> -l|--logdir <logdir> [-P|--port <port>]",
            "[-c|--conn <connections>]",
            " Options:",
            "    -p|--path     <path>                    the path to the power control scripts",
            "    -l|--logdir   <logdir>                  the logdir of the power control scripts",
            f"    -P|--port     <port>                    port to use for the server (default: {DEFAULT_PORT})",
            f"    -c|--conn     <connections>             maximum number of connections (default: {DEFAULT_CONNECTIONS})",
            "    -s|--sim                                simulate extra sensors",
            "    -v|--version                            show file version",
            "    -h|--help                               print this message and exit",
        )
    )


def build_parser():
    parser = _Parser(prog=PROG, add_help=False)
    parser.add_argument("-v", "--version", action="store_true")
    parser.add_argument("-h", "--help", action="store_true")
    parser.add_argument("-p", "--path", default="")
    parser.add_argument("-l", "--logdir", default="")
    parser.add_argument("-P", "--port", type=_number, default=DEFAULT_PORT)
    parser.add_argument("-c", "--conn", type=_number, default=DEFAULT_CONNECTIONS)
    parser.add_argument("-s", "--sim", action="store_true")
    return parser


def main(argv=None):
    parser = build_parser()
    prog = parser.prog
    try:
        args, extras = parser.parse_known_args(argv)
    except _UsageError as exc:
        print(f"{prog}: {exc}")
        print(_usage(prog))
        return 1

    if args.help:
        print(_usage(prog))
        return 0
    if args.version:
        print(f"Version:  {prog}  Ver {VERSION}")
        return 0

    bad_usage = False
    for extra in extras:
        if extra.startswith("-") and len(extra) > 1:
            print(f"{prog}: Unknown option: {extra}")
            bad_usage = True
    if not args.path:
        print(f"{prog}: path to the power control scripts is required")
        bad_usage = True
    if not args.logdir:
        print(f"{prog}: path to the logdir of the power control scripts is required")
        bad_usage = True
    positional = [extra for extra in extras if not (extra.startswith("-") and len(extra) > 1)]
    if positional:
        print(f"{prog}: invalid argument -- {positional[0]}")
        bad_usage = True
    if bad_usage:
        print(_usage(prog))
        return 1

    if args.sim:
        with Simulator(args.logdir) as sim, Server(
            args.path, args.logdir, args.port, args.conn, sim
        ) as server:
            server.run()
    else:
        with Server(args.path, args.logdir, args.port, args.conn) as server:
            server.run()
    return 0