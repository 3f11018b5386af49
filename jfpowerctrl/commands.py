"""Text command protocol that drives the detector's power controls."""

from __future__ import annotations

import string
import sys

from jfpowerctrl.controls import GpioControl, LedControl, MiscControl, PowerControl
from jfpowerctrl.files import Block, Flag, Logger

PSCMD = "PS"
GPIOCMD = "GPIO"
LEDCMD = "LED"
WARNCMD = "WARN:"
MCB_PREFIXES = ("ENABLE", "ACTIVE")
IDENTITY = "JF4MD-CTRL\n"

_U32 = 0xFFFFFFFF
_ULONG_MAX = 2**64 - 1
_LONG_MIN = -(2**63)
_LONG_MAX = 2**63 - 1
_SPACES = " \t\n\v\f\r"


class CommandError(Exception):
    """A command that could not be carried out; the client gets an empty reply."""


def _strto(text, signed):
    """Parse a leading integer in base 0 (decimal, 0x hex or 0 octal).

    Return the value and the unparsed remainder. When no digits are found the
    value is 0 and the remainder is the whole input.
    """
    pos, end = 0, len(text)
    while pos < end and text[pos] in _SPACES:
        pos += 1
    negative = False
    if pos < end and text[pos] in "+-":
        negative = text[pos] == "-"
        pos += 1
    if text[pos:pos + 2] in ("0x", "0X") and pos + 2 < end and text[pos + 2] in string.hexdigits:
        base, digits = 16, string.hexdigits
        pos += 2
    elif text[pos:pos + 1] == "0":
        base, digits = 8, string.octdigits
    else:
        base, digits = 10, string.digits
    start = pos
    while pos < end and text[pos] in digits:
        pos += 1
    if pos == start:
        return 0, text
    value = int(text[start:pos], base)
    if signed:
        value = -value if negative else value
        value = max(_LONG_MIN, min(_LONG_MAX, value))
    elif value > _ULONG_MAX:
        value = _ULONG_MAX
    elif negative:
        value = (-value) % (_ULONG_MAX + 1)
    return value, text[pos:]


def _parse_unsigned(text):
    """Return the unsigned value of the whole of ``text``, or None if anything follows it."""
    value, rest = _strto(text, signed=False)
    return None if rest else value


def _int32(value):
    return ((int(value) + 2**31) % 2**32) - 2**31


def _reply(value):
    return f"{_int32(value)}\n"


def _is_query(cmd):
    return not cmd or cmd.endswith("?")


def _missing_value(kind, cmd):
    if _is_query(cmd):
        return CommandError(f"Error: invalid {kind}get command received: {cmd}")
    return CommandError(f"Error: received a {kind}set command without a value")


def _unexpected_value(kind, cmd):
    if not _is_query(cmd):
        return CommandError(f"Error: invalid {kind}set command received: {cmd}")
    return CommandError(f"Error: received a {kind}get command with a value")


def _split(cmd):
    """Split ``<prefix>:<command> <value>`` into its three parts."""
    colon = cmd.find(":")
    start = colon + 1 if colon >= 0 else 0
    space = cmd.find(" ", start)
    prefix = cmd[:colon] if colon >= 0 else cmd
    suffix = cmd[start:space] if space >= 0 else cmd[start:]
    value = cmd[space + 1:] if space >= 0 else ""
    return prefix, suffix, value


def _mcb_prefix(cmd):
    return next((prefix for prefix in MCB_PREFIXES if cmd.startswith(prefix)), None)


def _mcb_index(cmd, prefix, terminator):
    """Return the module number following ``prefix``, or -1 if it is missing or invalid."""
    if len(cmd) <= len(prefix) + len(terminator):
        return -1
    index, rest = _strto(cmd[len(prefix):], signed=True)
    if rest[:1] != terminator or not GpioControl.valid_mcb(index):
        return -1
    return index


class CommandRunner:
    """Executes text commands against the power supplies, GPIOs and LEDs.

    ``pause`` is the delay in microseconds between module enables and
    ``timeout`` the time in microseconds to wait for the supplies to settle.
    """

    def __init__(self, path, logpath, num_ps, num_gpios):
        self.pause = 0
        self.timeout = 0
        self._state = Flag(logpath, "state")
        self._block = Block(logpath)
        self._logger = Logger(logpath, "power_control.log")
        self._led = LedControl(path)
        self._misc = MiscControl(path)
        self._ps = [PowerControl(path, i) for i in range(num_ps)]
        self._gpio = [GpioControl(path, j) for j in range(num_gpios)]

    def run(self, cmd):
        """Execute one command line and return the reply text ('' when there is none)."""
        try:
            return self._dispatch(cmd)
        except CommandError as exc:
            print(exc, file=sys.stderr)
            return ""

    def _dispatch(self, cmd):
        prefix, suffix, value = _split(cmd)
        if cmd.startswith(PSCMD):
            return self._run_ps(prefix, suffix, value)
        if cmd.startswith(GPIOCMD):
            return self._run_gpios(prefix, suffix, value)
        if cmd.startswith(LEDCMD):
            return self._run_led(suffix, value)
        return self._run_base(suffix, value)

    def on(self, verbose=False):
        """Power the detector on, or refresh its enables if it is on already."""
        if self._block.is_set():
            self._logger.error("Detector in an unsafe condition, don't start")
        else:
            if self._state.is_set() and self._check_ps():
                self._logger.error("Detector in inconsistent on state!")
                self.off()

            if self._state.is_set():
                if self._check_enables():
                    for j, gpio in enumerate(self._gpio):
                        if not gpio.set_mcb_on(self.pause):
                            _warn(f"Error: set_mcb_on({self.pause}) failed for GPIO {j}")
                    self._logger.info("Detector enables updated")
                else:
                    self._logger.error("Detector already on!")
            else:
                self._led.set_led(3)
                for i, ps in enumerate(self._ps):
                    if not ps.set_power(1):
                        _warn(f"Error: set_power(1) failed for power supply {i}")
                for j, gpio in enumerate(self._gpio):
                    if not gpio.set_mcb_on(self.pause):
                        _warn(f"Error: set_mcb_on({self.pause}) failed for GPIO {j}")
                    if not gpio.wait_dc_warning(0, self.timeout):
                        _warn(f"Error: wait_dc_warning(0, {self.timeout}) failed for GPIO {j}")
                self._led.set_led_yellow(0)
                self._state.set()

        return self.state() if verbose else ""

    def off(self, verbose=False):
        """Power the detector off."""
        if self.is_off():
            self._logger.error("Detector already off!")
        else:
            self._led.set_led(3)
            for j, gpio in enumerate(self._gpio):
                if not gpio.set_mcb_off(self.pause):
                    _warn(f"Error: set_mcb_off({self.pause}) failed for GPIO {j}")
            for i, ps in enumerate(self._ps):
                if not ps.set_power(0):
                    _warn(f"Error: set_power(0) failed for power supply {i}")
            for j, gpio in enumerate(self._gpio):
                if not gpio.wait_dc_warning(1, self.timeout):
                    _warn(f"Error: wait_dc_warning(1, {self.timeout}) failed for GPIO {j}")
            self._led.set_led_green(0)
            self._state.clear()

        return self.state() if verbose else ""

    def toggle(self):
        return self.off() if self._state.is_set() else self.on()

    def state(self):
        """Return 'ON', 'OFF' or 'ERROR' (newline-terminated)."""
        if self._check_ps() or self._check_enables():
            return "ERROR\n"
        return "ON\n" if self._state.is_set() else "OFF\n"

    def block(self):
        return "YES\n" if self._block.is_set() else "NO\n"

    def is_off(self):
        return not (self._state.is_set() or self._check_ps() or self._check_enables())

    def is_on(self):
        return not (not self._state.is_set() or self._check_ps() or self._check_enables())

    def num_active_modules(self):
        return sum(gpio.num_mcb_active() for gpio in self._gpio)

    def _check_enables(self):
        """Return True when some module enable disagrees with the recorded state."""
        on = self._state.is_set()
        for gpio in self._gpio:
            if on:
                if gpio.get_mcb_active_mask() != gpio.get_mcb_mask():
                    return True
            elif gpio.get_mcb_mask():
                return True
        return False

    def _check_ps(self):
        """Return True when some supply disagrees with the recorded state."""
        expected = 1 if self._state.is_set() else 0
        return any(ps.get_power() != expected for ps in self._ps)

    def _run_led(self, cmd, value):
        led = self._led
        if not value:
            queries = {
                "MASK?": led.get_led,
                "GREEN?": led.get_led_green,
                "YELLOW?": led.get_led_green,
                "RED?": led.get_led_green,
            }
            getter = queries.get(cmd)
            if getter is None:
                raise _missing_value("led ", cmd)
            return _reply(getter())

        ivalue = _parse_unsigned(value)
        if ivalue is None:
            raise CommandError(f"Error: invalid led set command value: {value}")
        setters = {
            "MASK": ("set_led", led.set_led),
            "GREEN": ("set_green_led", led.set_led_green),
            "YELLOW": ("set_yellow_led", led.set_led_yellow),
            "RED": ("set_red_led", led.set_led_red),
        }
        if cmd not in setters:
            raise _unexpected_value("led ", cmd)
        name, setter = setters[cmd]
        if not setter(ivalue & _U32):
            raise CommandError(f"Error: {name}({value}) failed")
        return ""

    def _run_ps(self, prefix, cmd, value):
        index = _parse_unsigned(prefix[len(PSCMD):])
        if index is None:
            raise CommandError(f"Error: invalid power supply prefix: {prefix}")
        index &= _U32
        if index >= len(self._ps):
            raise CommandError(f"Power supply index out-of-range: {index}")
        ps = self._ps[index]

        if not value:
            if cmd == "NAME?":
                return ps.get_name() + "\n"
            if cmd == "VOLT?":
                return _reply(ps.get_voltage() if ps.get_power() else 0)
            queries = {
                "TEMP?": ps.get_temp,
                "CURR?": ps.get_current,
                "POWER?": ps.get_power,
            }
            getter = queries.get(cmd)
            if getter is None:
                raise _missing_value("power supply ", cmd)
            return _reply(getter())

        ivalue = _parse_unsigned(value)
        if ivalue is None:
            raise CommandError(f"Error: invalid power supply set command value: {value}")
        if cmd != "POWER":
            raise _unexpected_value("power supply ", cmd)
        if not ps.set_power(ivalue & _U32):
            raise CommandError(f"Error: set_power({value}) failed for power supply {index}")
        return ""

    def _run_gpios(self, prefix, cmd, value):
        index = _parse_unsigned(prefix[len(GPIOCMD):])
        if index is None:
            raise CommandError(f"Error: invalid GPIO prefix: {prefix}")
        index &= _U32
        if index >= len(self._gpio):
            raise CommandError(f"GPIO index out-of-range: {index}")
        gpio = self._gpio[index]
        if not value:
            return self._gpio_query(gpio, cmd)
        return self._gpio_set(gpio, index, cmd, value)

    def _gpio_query(self, gpio, cmd):
        queries = {
            "POWER?": gpio.get_power_supply_onoff,
            "ENABLE?": gpio.get_mcb_mask,
            "ACTIVE?": gpio.get_mcb_active_mask,
        }
        if cmd in queries:
            return _reply(queries[cmd]())

        if cmd.startswith(WARNCMD):
            warncmd = cmd[len(WARNCMD):]
            warnings = {
                "AC?": gpio.get_ac_warning,
                "DC?": gpio.get_dc_warning,
                "TEMP?": gpio.get_temp_warning,
            }
            getter = warnings.get(warncmd)
            if getter is None:
                raise _missing_value("gpio ", warncmd)
            return _reply(getter())

        mcb_prefix = _mcb_prefix(cmd)
        if mcb_prefix is not None:
            mcbidx = _mcb_index(cmd, mcb_prefix, "?")
            if mcbidx < 0:
                if _is_query(cmd):
                    raise CommandError(f"Error: invalid mcb get prefix: {cmd}")
                raise CommandError("Error: received a GPIO set command without a value")
            if mcb_prefix == "ENABLE":
                return _reply(gpio.get_mcb(mcbidx))
            return _reply(gpio.get_mcb_active(mcbidx))

        raise _missing_value("gpio ", cmd)

    def _gpio_set(self, gpio, index, cmd, value):
        ivalue = _parse_unsigned(value)
        if ivalue is None:
            raise CommandError(f"Error: invalid GPIO set command value: {value}")
        ivalue &= _U32

        if cmd == "POWER":
            if not gpio.set_power_supply_onoff(ivalue):
                raise CommandError(
                    f"Error: set_power_supply_onoff({value}) failed for GPIO {index}"
                )
            return ""
        if cmd == "ENABLE":
            if not gpio.set_mcb_mask(ivalue):
                raise CommandError(f"Error: set_mcb_mask({value}) failed for GPIO {index}")
            return ""
        if cmd == "ACTIVE":
            gpio.set_mcb_active_mask(ivalue)
            return ""

        mcb_prefix = _mcb_prefix(cmd)
        if mcb_prefix is None:
            raise CommandError(f"Error: invalid GPIO set command received: {cmd}")
        mcbidx = _mcb_index(cmd, mcb_prefix, "")
        if mcbidx < 0:
            if not _is_query(cmd):
                raise CommandError(f"Error: invalid mcb set prefix: {cmd}")
            raise CommandError("Error: received a GPIO get command with a value")
        if mcb_prefix == "ENABLE":
            if not gpio.set_mcb(mcbidx, ivalue):
                raise CommandError(
                    f"Error: set_mcb({mcbidx}, {value}) failed for GPIO {index}"
                )
        else:
            gpio.set_mcb_active(mcbidx, ivalue)
        return ""

    def _run_base(self, cmd, value):
        if not value:
            misc = self._misc
            replies = {
                "*IDN?": lambda: IDENTITY,
                "AUTOSTART?": lambda: _reply(misc.get_autostart_enable()),
                "FANCTRL?": lambda: _reply(misc.get_fanctrl_enable()),
                "FLOWMETER?": lambda: _reply(misc.get_flowmeter_enable()),
                "INHIBIT?": lambda: _reply(misc.get_inhibit_enable()),
                "INHIBITED?": lambda: _reply(misc.get_inhibit()),
                "POWERSWITCH?": lambda: _reply(misc.get_powerswitch()),
                "INTERVAL?": lambda: _reply(self.pause),
                "TIMEOUT?": lambda: _reply(self.timeout),
                "MODULES?": lambda: _reply(self.num_active_modules()),
                "STATE?": self.state,
                "BLOCK?": self.block,
                "ON": self.on,
                "OFF": self.off,
                "TOGGLE": self.toggle,
            }
            handler = replies.get(cmd)
            if handler is None:
                raise _missing_value("", cmd)
            return handler()

        if cmd == "STATE":
            if value == "ON":
                return self.on(True)
            if value == "OFF":
                return self.off(True)
            raise CommandError(f"Error: invalid value for STATE command: {value}")
        if cmd == "BLOCK":
            if value == "SET":
                if not self._block.set():
                    self._logger.error("Failed to create block file!")
            elif value == "CLEAR":
                if not self._block.clear():
                    self._logger.error("Failed to remove block file!")
            else:
                raise CommandError(f"Error: invalid value for BLOCK command: {value}")
            return ""

        ivalue = _parse_unsigned(value)
        if ivalue is None:
            raise CommandError(f"Error: invalid set command value: {value}")
        if cmd == "INTERVAL":
            self.pause = ivalue
        elif cmd == "TIMEOUT":
            self.timeout = ivalue
        else:
            raise _unexpected_value("", cmd)
        return ""


def _warn(message):
    print(message, file=sys.stderr)