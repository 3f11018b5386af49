"""Access to the power-control sysfs-style value files."""

from __future__ import annotations

import os
import re
import time

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")
_INT_MIN = -(2**31)
_INT_MAX = 2**31 - 1


def _parse_int(text):
    """Read a leading integer the way a formatted stream read does.

    Empty input leaves the default of -1; input that does not start with a
    number reads as 0; out-of-range numbers saturate.
    """
    if not text.strip():
        return -1
    match = _LEADING_INT.match(text)
    if not match:
        return 0
    return max(_INT_MIN, min(_INT_MAX, int(match.group(1))))


class Control:
    """Reads and writes value files under ``<path>/<type>/<dev>[id]/<cmd>``."""

    sep = "/"

    def __init__(self, path, type, dev):
        self.path = os.fspath(path)
        self.type = type
        self.dev = dev

    def filename(self, cmd, id=-1):
        device = f"{self.dev}{id}" if id >= 0 else self.dev
        return self.sep.join((self.path, self.type, device, cmd))

    def _read_text(self, cmd, id):
        try:
            with open(self.filename(cmd, id), encoding="utf-8") as handle:
                return handle.read()
        except OSError:
            return None

    def read_raw_value(self, cmd, id=-1):
        """Return the first whitespace-separated word of the file, or ''."""
        text = self._read_text(cmd, id)
        if text is None:
            return ""
        words = text.split()
        return words[0] if words else ""

    def read_value(self, cmd, id=-1):
        """Return the file's integer value, or -1 when it cannot be read."""
        text = self._read_text(cmd, id)
        if text is None:
            return -1
        return _parse_int(text)

    def wait_value(self, value, cmd, timeout, id=-1):
        """Poll until the file holds ``value``; ``timeout`` is in microseconds."""
        start = time.monotonic()
        while True:
            if self.read_value(cmd, id) == value:
                return True
            if (time.monotonic() - start) * 1_000_000 >= timeout:
                return False

    def write_value(self, value, cmd, id=-1):
        """Write ``value`` to the file; return whether that worked."""
        try:
            with open(self.filename(cmd, id), "w", encoding="utf-8") as handle:
                handle.write(str(int(value)))
        except OSError:
            return False
        return True


class PowerControl(Control):
    """One power supply, under ``hwmon/ps<id>``."""

    def __init__(self, path, id=0):
        super().__init__(path, "hwmon", "ps")
        self.id = id

    def set_power(self, value):
        return self.write_value(value, "set_power", self.id)

    def get_power(self):
        return self.read_value("set_power", self.id)

    def get_temp(self):
        return self.read_value("temp_input", self.id)

    def get_voltage(self):
        return self.read_value("volt_input", self.id)

    def get_current(self):
        return self.read_value("curr_input", self.id)

    def get_name(self):
        return self.read_raw_value("name", self.id)


class LedControl(Control):
    """The green, yellow and red status LEDs; bit 0, 1 and 2 of the mask."""

    def __init__(self, path):
        super().__init__(path, "gpios", "")

    def set_led(self, mask):
        return (
            self.set_led_green(mask & 1)
            and self.set_led_yellow((mask & 2) >> 1)
            and self.set_led_red((mask & 4) >> 2)
        )

    def get_led(self):
        return self.get_led_green() | (self.get_led_yellow() << 1) | (self.get_led_red() << 2)

    def get_led_green(self):
        return self.read_value("set_led_green")

    def get_led_red(self):
        return self.read_value("set_led_red")

    def get_led_yellow(self):
        return self.read_value("set_led_yellow")

    def set_led_green(self, value):
        return self.write_value(value, "set_led_green")

    def set_led_red(self, value):
        return self.write_value(value, "set_led_red")

    def set_led_yellow(self, value):
        return self.write_value(value, "set_led_yellow")


class MiscControl(Control):
    """Read-only board settings and switches."""

    def __init__(self, path):
        super().__init__(path, "gpios", "")

    def get_autostart_enable(self):
        return self.read_value("get_autostart_enable")

    def get_fanctrl_enable(self):
        return self.read_value("get_fanctrl_enable")

    def get_flowmeter_enable(self):
        return self.read_value("get_flowmeter_enable")

    def get_inhibit(self):
        return self.read_value("get_inhibit")

    def get_inhibit_enable(self):
        return self.read_value("get_inhibit_enable")

    def get_powerswitch(self):
        return self.read_value("get_powerswitch")


class GpioControl(Control):
    """One GPIO block: warnings, supply switch and the module enables (MCBs).

    Modules are numbered 1 to ``NUM_MCB``. The set of active modules is kept
    in memory and decides which enables :meth:`set_mcb_on` switches on.
    """

    NUM_MCB = 12
    ALL_ON = (1 << NUM_MCB) - 1

    def __init__(self, path, id=0):
        super().__init__(path, "gpios", "")
        self.id = id
        self._active = self.ALL_ON

    def get_ac_warning(self):
        return self.read_value("get_ac_warning", self.id)

    def get_dc_warning(self):
        return self.read_value("get_dc_warning", self.id)

    def get_temp_warning(self):
        return self.read_value("get_temp_warning", self.id)

    def wait_ac_warning(self, value, timeout):
        return self.wait_value(value, "get_ac_warning", timeout, self.id)

    def wait_dc_warning(self, value, timeout):
        return self.wait_value(value, "get_dc_warning", timeout, self.id)

    def wait_temp_warning(self, value, timeout):
        return self.wait_value(value, "get_temp_warning", timeout, self.id)

    def get_power_supply_onoff(self):
        return self.read_value("set_power_supply_onoff", self.id)

    def set_power_supply_onoff(self, value):
        return self.write_value(value, "set_power_supply_onoff", self.id)

    def num_mcb_active(self):
        return sum((self._active >> bit) & 1 for bit in range(self.NUM_MCB))

    def get_mcb(self, id):
        return self.read_value(_mcb_cmd(id), self.id)

    def set_mcb(self, id, value):
        return self.write_value(value, _mcb_cmd(id), self.id)

    def get_mcb_mask(self):
        mask = 0
        for bit in range(self.NUM_MCB):
            mask |= self.get_mcb(bit + 1) << bit
        return mask

    def get_mcb_active(self, id):
        return (self._active >> (id - 1)) & 1

    def get_mcb_active_mask(self):
        return self._active

    def set_mcb_mask(self, mask, pause=0):
        """Write every enable from ``mask``, pausing ``pause`` microseconds after each."""
        for bit in range(self.NUM_MCB):
            if not self.set_mcb(bit + 1, (mask >> bit) & 1):
                return False
            time.sleep(pause / 1_000_000)
        return True

    def set_mcb_active(self, id, value):
        shift = id - 1
        self._active = (self._active & ~(1 << shift)) | (value << shift)

    def set_mcb_active_mask(self, mask):
        self._active = mask & self.ALL_ON

    def set_mcb_on(self, pause=0):
        return self.set_mcb_mask(self._active, pause)

    def set_mcb_off(self, pause=0):
        return self.set_mcb_mask(0, pause)

    @staticmethod
    def valid_mcb(id):
        return 0 < id <= GpioControl.NUM_MCB


def _mcb_cmd(id):
    return f"set_mcb{id}"