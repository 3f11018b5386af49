# jfpowerctrl

A small TCP server that controls a detector's power supplies, module
enables (MCBs) and status LEDs. The hardware is reached through
sysfs-style files: every value is a file holding a number, read to get
it and written to set it.

It runs on POSIX systems (the sensor simulator uses a pseudo terminal).

## Installing

    pip install .

## Running the server

    jfpowerctrl --path /sys/devices/platform/ctrl --logdir /var/log/power

Options:

    -p, --path <path>       directory holding the control files (required)
    -l, --logdir <logdir>   directory for the state flag, block file and log (required)
    -P, --port <port>       TCP port to listen on (default: 32415)
    -c, --conn <n>          maximum number of simultaneous connections (default: 3)
    -s, --sim               simulate the BME environment sensor
    -v, --version           print the version and exit
    -h, --help              print usage and exit

Port and connection counts may be written in decimal, `0x` hex or
leading-`0` octal. The command-line server drives one power supply and
one GPIO block.

Under `--path` the server uses files laid out as
`<path>/<type>/<dev><id>/<name>`, for example `hwmon/ps0/set_power`,
`hwmon/ps0/temp_input`, `gpios/0/set_mcb1` and, for the LEDs and board
switches, `gpios//set_led_green` and `gpios//get_inhibit`. In `--logdir`
it keeps `state` (`1` when the detector is on), `block` (present when
powering on is forbidden) and `power_control.log`.

Clients beyond the connection limit are accepted and closed at once.

## Protocol

Clients send one command per line (`\r` and `\n` both end a line). Queries
get a newline-terminated reply; set commands and failed commands get no
reply, and the reason for a failure is printed on the server's standard
error. A line longer than 1023 bytes is dropped. Numeric values may be
decimal, `0x` hex or leading-`0` octal.

    *IDN?            -> JF4MD-CTRL
    STATE?           -> ON | OFF | ERROR
    ON / OFF / TOGGLE
    STATE ON         STATE OFF       (reply with the new state)
    BLOCK?           -> YES | NO
    BLOCK SET        BLOCK CLEAR
    INTERVAL 1000    pause in microseconds after each module enable
    TIMEOUT 500000   time in microseconds to wait for the supplies to ramp
    INTERVAL?        TIMEOUT?
    MODULES?         number of active modules
    AUTOSTART?  FANCTRL?  FLOWMETER?  INHIBIT?  INHIBITED?  POWERSWITCH?
    PS0:NAME?   PS0:TEMP?  PS0:VOLT?  PS0:CURR?  PS0:POWER?
    PS0:POWER 1
    GPIO0:POWER?     GPIO0:POWER 1
    GPIO0:ENABLE?    GPIO0:ENABLE 0xfff    GPIO0:ENABLE3?   GPIO0:ENABLE3 1
    GPIO0:ACTIVE?    GPIO0:ACTIVE 0x0ff    GPIO0:ACTIVE3?   GPIO0:ACTIVE3 0
    GPIO0:WARN:AC?   GPIO0:WARN:DC?   GPIO0:WARN:TEMP?
    LED:MASK?        LED:GREEN?
    LED:MASK 3       LED:GREEN 1      LED:YELLOW 0     LED:RED 0

`PS0:VOLT?` reports 0 while the supply is switched off. The active-module
mask (`ACTIVE`) is held in memory, starts with all twelve modules active,
and decides which enables `ON` switches on.

`STATE?` answers `ERROR` when a supply or an enable disagrees with the
recorded state. `ON` does nothing while the block file exists.

## Using it as a library

    from jfpowerctrl.commands import CommandRunner

    runner = CommandRunner("/sys/devices/platform/ctrl", "/var/log/power", 1, 1)
    print(runner.run("STATE?"), end="")

The building blocks live in `jfpowerctrl.controls` (`Control`,
`PowerControl`, `GpioControl`, `LedControl`, `MiscControl`),
`jfpowerctrl.files` (`Flag`, `Block`, `Logger`, `LogLevel`),
`jfpowerctrl.server` (`Server`, `Connection`) and
`jfpowerctrl.simulator` (`Simulator`).

`Server` takes `num_ps` and `num_gpios` for more supplies or GPIO blocks,
binds when it is created (raising `OSError` if it cannot), serves in
`run()` and stops on `close()`, which may be called from another thread.

`Simulator` reports a value whenever a file named `BME_temperature`,
`BME_humidity`, `BME_pressure` or `BME_altitude` appears in its
directory, then removes the file. Lines go to the `output` stream given
to it, or otherwise to a pseudo terminal linked from `<logdir>/BME`.

## Tests

    pip install .[test]
    pytest