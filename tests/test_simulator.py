import io
import os

import pytest

from jfpowerctrl.simulator import Simulator

READING_NAMES = ("BME_temperature", "BME_humidity", "BME_pressure", "BME_altitude")


@pytest.fixture
def sink():
    return io.BytesIO()


@pytest.fixture
def sim(tmp_path, sink):
    with Simulator(str(tmp_path), output=sink) as simulator:
        yield simulator


def test_check_bme_reports_and_consumes_temperature(tmp_path, sim, sink):
    reading = tmp_path / "BME_temperature"
    reading.write_text("21.5\n")
    assert sim.read_float(str(tmp_path / "BME_humidity")) == 0.0
    sim.check_bme()
    assert sink.getvalue() == b"Temperature = 21.500000 *C\r\n"
    assert not reading.exists()
    assert sim.read_float(str(reading)) == 0.0


def test_check_bme_reports_in_fixed_order(tmp_path, sim, sink):
    (tmp_path / "BME_altitude").write_text("100")
    (tmp_path / "BME_pressure").write_text("1000")
    (tmp_path / "BME_humidity").write_text("40")
    (tmp_path / "BME_temperature").write_text("20")
    sim.check_bme()
    lines = sink.getvalue().split(b"\r\n")
    assert [line.split(b" = ")[0] for line in lines[:-1]] == [
        b"Temperature",
        b"Humidity",
        b"Pressure",
        b"Approx. Altitude",
    ]
    assert lines[1] == b"Humidity = 40.000000 %"
    assert not any(name.startswith("BME_") for name in os.listdir(tmp_path))
    assert [sim.read_float(str(tmp_path / name)) for name in READING_NAMES] == [
        0.0,
        0.0,
        0.0,
        0.0,
    ]


def test_check_bme_without_files_writes_nothing(tmp_path, sim, sink):
    sim.check_bme()
    sim.check_bme()
    assert sink.getvalue() == b""
    later = tmp_path / "BME_temperature"
    later.write_text("7")
    assert sim.read_float(str(later)) == 7.0
    assert sink.getvalue() == b""


def test_reading_is_reported_only_once(tmp_path, sim, sink):
    reading = tmp_path / "BME_pressure"
    reading.write_text("1013.25")
    sim.check_bme()
    first = sink.getvalue()
    assert sim.read_float(str(reading)) == 0.0
    sim.check_bme()
    assert sink.getvalue() == first
    assert first == b"Pressure = 1013.250000 hPa\r\n"


def test_read_float_garbage_reads_zero_and_removes(tmp_path, sim):
    target = tmp_path / "junk"
    target.write_text("not a number")
    assert sim.read_float(str(target)) == 0.0
    assert not target.exists()


def test_read_float_missing_file(tmp_path, sim):
    assert sim.read_float(str(tmp_path / "absent")) == 0.0


def test_read_float_takes_leading_number(tmp_path, sim):
    target = tmp_path / "value"
    target.write_text("  -3.25 trailing")
    assert sim.read_float(str(target)) == -3.25


def test_write_bme_formats_value(tmp_path, sim, sink):
    source = tmp_path / "BME_altitude"
    source.write_text("12")
    value = sim.read_float(str(source))
    assert value == 12.0
    sim.write_bme("Approx. Altitude = %f m\r\n", value)
    assert sink.getvalue() == b"Approx. Altitude = 12.000000 m\r\n"


def test_pty_link_receives_reports(tmp_path):
    with Simulator(str(tmp_path)) as simulator:
        link = tmp_path / "BME"
        assert link.is_symlink()
        fd = os.open(str(link), os.O_RDWR | os.O_NOCTTY)
        try:
            (tmp_path / "BME_temperature").write_text("21.5")
            simulator.check_bme()
            data = os.read(fd, 1024)
        finally:
            os.close(fd)
    assert data.startswith(b"Temperature = 21.500000 *C")