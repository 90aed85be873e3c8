from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from fakes import FakeDevice, FakeHandle
from obdlog import cli
from obdlog.core.errors import DeviceUnavailableError, FileUnavailableError
from obdlog.core.model import RequestDefinition, TroubleCode
from obdlog.core.service import ObdService
from obdlog.core.settings import Settings
from obdlog.core.telemetry import TelemetryLogger
from obdlog.core.vehicle import Vehicle

runner = CliRunner()


@pytest.fixture
def device(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> FakeDevice:
    fake = FakeDevice(
        supported={0x0C},
        handles={(0x7E0, 0x01, 0x0C): FakeHandle(raw=b"\x1a\xf8", value=1726.0)},
        dtcs={0x7E0: [TroubleCode("P0301", "Cylinder 1 Misfire Detected")], 0x7E1: []},
    )

    def build(*, port=None):
        return ObdService(device=fake, settings=Settings(log_dir=tmp_path), port=port)

    monkeypatch.setattr(cli, "ObdService", build)
    return fake


def _vehicle_file(tmp_path: Path) -> Path:
    vehicle = Vehicle("Subaru", "Impreza")
    vehicle.add_request(RequestDefinition(ecu=0x7E0, service=0x01, pid=0x0C, name="RPM", formula="(A*256+B)/4", unit="rpm"))
    vehicle.add_request(RequestDefinition(ecu=0x7E0, service=0x01, pid=0x0D, name="Speed", formula="A"))
    path = tmp_path / "impreza.json"
    vehicle.save(path)
    return path


def test_log_command_writes_header_and_renders(monkeypatch, tmp_path, device):
    screens = []

    def interrupt(lines):
        screens.append(list(lines))
        raise KeyboardInterrupt

    monkeypatch.setattr(cli, "_show_screen", interrupt)
    log_file = tmp_path / "out.csv"
    result = runner.invoke(cli.app, ["log", str(_vehicle_file(tmp_path)), "250", "--log-file", str(log_file)])

    assert result.exit_code == 0
    assert "Stopped" in result.stdout
    assert screens == [["RPM: 1726rpm"]]
    assert log_file.read_text(encoding="utf-8").splitlines()[0] == '"timestamp","RPM"'
    assert device.closed


def test_log_command_reports_device_failure(tmp_path, device):
    device.discovery_error = DeviceUnavailableError("adapter not responding")
    result = runner.invoke(cli.app, ["log", str(_vehicle_file(tmp_path))])
    assert result.exit_code == 1
    assert "Error: adapter not responding" in result.stderr
    assert "Traceback" not in result.stderr


def test_log_command_stops_when_log_cannot_be_written(monkeypatch, tmp_path, device):
    def disk_full(self, values):
        raise FileUnavailableError(f"Cannot write telemetry log {self.path}: No space left on device")

    monkeypatch.setattr(cli, "_show_screen", lambda lines: None)
    monkeypatch.setattr(TelemetryLogger, "write_row", disk_full)
    result = runner.invoke(cli.app, ["log", str(_vehicle_file(tmp_path)), "--log-file", str(tmp_path / "out.csv")])

    assert result.exit_code == 1
    assert "Error: Cannot write telemetry log" in result.stderr
    assert "Traceback" not in result.stderr
    assert device.closed


def test_log_command_refuses_existing_log_file(tmp_path, device):
    log_file = tmp_path / "out.csv"
    log_file.write_text("previous drive\n", encoding="utf-8")
    result = runner.invoke(cli.app, ["log", str(_vehicle_file(tmp_path)), "--log-file", str(log_file)])

    assert result.exit_code == 1
    assert "already exists" in result.stderr
    assert log_file.read_text(encoding="utf-8") == "previous drive\n"


def test_log_command_missing_vehicle_is_clean(tmp_path, device):
    result = runner.invoke(cli.app, ["log", str(tmp_path / "nope.json")])
    assert result.exit_code == 1
    assert "Error: Vehicle definition" in result.stderr


def test_dtc_command(device):
    result = runner.invoke(cli.app, ["dtc"])
    assert result.exit_code == 0
    assert "P0301 Cylinder 1 Misfire Detected" in result.stdout
    assert "ECU 7e1:\n\tNo DTCs" in result.stdout


def test_dtc_clear_command(device):
    result = runner.invoke(cli.app, ["dtc-clear", "--yes", "--module", "7E0"])
    assert result.exit_code == 0
    assert device.cleared == [0x7E0]
    assert "ECU 7e0: cleared" in result.stdout


def test_pids_command(device):
    result = runner.invoke(cli.app, ["pids", "--module", "7E0"])
    assert result.exit_code == 0
    assert "ECU 7e0:\n\t0c" in result.stdout


def test_pids_command_rejects_bad_module(device):
    result = runner.invoke(cli.app, ["pids", "--module", "xyz"])
    assert result.exit_code == 1
    assert "must be hexadecimal" in result.stderr


def test_new_add_show_round_trip(tmp_path, device):
    path = tmp_path / "civic.yaml"

    result = runner.invoke(cli.app, ["new", str(path), "--make", "Honda", "--model", "Civic"])
    assert result.exit_code == 0

    result = runner.invoke(
        cli.app,
        ["add", str(path), "7E0:01:0C", "--name", "RPM", "--formula", "(A*256+B)/4", "--unit", "rpm"],
    )
    assert result.exit_code == 0
    assert "Added RPM" in result.stdout

    result = runner.invoke(cli.app, ["show", str(path)])
    assert result.exit_code == 0
    assert "Honda Civic" in result.stdout
    assert "RPM: 7e0:01:0c = (A*256+B)/4 [rpm]" in result.stdout

    vehicle = Vehicle.load(path)
    assert [r.name for r in vehicle.requests()] == ["RPM"]


def test_new_refuses_to_overwrite(tmp_path, device):
    path = _vehicle_file(tmp_path)
    result = runner.invoke(cli.app, ["new", str(path), "--make", "A", "--model", "B"])
    assert result.exit_code == 1
    assert "already exists" in result.stderr


def test_add_rejects_bad_address(tmp_path, device):
    path = _vehicle_file(tmp_path)
    result = runner.invoke(cli.app, ["add", str(path), "7E0-01-0C"])
    assert result.exit_code == 1
    assert "ECU:SERVICE:PID" in result.stderr
