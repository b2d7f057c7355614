# tests/test_cli.py
import pytest

from geosync import cli
from geosync.scheduler import BackfillScheduler
from geosync.service import LocationService
from geosync.sheets import LocationStore

from conftest import FakeClock, FakeWorksheet, StubGeocoder, row


def test_parse_args_commands():
    args = cli.parse_args(["backfill", "--drain"])
    assert args.cmd == "backfill" and args.drain

    args = cli.parse_args(["--verbose", "update", "7", "--status", "Customer", "--follow-up", ""])
    assert args.verbose
    assert args.id == 7
    assert args.status == "Customer"
    assert args.follow_up == ""
    assert args.notes is None

    assert cli.parse_args(["list"]).config == "config/sheet.yaml"


def test_parse_args_requires_command():
    with pytest.raises(SystemExit):
        cli.parse_args([])


def test_main_reports_config_errors(monkeypatch, tmp_path, capsys):
    for name in ("GOOGLE_MAPS_API_KEY", "GOOGLE_SHEETS_CRED", "SHEET_ID"):
        monkeypatch.delenv(name, raising=False)

    code = cli.main(["--config", str(tmp_path / "none.yaml"), "list"])

    assert code == 1
    assert "Missing required settings" in capsys.readouterr().err


def test_list_prints_rows_without_deferring_work(monkeypatch, tmp_path, capsys):
    clock = FakeClock()
    ws = FakeWorksheet([
        row("Acme", "1 Main St"),
        row("Bolt", "2 Oak Ave"),
        row("Cedar", "3 Pine Rd"),
        row("Delta", "4 Elm St"),
    ])
    store = LocationStore(ws, sleep=clock.sleep)
    sched = BackfillScheduler(store, StubGeocoder(), clock=clock, sleep=clock.sleep)
    service = LocationService(store, sched)
    monkeypatch.setattr(cli.LocationService, "from_settings", classmethod(lambda cls, settings: service))

    code = cli.main(["--config", str(tmp_path / "none.yaml"), "list"])

    assert code == 0
    assert not sched.reschedule
    assert sched.pending == 0
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 4
    assert lines[0].startswith("2\tAcme\tProspect\t40.712800\t-74.006000")
    # only the first batch is written; the rest waits for the next run
    assert lines[3].split("\t")[3] == ""
