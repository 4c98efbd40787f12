from __future__ import annotations

import json
from datetime import datetime, timezone

import config
from date_utils import hour_label, local_date, parse_timestamp, utc_now_iso
from print_history import PrintHistoryLog


def test_missing_settings_file_uses_defaults(tmp_path):
    settings = config.AppSettings(str(tmp_path / "nope.json"))
    assert settings.timezone == "America/New_York"
    assert settings.report_start_hour == 8
    assert settings.archive_cron == "10 8 * * *"


def test_broken_settings_file_uses_defaults(tmp_path):
    path = tmp_path / "printerSettings.json"
    path.write_text("{not json")
    settings = config.PrinterSettings(str(path))
    assert settings.mode == "NONE"
    assert settings.content_type == "text/html"


def test_save_merges_defaults_and_persists(tmp_path):
    path = tmp_path / "printerSettings.json"
    settings = config.PrinterSettings(str(path))
    settings.save({"mode": "lan", "printerUrl": " http://p "})

    assert settings.mode == "LAN"
    assert settings.printer_url == "http://p"
    assert settings.require_reachable is True
    on_disk = json.loads(path.read_text())
    assert on_disk["contentType"] == "text/html"
    assert config.PrinterSettings(str(path)).mode == "LAN"


def test_reachability_check_can_be_turned_off(tmp_path):
    settings = config.PrinterSettings(str(tmp_path / "p.json"))
    settings.save({"mode": "LAN", "printerUrl": "http://p", "requireReachable": False})
    assert settings.require_reachable is False
    settings.save({"mode": "MOCK", "printerUrl": "http://p"})
    assert settings.require_reachable is False


def test_print_history_file_round_trip(tmp_path):
    path = tmp_path / "printHistory.json"
    log = PrintHistoryLog(str(path))
    assert json.loads(path.read_text()) == []

    log.append(3, "1001", "2025-06-05T14:00:00.000Z", "LAN")
    log.append(3, "1001", "2025-06-05T15:00:00.000Z", "REPRINT")
    log.append(3, "0900", "2025-05-01T15:00:00.000Z", "LAN")

    reloaded = PrintHistoryLog(str(path))
    assert len(reloaded.entries) == 3
    assert reloaded.timestamps_for(3, "1001") == ["2025-06-05T14:00:00.000Z", "2025-06-05T15:00:00.000Z"]
    assert reloaded.timestamps_for(4, "1001") == []


def test_corrupt_print_history_starts_empty(tmp_path):
    path = tmp_path / "printHistory.json"
    path.write_text("garbage")
    assert PrintHistoryLog(str(path)).entries == []


def test_utc_iso_format():
    at = datetime(2025, 6, 5, 16, 2, 11, 123456, tzinfo=timezone.utc)
    assert utc_now_iso(at) == "2025-06-05T16:02:11.123Z"


def test_timestamps_are_read_in_the_business_timezone():
    naive = parse_timestamp("6/5/2025 9:30:00", "America/New_York")
    assert (naive.hour, naive.minute) == (9, 30)
    aware = parse_timestamp("2025-06-05T13:30:00Z", "America/New_York")
    assert aware.hour == 9
    assert parse_timestamp("", "America/New_York") is None
    assert parse_timestamp("tomorrowish", "America/New_York") is None


def test_local_date_boundary():
    assert local_date("2025-06-05T04:00:00Z", "America/New_York").isoformat() == "2025-06-05"
    assert local_date("2025-06-05T03:59:59Z", "America/New_York").isoformat() == "2025-06-04"
    assert local_date("", "America/New_York") is None


def test_hour_labels():
    assert [hour_label(h) for h in (0, 1, 11, 12, 13, 23)] == ["12 AM", "1 AM", "11 AM", "12 PM", "1 PM", "11 PM"]


def test_reachability_flag_saved_as_text(tmp_path):
    settings = config.PrinterSettings(str(tmp_path / "p.json"))
    settings.save({"mode": "LAN", "printerUrl": "http://p", "requireReachable": "false"})
    assert settings.require_reachable is False
    settings.save({"mode": "MOCK", "printerUrl": "http://p", "requireReachable": "TRUE"})
    assert settings.require_reachable is True
