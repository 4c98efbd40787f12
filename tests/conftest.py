from __future__ import annotations

import copy
import re
from datetime import datetime, timezone

import pytest

import config
from print_history import PrintHistoryLog

# 12:00 PM in New York (EDT)
NOW = datetime(2025, 6, 5, 16, 0, tzinfo=timezone.utc)

LIVE_HEADER = [
    "Category", "Cancelled", "Order_Processed", "Order_type", "Order_Update_Status",
    "Time_ordered", "Email", "OrderNum", "Caller_name", "Caller_phone", "Caller_address",
    "Caller_City", "Caller_State", "Caller_Zip", "Sheet_Last_Modified", "Printed_Count",
    "Printed_Timestamps",
    "Order_item_1", "Qty_1", "modifier_1",
    "Order_item_2", "Qty_2", "modifier_2",
    "Order_item_3", "Qty_3", "modifier_3",
]

_A1 = re.compile(r"^(?:'((?:[^']|'')+)'|([^!]+))!([A-Z]+)(\d+)(?::([A-Z]+)(\d+))?$")


def make_row(header=None, **cells):
    header = header or LIVE_HEADER
    row = [""] * len(header)
    for name, value in cells.items():
        row[header.index(name)] = str(value)
    return row


def _col_index(letters: str) -> int:
    n = 0
    for ch in letters:
        n = n * 26 + (ord(ch) - 64)
    return n - 1


def parse_a1(rng: str):
    m = _A1.match(rng)
    assert m, f"unexpected range {rng!r}"
    tab = (m.group(1) or "").replace("''", "'") or m.group(2)
    start = (_col_index(m.group(3)), int(m.group(4)))
    end = (_col_index(m.group(5)), int(m.group(6))) if m.group(5) else start
    return tab, start, end


class FakeSheet:
    """In-memory stand-in for SpreadsheetClient: tab name -> rows (header first)."""

    def __init__(self, tabs=None):
        self.tabs = {name: [list(r) for r in rows] for name, rows in (tabs or {}).items()}
        self.calls = []
        self.fail = {}

    def _maybe_fail(self, op):
        exc = self.fail.get(op)
        if exc is not None:
            raise exc

    def _set(self, tab, col, row, value):
        rows = self.tabs.setdefault(tab, [])
        while len(rows) < row:
            rows.append([])
        r = rows[row - 1]
        while len(r) <= col:
            r.append("")
        r[col] = str(value)

    def read(self, tab):
        self.calls.append(("read", tab))
        self._maybe_fail("read")
        return copy.deepcopy(self.tabs.get(tab, []))

    def read_header(self, tab):
        self.calls.append(("read_header", tab))
        self._maybe_fail("read_header")
        rows = self.tabs.get(tab, [])
        return list(rows[0]) if rows else []

    def batch_update(self, updates, input_mode="USER_ENTERED"):
        self.calls.append(("batch_update", list(updates), input_mode))
        self._maybe_fail("batch_update")
        for rng, value in updates:
            tab, (col, row), _ = parse_a1(rng)
            self._set(tab, col, row, value)

    def append(self, tab, rows, input_mode="USER_ENTERED"):
        self.calls.append(("append", tab, copy.deepcopy(rows)))
        self._maybe_fail("append")
        self.tabs.setdefault(tab, []).extend(copy.deepcopy(rows))

    def clear(self, range_a1):
        self.calls.append(("clear", range_a1))
        self._maybe_fail("clear")
        tab, (c0, r0), (c1, r1) = parse_a1(range_a1)
        rows = self.tabs.get(tab, [])
        for r in range(r0, min(r1, len(rows)) + 1):
            row = rows[r - 1]
            for c in range(c0, min(c1, len(row) - 1) + 1):
                row[c] = ""
        # the API omits trailing empty rows
        while rows and not any(rows[-1]):
            rows.pop()

    def write_cell(self, tab, col_index0, row, value, input_mode="RAW"):
        self.calls.append(("write_cell", tab, col_index0, row, value, input_mode))
        self._maybe_fail("write_cell")
        self._set(tab, col_index0, row, value)

    def ops(self, name):
        return [c for c in self.calls if c[0] == name]


class FakeClock:
    def __init__(self, t=1000.0):
        self.t = t

    def __call__(self):
        return self.t

    def advance(self, seconds):
        self.t += seconds


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def raise_for_status(self):
        if self.status_code >= 400:
            import requests
            raise requests.exceptions.HTTPError(f"{self.status_code} error")

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


@pytest.fixture()
def sheet():
    return FakeSheet({config.LIVE_TAB: [LIVE_HEADER], config.HISTORY_TAB: [LIVE_HEADER]})


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def app_settings(tmp_path):
    return config.AppSettings(str(tmp_path / "appSettings.json"))


@pytest.fixture()
def printer_settings(tmp_path):
    return config.PrinterSettings(str(tmp_path / "printerSettings.json"))


@pytest.fixture()
def history(tmp_path):
    return PrintHistoryLog(str(tmp_path / "printHistory.json"))


@pytest.fixture()
def services(sheet, app_settings, printer_settings, history, clock):
    import server

    return server.build_services(
        client=sheet,
        app_settings=app_settings,
        printer_settings=printer_settings,
        history=history,
        now=lambda: NOW,
        clock=clock,
    )


@pytest.fixture()
def http(services):
    import server

    server.set_services(services)
    server.app.config.update(TESTING=True)
    try:
        yield server.app.test_client()
    finally:
        server.set_services(None)
