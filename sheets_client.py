import re
import logging

import requests
from gspread.exceptions import GSpreadException

from errors import SheetAccessError

logger = logging.getLogger(__name__)


def column_letter(n: int) -> str:
    """1-based column number → A1 letters (1→A, 26→Z, 27→AA)."""
    if n < 1:
        raise ValueError(f"column number must be >= 1, got {n}")
    s = ""
    while n:
        n, rem = divmod(n - 1, 26)
        s = chr(65 + rem) + s
    return s


def quote_tab(tab: str) -> str:
    if re.fullmatch(r"[A-Za-z0-9_]+", tab or ""):
        return tab
    return "'" + str(tab).replace("'", "''") + "'"


def cell_range(tab: str, col_index0: int, row: int) -> str:
    """A1 reference for a 0-based column index and a 1-based row number."""
    return f"{quote_tab(tab)}!{column_letter(col_index0 + 1)}{row}"


class SpreadsheetClient:
    """
    Thin wrapper over a gspread Spreadsheet for the handful of calls the
    dashboard needs. Every value read comes back as a list of row lists of
    strings, header first. No retries: failures surface as SheetAccessError
    and the caller decides whether to try again.
    """

    def __init__(self, spreadsheet):
        self.spreadsheet = spreadsheet

    def _call(self, what, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except (GSpreadException, requests.exceptions.RequestException) as e:
            logger.warning("Sheets %s failed: %s", what, e)
            raise SheetAccessError(f"Sheets {what} failed: {e}") from e

    def read(self, tab):
        resp = self._call(
            f"read of {tab}",
            self.spreadsheet.values_get,
            quote_tab(tab),
            params={"majorDimension": "ROWS", "valueRenderOption": "FORMATTED_VALUE"},
        )
        rows = (resp or {}).get("values", []) or []
        return [[str(c) if c is not None else "" for c in r] for r in rows]

    def read_header(self, tab):
        resp = self._call(
            f"header read of {tab}",
            self.spreadsheet.values_get,
            f"{quote_tab(tab)}!1:1",
        )
        rows = (resp or {}).get("values", []) or []
        return [str(h) for h in rows[0]] if rows else []

    def batch_update(self, updates, input_mode="USER_ENTERED"):
        """
        Write every (a1_range, value) pair in one values.batchUpdate call.
        """
        body = {
            "valueInputOption": input_mode,
            "data": [{"range": rng, "values": [[val]]} for rng, val in updates],
        }
        return self._call("batch update", self.spreadsheet.values_batch_update, body)

    def append(self, tab, rows, input_mode="USER_ENTERED"):
        return self._call(
            f"append to {tab}",
            self.spreadsheet.values_append,
            quote_tab(tab),
            {"valueInputOption": input_mode, "insertDataOption": "INSERT_ROWS"},
            {"values": rows},
        )

    def clear(self, range_a1):
        return self._call(f"clear of {range_a1}", self.spreadsheet.values_clear, range_a1)

    def write_cell(self, tab, col_index0, row, value, input_mode="RAW"):
        rng = cell_range(tab, col_index0, row)
        return self._call(
            f"write of {rng}",
            self.spreadsheet.values_update,
            rng,
            params={"valueInputOption": input_mode},
            body={"values": [[value]]},
        )
