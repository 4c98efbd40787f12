import os
import json
import logging

from dotenv import load_dotenv

from order_parser import parse_flag

load_dotenv()
logger = logging.getLogger(__name__)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# ─── Spreadsheet ─────────────────────────────────────────────────────────────
SPREADSHEET_ID = os.environ.get("SPREADSHEET_ID", "").strip()
LIVE_TAB       = os.environ.get("LIVE_TAB", "orderItems")
HISTORY_TAB    = os.environ.get("HISTORY_TAB", "orderHistory")

CACHE_TTL_SECONDS = float(os.environ.get("CACHE_TTL_SECONDS", "30"))
LIVE_ITEM_MAX     = int(os.environ.get("LIVE_ITEM_MAX", "20"))
REPORT_ITEM_MAX   = int(os.environ.get("REPORT_ITEM_MAX", "40"))

# ─── Printer ─────────────────────────────────────────────────────────────────
PRINTER_PROBE_TIMEOUT = float(os.environ.get("PRINTER_PROBE_TIMEOUT", "5"))
PRINTER_SEND_TIMEOUT  = float(os.environ.get("PRINTER_SEND_TIMEOUT", "10"))

# ─── Local files ─────────────────────────────────────────────────────────────
PRINT_HISTORY_FILE    = os.environ.get("PRINT_HISTORY_FILE", os.path.join(BASE_DIR, "printHistory.json"))
APP_SETTINGS_FILE     = os.environ.get("APP_SETTINGS_FILE", os.path.join(BASE_DIR, "appSettings.json"))
PRINTER_SETTINGS_FILE = os.environ.get("PRINTER_SETTINGS_FILE", os.path.join(BASE_DIR, "printerSettings.json"))

# ─── Web ─────────────────────────────────────────────────────────────────────
FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:5173").strip().rstrip("/")
PORT         = int(os.environ.get("PORT", "3001"))

# ─── PDF watcher ─────────────────────────────────────────────────────────────
WATCH_POLL_SECONDS          = float(os.environ.get("WATCH_POLL_SECONDS", "15"))
INCOMING_FOLDER_ID          = os.environ.get("INCOMING_FOLDER_ID", "").strip()
CUSTOMER_UPDATING_FOLDER_ID = os.environ.get("CUSTOMER_UPDATING_FOLDER_ID", "").strip()


DEFAULT_APP_SETTINGS = {
    "timezone": "America/New_York",
    "reportStartHour": 8,
    "archiveCronSchedule": "10 8 * * *",
}

DEFAULT_PRINTER_SETTINGS = {
    "mode": "NONE",
    "printerUrl": "",
    "contentType": "text/html",
}


class JsonSettings:
    """
    A JSON settings file loaded once and kept in memory.

    Callers read ``.data``; ``reload()`` re-reads the file and ``save()``
    writes a new dict to disk and swaps it in. A missing or unreadable file
    falls back to the defaults.
    """

    def __init__(self, path, defaults):
        self.path = path
        self.defaults = dict(defaults)
        self.data = self._read()

    def _read(self):
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                loaded = json.load(f)
        except FileNotFoundError:
            logger.info("Settings file %s not found; using defaults", self.path)
            return dict(self.defaults)
        except (OSError, ValueError) as e:
            logger.warning("Could not read settings file %s (%s); using defaults", self.path, e)
            return dict(self.defaults)
        if not isinstance(loaded, dict):
            logger.warning("Settings file %s is not a JSON object; using defaults", self.path)
            return dict(self.defaults)
        merged = dict(self.defaults)
        merged.update(loaded)
        return merged

    def reload(self):
        self.data = self._read()
        return self.data

    def save(self, new_settings):
        merged = dict(self.defaults)
        merged.update(new_settings or {})
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(merged, f, indent=2)
        self.data = merged
        return merged

    def get(self, key, default=None):
        return self.data.get(key, default)


class AppSettings(JsonSettings):
    def __init__(self, path=APP_SETTINGS_FILE):
        super().__init__(path, DEFAULT_APP_SETTINGS)

    @property
    def timezone(self) -> str:
        return str(self.data.get("timezone") or DEFAULT_APP_SETTINGS["timezone"])

    @property
    def report_start_hour(self) -> int:
        try:
            return int(self.data.get("reportStartHour", 8))
        except (TypeError, ValueError):
            return 8

    @property
    def archive_cron(self) -> str:
        return str(self.data.get("archiveCronSchedule") or DEFAULT_APP_SETTINGS["archiveCronSchedule"])


class PrinterSettings(JsonSettings):
    def __init__(self, path=PRINTER_SETTINGS_FILE):
        super().__init__(path, DEFAULT_PRINTER_SETTINGS)

    @property
    def mode(self) -> str:
        return str(self.data.get("mode") or "NONE").upper()

    @property
    def printer_url(self) -> str:
        return str(self.data.get("printerUrl") or "").strip()

    @property
    def content_type(self) -> str:
        return str(self.data.get("contentType") or "text/html")

    @property
    def require_reachable(self) -> bool:
        # LAN printers are probed before every fire unless turned off explicitly
        val = self.data.get("requireReachable")
        if val is None:
            return self.mode == "LAN"
        # the settings POST may carry "false" as text
        return parse_flag(val)
