import os
import eventlet
os.environ.setdefault("EVENTLET_NO_GREENDNS", "yes")
eventlet.monkey_patch()

# ─── Imports & Logger Setup ─────────────────────────────────────────────────
import time
import logging
from datetime import datetime, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.cron import CronTrigger
from flask import Flask, jsonify, request, Response, url_for
from flask_cors import CORS
from flask_socketio import SocketIO
from werkzeug.exceptions import HTTPException

import config
from archive_job import archive_orders, ArchiveScheduler
from errors import OrderDashError
from order_mutations import OrderMutationService
from order_queries import OrderQueryService
from print_history import PrintHistoryLog
from printer_service import PrinterService, CloudPrintQueue, MODES
from reports import ReportAggregator, InvalidRange
from sheet_cache import SheetCache, live_tab_fetcher
from sheets_client import SpreadsheetClient

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

FRONTEND_URL = config.FRONTEND_URL

# ─── Flask + CORS + SocketIO ────────────────────────────────────────────────
app = Flask(__name__)
CORS(app, resources={r"/api/*": {"origins": FRONTEND_URL}}, supports_credentials=True)

ALLOWED_WS_ORIGINS = list({
    FRONTEND_URL,
    "http://localhost:5173",
    "http://localhost:3000",
})

socketio = SocketIO(
    app,
    cors_allowed_origins=ALLOWED_WS_ORIGINS,
    async_mode="eventlet",
    path="/socket.io",
    ping_interval=25,
    ping_timeout=20,
    logger=False,
    engineio_logger=False,
)


# ─── Service wiring ─────────────────────────────────────────────────────────
class Services:
    """Everything a request handler needs, built once per process."""

    def __init__(self, client, cache, queries, mutations, reports, printer,
                 history, app_settings, printer_settings, archiver):
        self.client = client
        self.cache = cache
        self.queries = queries
        self.mutations = mutations
        self.reports = reports
        self.printer = printer
        self.history = history
        self.app_settings = app_settings
        self.printer_settings = printer_settings
        self.archiver = archiver

    def run_archive(self):
        count = archive_orders(self.client, self.cache, config.LIVE_TAB, config.HISTORY_TAB)
        if count:
            _notify("archived", count=count)
        return count


def _utc_now():
    return datetime.now(timezone.utc)


def build_services(client=None, app_settings=None, printer_settings=None, history=None,
                   scheduler=None, now=None, clock=None):
    if client is None:
        from google_clients import open_spreadsheet
        if not config.SPREADSHEET_ID:
            raise RuntimeError("SPREADSHEET_ID is not set")
        client = SpreadsheetClient(open_spreadsheet(config.SPREADSHEET_ID))

    now = now or _utc_now
    app_settings = app_settings or config.AppSettings()
    printer_settings = printer_settings or config.PrinterSettings()
    history = history or PrintHistoryLog(config.PRINT_HISTORY_FILE)

    cache = SheetCache(
        live_tab_fetcher(client, config.LIVE_TAB, config.LIVE_ITEM_MAX),
        ttl=config.CACHE_TTL_SECONDS,
        clock=clock or time.monotonic,
    )
    queries = OrderQueryService(cache, history, app_settings, now=now)
    printer = PrinterService(
        printer_settings,
        cloud_queue=CloudPrintQueue(),
        probe_timeout=config.PRINTER_PROBE_TIMEOUT,
        send_timeout=config.PRINTER_SEND_TIMEOUT,
        tz_getter=lambda: app_settings.timezone,
    )
    mutations = OrderMutationService(client, cache, queries, printer, history, config.LIVE_TAB, now=now)
    reports = ReportAggregator(
        client, queries, config.HISTORY_TAB, app_settings, item_max=config.REPORT_ITEM_MAX, now=now
    )

    services = Services(
        client, cache, queries, mutations, reports, printer,
        history, app_settings, printer_settings, archiver=None,
    )
    services.archiver = ArchiveScheduler(services.run_archive, app_settings, scheduler=scheduler)
    return services


_services = None


def get_services() -> Services:
    global _services
    if _services is None:
        _services = build_services()
    return _services


def set_services(services):
    global _services
    _services = services


def _notify(reason, **payload):
    try:
        socketio.emit("ordersChanged", {"reason": reason, **payload})
    except Exception:
        logger.warning("ordersChanged emit failed", exc_info=True)


def _row_index(raw):
    try:
        return int(str(raw).strip())
    except (TypeError, ValueError):
        return None


def _bad_row_index():
    return jsonify({"error": "Invalid rowIndex"}), 400


# ─── Error handling ─────────────────────────────────────────────────────────
@app.errorhandler(OrderDashError)
def handle_dash_error(e):
    if e.status_code >= 500:
        logger.error("%s: %s", type(e).__name__, e)
    return jsonify(error=e.public_message, details=e.details), e.status_code


@app.errorhandler(InvalidRange)
def handle_invalid_range(e):
    return jsonify(error=str(e)), 400


@app.errorhandler(HTTPException)
def handle_http_error(e):
    return jsonify(error=e.description), e.code


@app.errorhandler(Exception)
def handle_exception(e):
    # Log the full stack for debugging
    logger.exception("Unhandled exception in request:")
    resp = jsonify(error=str(e))
    resp.status_code = 500
    return resp


# ─── Health ─────────────────────────────────────────────────────────────────
@app.route("/", methods=["GET"])
def index():
    return Response("Order dashboard backend is running.", mimetype="text/plain")


@app.route("/api/ping", methods=["GET"])
def api_ping():
    return jsonify({"ok": True}), 200


# ─── Order views ────────────────────────────────────────────────────────────
@app.route("/api/list", methods=["GET"])
def list_incoming():
    return jsonify(get_services().queries.incoming())


@app.route("/api/updating", methods=["GET"])
def list_updating():
    return jsonify(get_services().queries.updating())


@app.route("/api/printed", methods=["GET"])
def list_printed():
    return jsonify(get_services().queries.processed())


@app.route("/api/order-by-row/<row_index>", methods=["GET"])
def order_by_row(row_index):
    idx = _row_index(row_index)
    if idx is None:
        return _bad_row_index()
    order = get_services().queries.order_by_row(idx)
    if order is None:
        return jsonify({"error": "Order not found"}), 404
    return jsonify(order.to_dict())


# ─── Mutations ──────────────────────────────────────────────────────────────
def _fire(raw_index):
    idx = _row_index(raw_index)
    if idx is None:
        return _bad_row_index()
    result = get_services().mutations.fire(idx)
    _notify("fired", rowIndex=idx)
    return jsonify(result)


@app.route("/api/fire-to-kitchen/<row_index>", methods=["POST"])
def fire_to_kitchen(row_index):
    return _fire(row_index)


@app.route("/api/fire-order", methods=["POST"])
def fire_order():
    data = request.get_json(silent=True) or {}
    return _fire(data.get("rowIndex"))


@app.route("/api/reprint/<row_index>", methods=["POST"])
def reprint(row_index):
    idx = _row_index(row_index)
    if idx is None:
        return _bad_row_index()
    result = get_services().mutations.reprint(idx)
    _notify("reprinted", rowIndex=idx)
    return jsonify(result)


@app.route("/api/archive/run", methods=["POST"])
def archive_now():
    count = get_services().run_archive()
    return jsonify({"success": True, "archived": count})


# ─── Reports ────────────────────────────────────────────────────────────────
def _range_args():
    return request.args.get("range", "7"), request.args.get("start"), request.args.get("end")


@app.route("/api/order-stats", methods=["GET"])
def order_stats():
    return jsonify(get_services().reports.order_stats(*_range_args()))


@app.route("/api/popular-items", methods=["GET"])
def popular_items():
    limit = request.args.get("limit", type=int)
    return jsonify(get_services().reports.popular_items(*_range_args(), limit=limit))


@app.route("/api/customer-stats", methods=["GET"])
def customer_stats():
    return jsonify(get_services().reports.customer_stats(*_range_args()))


@app.route("/api/hourly-orders", methods=["GET"])
def hourly_orders():
    return jsonify(get_services().reports.hourly_orders())


@app.route("/api/today-stats", methods=["GET"])
def today_stats():
    return jsonify(get_services().reports.today_stats())


# ─── Settings ───────────────────────────────────────────────────────────────
@app.route("/api/print-settings", methods=["GET", "POST"])
def print_settings():
    settings = get_services().printer_settings
    if request.method == "GET":
        return jsonify(settings.data)

    data = request.get_json(silent=True) or {}
    mode = str(data.get("mode") or "NONE").upper()
    if mode not in MODES:
        return jsonify({"error": f"Invalid printer mode: {mode}"}), 400
    if mode in ("LAN", "MOCK") and not str(data.get("printerUrl") or "").strip():
        return jsonify({"error": f"printerUrl is required for {mode} mode"}), 400
    saved = settings.save({**data, "mode": mode})
    logger.info("Printer settings saved: mode=%s", mode)
    return jsonify({"success": True, "settings": saved})


@app.route("/api/app-settings", methods=["GET", "POST"])
def app_settings():
    services = get_services()
    settings = services.app_settings
    if request.method == "GET":
        return jsonify(settings.data)

    data = {**settings.data, **(request.get_json(silent=True) or {})}
    try:
        ZoneInfo(str(data.get("timezone")))
    except (ZoneInfoNotFoundError, ValueError):
        return jsonify({"error": f"Unknown timezone: {data.get('timezone')}"}), 400
    try:
        hour = int(data.get("reportStartHour"))
    except (TypeError, ValueError):
        hour = -1
    if not 0 <= hour <= 23:
        return jsonify({"error": "reportStartHour must be between 0 and 23"}), 400
    try:
        CronTrigger.from_crontab(str(data.get("archiveCronSchedule")), timezone=data["timezone"])
    except ValueError as e:
        return jsonify({"error": f"Invalid archiveCronSchedule: {e}"}), 400

    saved = settings.save({**data, "reportStartHour": hour})
    services.archiver.reschedule()
    logger.info("App settings saved: %s", saved)
    return jsonify({"success": True, "settings": saved})


# ─── Printer ────────────────────────────────────────────────────────────────
@app.route("/api/printer-status", methods=["GET"])
def printer_status():
    status = get_services().printer.check_status()
    return jsonify(status), 200 if status.get("available") else 503


@app.route("/api/cloudprnt", methods=["POST"])
def cloudprnt_poll():
    queue = get_services().printer.cloud_queue
    data = request.get_json(silent=True) or {}
    if data.get("jobToken"):
        queue.complete(str(data["jobToken"]))
        return Response("OK", mimetype="text/plain")
    return jsonify(queue.poll(
        lambda job_id: url_for("cloudprnt_content", job_id=job_id, _external=True)
    ))


@app.route("/api/cloudprnt-content/<job_id>", methods=["GET"])
def cloudprnt_content(job_id):
    job = get_services().printer.cloud_queue.content(job_id)
    if job is None:
        return Response("Job not found.", status=404, mimetype="text/plain")
    return Response(job["content"], mimetype=job["contentType"])


# ─── Startup ────────────────────────────────────────────────────────────────
def main():
    services = get_services()
    services.archiver.start()
    logger.info("Starting order dashboard on port %s (tab=%s)", config.PORT, config.LIVE_TAB)
    try:
        socketio.run(
            app,
            host="0.0.0.0",
            port=config.PORT,
            debug=False,
            use_reloader=False,
        )
    finally:
        services.archiver.shutdown()


if __name__ == "__main__":
    main()
