"""
Fire-to-kitchen and reprint.

Ordering is fixed: printer dispatch, then one batch write of the derived
columns, then cache invalidation, then the local print-history entry. A
failed dispatch stops everything after it, so no "printed" timestamp is ever
written for a print that did not happen. The reverse is not guaranteed: if the
printer accepted the job and the sheet write then fails, the print stands and
the caller gets a PartialWriteError (at-least-once printing, best-effort
bookkeeping).
"""
import logging
from datetime import datetime, timezone

from date_utils import utc_now_iso
from errors import OrderDashError, OrderNotFound, PartialWriteError, PrinterUnavailable
from order_parser import Column, SheetSchema, WRITE_REQUIRED
from sheets_client import cell_range

logger = logging.getLogger(__name__)

PROCESSED_MARK = "Y"


def _utc_now():
    return datetime.now(timezone.utc)


class OrderMutationService:
    def __init__(self, client, cache, queries, printer, history, live_tab, now=_utc_now):
        self.client = client
        self.cache = cache
        self.queries = queries
        self.printer = printer
        self.history = history
        self.live_tab = live_tab
        self.now = now

    def _locate(self, row_index):
        # force refresh so we act on the sheet as it is now, not up to 30s ago
        order = self.queries.order_by_row(row_index, force_fetch=True)
        if order is None:
            logger.info("Order not found at rowIndex %s (archived or never existed)", row_index)
            raise OrderNotFound(f"Order not found at rowIndex {row_index}")
        return order

    def _write_schema(self):
        return SheetSchema.resolve(self.client.read_header(self.live_tab), WRITE_REQUIRED)

    def _record_print(self, order, schema):
        """Compute the derived columns for one more print and write them in one batch."""
        now_iso = utc_now_iso(self.now())
        timestamps = list(order.printedTimestamps)
        if order.printedCount > len(timestamps):
            # the sheet lost timestamps; the local log may still have them
            logged = self.history.timestamps_for(order.rowIndex, order.orderNum)
            if len(logged) > len(timestamps):
                timestamps = list(logged)
        timestamps.append(now_iso)
        # the written count always matches the written list
        printed_count = len(timestamps)

        def rng(col):
            return cell_range(self.live_tab, schema.index_of(col), order.rowIndex)

        updates = [
            (rng(Column.ORDER_PROCESSED), PROCESSED_MARK),
            (rng(Column.PRINTED_COUNT), printed_count),
            (rng(Column.PRINTED_TIMESTAMPS), ",".join(timestamps)),
            (rng(Column.SHEET_LAST_MODIFIED), now_iso),
        ]
        self.client.batch_update(updates, input_mode="RAW")
        self.cache.invalidate()
        return now_iso, printed_count, timestamps

    def fire(self, row_index):
        order = self._locate(row_index)
        # a sheet missing the write columns must fail before anything prints
        schema = self._write_schema()
        mode = self.printer.mode
        printer_response = None

        if self.printer.enabled:
            if self.printer.settings.require_reachable:
                check = self.printer.probe()
                if not check.get("available"):
                    logger.error("Printer unavailable: %s", check.get("error"))
                    raise PrinterUnavailable("Printer unavailable", details=check.get("error"))
            printer_response = self.printer.dispatch(order)

        try:
            now_iso, printed_count, timestamps = self._record_print(order, schema)
        except OrderDashError as e:
            if not self.printer.enabled:
                raise
            logger.critical(
                "Order %s (row %s) was sent to the %s printer but the sheet update failed: %s",
                order.orderNum, row_index, mode, e,
            )
            raise PartialWriteError(
                f"Order {order.orderNum} printed but sheet update failed", details=str(e)
            ) from e

        self.history.append(order.rowIndex, order.orderNum, now_iso, mode)
        logger.info("🔥 Order %s at rowIndex %s fired (count=%s)", order.orderNum, row_index, printed_count)
        return {
            "success": True,
            "message": f"Order {order.orderNum} marked as processed.",
            "printerResponse": printer_response,
            "printedCount": printed_count,
            "printedTimestamps": timestamps,
        }

    def reprint(self, row_index):
        """Bump the print counters on an order, processed or not; no printer dispatch."""
        order = self._locate(row_index)
        now_iso, printed_count, timestamps = self._record_print(order, self._write_schema())
        self.history.append(order.rowIndex, order.orderNum, now_iso, "REPRINT")
        logger.info("Order %s at rowIndex %s re-processed (count=%s)", order.orderNum, row_index, printed_count)
        return {
            "success": True,
            "message": f"Order {order.orderNum} re-processed.",
            "printedCount": printed_count,
            "printedTimestamps": timestamps,
        }
