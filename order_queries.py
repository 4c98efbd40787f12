import logging
from datetime import datetime, timezone

from date_utils import local_date, parse_timestamp, now_in, DEFAULT_TZ
from order_parser import STATUS_NONE, STATUS_CHECK_RECORD

logger = logging.getLogger(__name__)


def _utc_now():
    return datetime.now(timezone.utc)


class OrderQueryService:
    """
    The three dashboard views (incoming, updating, processed) plus
    lookup-by-row, all derived from one cached snapshot.
    """

    def __init__(self, cache, history=None, app_settings=None, now=_utc_now):
        self.cache = cache
        self.history = history
        self.app_settings = app_settings
        self.now = now

    @property
    def tz(self) -> str:
        if self.app_settings is None:
            return DEFAULT_TZ
        return self.app_settings.timezone

    # ─── helpers ─────────────────────────────────────────────────────────
    def _is_today(self, order, today) -> bool:
        d = local_date(order.timeOrdered, self.tz)
        if d is None:
            if order.timeOrdered:
                logger.debug("Unparseable Time_ordered for order %s: %r", order.orderNum, order.timeOrdered)
            return False
        return d == today

    def _sorted_by_time(self, orders, descending=False):
        # unparseable timestamps go last either way
        def key(o):
            dt = parse_timestamp(o.timeOrdered, self.tz)
            if dt is None:
                return (1, 0.0)
            ts = dt.timestamp()
            return (0, -ts if descending else ts)
        return sorted(orders, key=key)

    def _open_today(self, status):
        today = now_in(self.tz, self.now()).date()
        return [
            o for o in self.cache.get()
            if not o.cancelled
            and not o.orderProcessed
            and o.orderUpdateStatus == status
            and self._is_today(o, today)
        ]

    # ─── views ───────────────────────────────────────────────────────────
    def incoming(self):
        """Unprocessed, uncancelled, not under customer update, ordered today; oldest first."""
        return [o.to_dict() for o in self._sorted_by_time(self._open_today(STATUS_NONE))]

    def updating(self):
        """Orders flagged ChkRecExist today; newest first."""
        orders = self._open_today(STATUS_CHECK_RECORD)
        return [o.to_dict() for o in self._sorted_by_time(orders, descending=True)]

    def processed(self):
        """
        Every processed, uncancelled order (no date filter), newest first. An
        empty sheet timestamp list is filled from the local print history.
        """
        orders = [o for o in self.cache.get() if o.orderProcessed and not o.cancelled]
        out = []
        for o in self._sorted_by_time(orders, descending=True):
            d = o.to_dict()
            fallback = []
            if self.history is not None:
                fallback = self.history.timestamps_for(o.rowIndex, o.orderNum)
            if not d["printedTimestamps"] and fallback:
                d["printedTimestamps"] = fallback
            d["reprinted"] = o.printedCount > 1 or len(fallback) > 1
            out.append(d)
        return out

    def order_by_row(self, row_index, force_fetch=False):
        """Linear scan of the snapshot; None when the row is gone (e.g. archived)."""
        for o in self.cache.get(force_fetch):
            if o.rowIndex == row_index:
                return o
        return None

    def today_orders(self):
        today = now_in(self.tz, self.now()).date()
        return [o for o in self.cache.get() if self._is_today(o, today)]
