import re
import logging
from collections import Counter
from datetime import date, datetime, timedelta, timezone

from date_utils import parse_timestamp, now_in, hour_label, DEFAULT_TZ
from order_parser import Column, SheetSchema, extract_items, parse_flag

logger = logging.getLogger(__name__)

PRESET_DAYS = {"7": 7, "14": 14, "30": 30, "90": 90}


class InvalidRange(ValueError):
    pass


def _utc_now():
    return datetime.now(timezone.utc)


def resolve_range(range_key, start=None, end=None, today: date | None = None):
    """
    Turn a report range into (first_day, end_exclusive) calendar dates.

    "7"/"14"/"30"/"90" are the last N days including today, "YTD" runs from
    January 1st, "custom" takes YYYY-MM-DD start and end (both inclusive).
    Anything else falls back to the last 7 days.
    """
    today = today or date.today()
    key = str(range_key or "7").strip()

    if key == "custom":
        if not start or not end:
            raise InvalidRange("Start and end dates are required for custom range.")
        try:
            first = date.fromisoformat(str(start).strip())
            last = date.fromisoformat(str(end).strip())
        except ValueError:
            raise InvalidRange("Invalid date format provided. Use YYYY-MM-DD.")
        if last < first:
            raise InvalidRange("End date is before start date.")
        return first, last + timedelta(days=1)

    if key.upper() == "YTD":
        return date(today.year, 1, 1), today + timedelta(days=1)

    days = PRESET_DAYS.get(key, 7)
    return today - timedelta(days=days - 1), today + timedelta(days=1)


def normalize_item_name(name: str) -> str:
    s = " ".join(str(name or "").lower().split())
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), s)


def _qty(text) -> int:
    try:
        return int(float(str(text).strip() or "1"))
    except (TypeError, ValueError):
        return 1


class ReportAggregator:
    """
    Read-only sales reports. Day-bucketed reports come from the history tab;
    today's hourly and summary numbers come from the live cache.
    """

    def __init__(self, client, queries, history_tab, app_settings=None, item_max=40, now=_utc_now):
        self.client = client
        self.queries = queries
        self.history_tab = history_tab
        self.app_settings = app_settings
        self.item_max = item_max
        self.now = now

    @property
    def tz(self) -> str:
        return self.app_settings.timezone if self.app_settings is not None else DEFAULT_TZ

    def today(self) -> date:
        return now_in(self.tz, self.now()).date()

    def _history_in_range(self, first, end_exclusive):
        """Yield (schema, row, local_date) for history rows ordered in [first, end_exclusive)."""
        rows = self.client.read(self.history_tab)
        if len(rows) <= 1:
            return
        schema = SheetSchema.resolve(rows[0], required=(Column.TIME_ORDERED,))
        bad = 0
        for row in rows[1:]:
            raw = schema.cell(row, Column.TIME_ORDERED)
            if not raw:
                continue
            dt = parse_timestamp(raw, self.tz)
            if dt is None:
                bad += 1
                continue
            d = dt.date()
            if first <= d < end_exclusive:
                yield schema, row, d
        if bad:
            logger.warning("[Report] %d history rows had an unparseable %s", bad, Column.TIME_ORDERED.value)

    def order_stats(self, range_key="7", start=None, end=None):
        """{YYYY-MM-DD: count} of processed, non-cancelled orders for every day in range."""
        first, end_exclusive = resolve_range(range_key, start, end, self.today())
        counts = {}
        d = first
        while d < end_exclusive:
            counts[d.isoformat()] = 0
            d += timedelta(days=1)

        for schema, row, day in self._history_in_range(first, end_exclusive):
            if parse_flag(schema.cell(row, Column.ORDER_PROCESSED)) and not parse_flag(schema.cell(row, Column.CANCELLED)):
                counts[day.isoformat()] += 1
        return counts

    def popular_items(self, range_key="7", start=None, end=None, limit=None):
        first, end_exclusive = resolve_range(range_key, start, end, self.today())
        tally = Counter()
        for schema, row, _ in self._history_in_range(first, end_exclusive):
            if parse_flag(schema.cell(row, Column.CANCELLED)):
                continue
            for item in extract_items(lambda name: schema.cell(row, name), self.item_max):
                key = normalize_item_name(item.name)
                if key:
                    tally[key] += _qty(item.qty)
        return dict(tally.most_common(limit))

    def customer_stats(self, range_key="7", start=None, end=None, top=5):
        first, end_exclusive = resolve_range(range_key, start, end, self.today())
        per_customer = {}
        for schema, row, _ in self._history_in_range(first, end_exclusive):
            if parse_flag(schema.cell(row, Column.CANCELLED)):
                continue
            phone = schema.cell(row, Column.CALLER_PHONE)
            name = schema.cell(row, Column.CALLER_NAME)
            key = phone or name.lower()
            if not key:
                continue
            entry = per_customer.setdefault(key, {"name": name, "phone": phone, "count": 0})
            entry["count"] += 1
            if name and not entry["name"]:
                entry["name"] = name

        total = sum(c["count"] for c in per_customer.values())
        top_customers = sorted(per_customer.values(), key=lambda c: c["count"], reverse=True)[:top]
        return {
            "totalOrders": total,
            "repeatCustomers": sum(1 for c in per_customer.values() if c["count"] > 1),
            "topCustomers": top_customers,
        }

    def hourly_orders(self):
        """Today's live orders per hour, from reportStartHour through the current hour."""
        now_local = now_in(self.tz, self.now())
        start_hour = self.app_settings.report_start_hour if self.app_settings is not None else 8
        counts = {hour_label(h): 0 for h in range(start_hour, now_local.hour + 1)}
        for o in self.queries.today_orders():
            dt = parse_timestamp(o.timeOrdered, self.tz)
            if dt and start_hour <= dt.hour <= now_local.hour:
                counts[hour_label(dt.hour)] += 1
        return counts

    def today_stats(self):
        today = [o for o in self.queries.today_orders() if not o.cancelled]
        return {"total": len(today), "processed": sum(1 for o in today if o.orderProcessed)}
