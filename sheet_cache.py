import time
import logging

from eventlet.event import Event

from order_parser import parse_orders

logger = logging.getLogger(__name__)


class SheetCache:
    """
    Time-windowed snapshot of parsed live-tab orders.

    At most one fetch runs at a time: a caller arriving while a fetch is in
    flight waits on that fetch's Event and gets the same result (or the same
    exception) instead of starting a second one. Green threads only switch at
    I/O, so the in-flight handle needs no lock.
    """

    def __init__(self, fetch, ttl=30, clock=time.monotonic):
        self.fetch = fetch
        self.ttl = ttl
        self.clock = clock
        self.data = None
        self.fetched_at = None
        self._inflight = None
        self._generation = 0

    def get(self, force_fetch=False):
        inflight = self._inflight
        if inflight is not None:
            logger.debug("Fetch already in progress; waiting on it")
            return inflight.wait()

        if not force_fetch and self.is_fresh():
            return self.data

        return self._refresh()

    def is_fresh(self) -> bool:
        if self.data is None or self.fetched_at is None:
            return False
        return (self.clock() - self.fetched_at) < self.ttl

    def invalidate(self):
        self.data = None
        self.fetched_at = None
        # a fetch already in flight may predate the write that caused this
        self._generation += 1
        logger.info("Sheet data cache invalidated.")

    def _refresh(self):
        evt = Event()
        self._inflight = evt
        generation = self._generation
        started = self.clock()
        try:
            orders = self.fetch()
        except BaseException as e:
            # also covers eventlet.Timeout and GreenletExit; waiters must not hang
            evt.send_exception(e)
            logger.error("Sheet fetch failed: %r", e)
            raise
        finally:
            self._inflight = None

        if generation == self._generation:
            self.data = orders
            self.fetched_at = started
            logger.info("Fetched and parsed %d rows; cache updated.", len(orders))
        else:
            logger.info("Cache invalidated during fetch; result not kept as the snapshot.")
        evt.send(orders)
        return orders


def live_tab_fetcher(client, tab, max_items=20):
    """Build the cache's fetch callable: read the whole tab, then parse every row."""
    def fetch():
        return parse_orders(client.read(tab), max_items=max_items)
    return fetch
