import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from errors import OrderDashError, PartialWriteError
from sheets_client import column_letter, quote_tab

logger = logging.getLogger(__name__)


def archive_orders(client, cache, live_tab, history_tab) -> int:
    """
    Move every data row of the live tab to the end of the history tab, then
    blank rows 2..N of the live tab (row 1, the header, is never touched).
    Returns the number of rows archived.

    Known gaps, not recovered here: if the append succeeds and the clear
    fails, the next run will append the same rows again; and an order fired
    while this runs may have its write land on a row that was just cleared.
    """
    rows = client.read(live_tab)
    if len(rows) <= 1:
        logger.info("[Archive] No data rows to archive from %s.", live_tab)
        return 0

    header, data_rows = rows[0], rows[1:]
    logger.info("[Archive] Found %d rows to archive from %s.", len(data_rows), live_tab)

    client.append(history_tab, data_rows)
    logger.info("[Archive] Appended %d rows to %s.", len(data_rows), history_tab)

    end_col = column_letter(len(header) if header else 26)
    clear_range = f"{quote_tab(live_tab)}!A2:{end_col}{len(rows)}"
    try:
        client.clear(clear_range)
    except OrderDashError as e:
        logger.critical(
            "[Archive] %d rows were appended to %s but clearing %s failed; "
            "the next run will archive them again unless cleared by hand: %s",
            len(data_rows), history_tab, clear_range, e,
        )
        raise PartialWriteError(f"Archived rows appended but {clear_range} not cleared", details=str(e)) from e

    cache.invalidate()
    logger.info("[Archive] Cleared %s; cache invalidated.", clear_range)
    return len(data_rows)


class ArchiveScheduler:
    """
    Runs the archive job on the cron expression from app settings, in the
    app-settings timezone. One instance at a time; missed runs coalesce.
    """

    JOB_ID = "archive-orders"

    def __init__(self, run, app_settings, scheduler=None):
        self.run = run
        self.app_settings = app_settings
        self.scheduler = scheduler or BackgroundScheduler()

    def _trigger(self):
        return CronTrigger.from_crontab(self.app_settings.archive_cron, timezone=self.app_settings.timezone)

    def _run_logged(self):
        try:
            count = self.run()
            logger.info("[Archive] Scheduled run archived %d rows.", count)
        except Exception:
            logger.exception("[Archive] Scheduled run failed")

    def start(self):
        self.scheduler.add_job(
            self._run_logged,
            trigger=self._trigger(),
            id=self.JOB_ID,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(
            "[Archive] Scheduled at '%s' (%s)", self.app_settings.archive_cron, self.app_settings.timezone
        )

    def reschedule(self):
        trigger = self._trigger()
        if self.scheduler.get_job(self.JOB_ID) is None:
            logger.info("[Archive] Not started; new schedule applies on start.")
            return
        self.scheduler.reschedule_job(self.JOB_ID, trigger=trigger)
        logger.info(
            "[Archive] Rescheduled to '%s' (%s)", self.app_settings.archive_cron, self.app_settings.timezone
        )

    def shutdown(self):
        self.scheduler.shutdown(wait=False)
