from __future__ import annotations

import pytest
from apscheduler.triggers.cron import CronTrigger

import config
from archive_job import ArchiveScheduler, archive_orders
from conftest import LIVE_HEADER, make_row
from errors import PartialWriteError, SheetAccessError


class RecordingScheduler:
    def __init__(self):
        self.jobs = {}
        self.started = False
        self.rescheduled = []

    def add_job(self, func, trigger=None, id=None, **kwargs):
        self.jobs[id] = {"func": func, "trigger": trigger, **kwargs}

    def get_job(self, job_id):
        return self.jobs.get(job_id)

    def reschedule_job(self, job_id, trigger=None):
        self.rescheduled.append((job_id, trigger))

    def start(self):
        self.started = True

    def shutdown(self, wait=True):
        self.started = False


@pytest.fixture()
def live_rows(sheet):
    rows = [make_row(OrderNum=str(n), Order_item_1="Tea") for n in (1, 2, 3)]
    sheet.tabs[config.LIVE_TAB] = [LIVE_HEADER] + [list(r) for r in rows]
    return rows


def test_archive_moves_rows_and_keeps_header(sheet, services, live_rows):
    services.cache.get()

    count = archive_orders(sheet, services.cache, config.LIVE_TAB, config.HISTORY_TAB)

    assert count == 3
    assert sheet.tabs[config.HISTORY_TAB] == [LIVE_HEADER] + live_rows
    assert sheet.tabs[config.LIVE_TAB] == [LIVE_HEADER]
    (clear,) = sheet.ops("clear")
    assert clear[1] == "orderItems!A2:Z4"
    assert services.cache.data is None


def test_archive_appends_before_clearing(sheet, services, live_rows):
    archive_orders(sheet, services.cache, config.LIVE_TAB, config.HISTORY_TAB)
    ops = [c[0] for c in sheet.calls]
    assert ops.index("append") < ops.index("clear")


def test_archive_with_header_only_is_a_no_op(sheet, services):
    assert archive_orders(sheet, services.cache, config.LIVE_TAB, config.HISTORY_TAB) == 0
    assert sheet.ops("append") == []
    assert sheet.ops("clear") == []


def test_failed_clear_is_a_partial_write(sheet, services, live_rows):
    sheet.fail["clear"] = SheetAccessError("Sheets clear failed")

    with pytest.raises(PartialWriteError):
        archive_orders(sheet, services.cache, config.LIVE_TAB, config.HISTORY_TAB)
    # the rows are in history and still live; nothing was lost
    assert len(sheet.tabs[config.HISTORY_TAB]) == 4
    assert len(sheet.tabs[config.LIVE_TAB]) == 4


def test_failed_append_touches_nothing(sheet, services, live_rows):
    sheet.fail["append"] = SheetAccessError("Sheets append failed")
    with pytest.raises(SheetAccessError):
        archive_orders(sheet, services.cache, config.LIVE_TAB, config.HISTORY_TAB)
    assert sheet.ops("clear") == []
    assert len(sheet.tabs[config.LIVE_TAB]) == 4


def test_scheduler_uses_settings_cron_and_timezone(app_settings):
    recorder = RecordingScheduler()
    job = ArchiveScheduler(lambda: 0, app_settings, scheduler=recorder)

    job.start()

    entry = recorder.jobs[ArchiveScheduler.JOB_ID]
    assert recorder.started
    assert isinstance(entry["trigger"], CronTrigger)
    assert str(entry["trigger"].timezone) == "America/New_York"
    assert entry["max_instances"] == 1


def test_reschedule_before_start_is_a_no_op(app_settings):
    recorder = RecordingScheduler()
    ArchiveScheduler(lambda: 0, app_settings, scheduler=recorder).reschedule()
    assert recorder.rescheduled == []


def test_reschedule_after_settings_change(app_settings):
    recorder = RecordingScheduler()
    job = ArchiveScheduler(lambda: 0, app_settings, scheduler=recorder)
    job.start()
    app_settings.save({**app_settings.data, "archiveCronSchedule": "0 3 * * *"})

    job.reschedule()

    (job_id, trigger), = recorder.rescheduled
    assert job_id == ArchiveScheduler.JOB_ID
    assert isinstance(trigger, CronTrigger)


def test_scheduled_run_logs_failures_instead_of_raising(app_settings, caplog):
    def boom():
        raise SheetAccessError("Sheets read failed")

    ArchiveScheduler(boom, app_settings, scheduler=RecordingScheduler())._run_logged()
    assert "Scheduled run failed" in caplog.text
