# printer_service.py
import html
import time
import uuid
import logging
from typing import Any, Dict, List, Optional

import requests

from date_utils import parse_timestamp, now_in
from errors import PrintDispatchError

logger = logging.getLogger(__name__)

MODES = ("LAN", "CLOUD", "MOCK", "NONE")
CLOUD_POLL_INTERVAL_MS = 30000


# ------- Receipt builders -------
def _fmt_time(raw, tz) -> str:
    dt = parse_timestamp(raw, tz)
    return dt.strftime("%I:%M %p").lstrip("0") if dt else (raw or "N/A")


def build_receipt_text(order, tz: str = "America/New_York") -> str:
    lines = []
    for it in order.items:
        lines.append(f"{it.qty}x {it.name}")
        if it.modifier:
            lines.append(f"   - {it.modifier}")
    address = ", ".join(p for p in (order.callerAddress, order.callerCity, order.callerState, order.callerZip) if p)
    fired_at = now_in(tz).strftime("%I:%M %p").lstrip("0")
    return "\n".join([
        "--------------------------------",
        f"    ** ORDER #{order.orderNum or 'N/A'} **",
        "--------------------------------",
        f"Order Type:   {order.orderType or 'N/A'}",
        f"Time Ordered: {_fmt_time(order.timeOrdered, tz)}",
        f"Status:       {order.orderUpdateStatus or 'N/A'}",
        "--------------------------------",
        f"Caller:  {order.callerName or 'N/A'}",
        f"Phone:   {order.callerPhone or 'N/A'}",
        f"Email:   {order.email or 'N/A'}",
        f"Address: {address or 'N/A'}",
        "--------------------------------",
        "ITEMS:",
        *lines,
        "--------------------------------",
        f"Fired at: {fired_at}",
    ])


def build_receipt_html(order, tz: str = "America/New_York") -> str:
    body = html.escape(build_receipt_text(order, tz))
    return (
        '<pre style="font-family: \'Courier New\', Courier, monospace; font-size: 12pt; '
        'width: 80mm; margin: 0; padding: 0; line-height: 1.2;">'
        f"{body}</pre>"
    )


# ------- CloudPRNT pull queue -------
class CloudPrintQueue:
    """Jobs staged for a cloud printer that polls us (CloudPRNT style)."""

    def __init__(self):
        self.jobs: List[Dict[str, Any]] = []

    def stage(self, content: str, content_type: str = "text/html") -> Dict[str, Any]:
        job = {
            "jobId": f"job-{int(time.time() * 1000)}-{uuid.uuid4().hex[:6]}",
            "content": content,
            "contentType": content_type,
        }
        self.jobs.append(job)
        return job

    def poll(self, content_url_for) -> Dict[str, Any]:
        if not self.jobs:
            return {"jobReady": False, "pollInterval": CLOUD_POLL_INTERVAL_MS}
        job = self.jobs[0]
        return {
            "jobReady": True,
            "mediaTypes": [job["contentType"]],
            "jobToken": job["jobId"],
            "get": content_url_for(job["jobId"]),
        }

    def content(self, job_id: str) -> Optional[Dict[str, Any]]:
        return next((j for j in self.jobs if j["jobId"] == job_id), None)

    def complete(self, job_token: str) -> bool:
        before = len(self.jobs)
        self.jobs = [j for j in self.jobs if j["jobId"] != job_token]
        return len(self.jobs) < before


# ------- Dispatch + reachability -------
class PrinterService:
    def __init__(self, settings, cloud_queue=None, probe_timeout=5.0, send_timeout=10.0, tz_getter=None):
        self.settings = settings
        self.cloud_queue = cloud_queue if cloud_queue is not None else CloudPrintQueue()
        self.probe_timeout = probe_timeout
        self.send_timeout = send_timeout
        self._tz_getter = tz_getter

    @property
    def tz(self) -> str:
        return self._tz_getter() if self._tz_getter else "America/New_York"

    @property
    def mode(self) -> str:
        return self.settings.mode

    @property
    def enabled(self) -> bool:
        return self.mode != "NONE"

    def probe(self) -> Dict[str, Any]:
        """
        Lightweight reachability check: HEAD for push modes, POST with a test
        payload for the MOCK webhook. Never raises; returns
        {available, message|error}.
        """
        url = self.settings.printer_url
        if not url:
            return {"available": False, "error": "No printer URL configured"}

        method = "POST" if self.mode == "MOCK" else "HEAD"
        logger.info("Testing printer connectivity: %s %s", method, url)
        try:
            if method == "POST":
                r = requests.post(url, json={"test": True}, timeout=self.probe_timeout)
            else:
                r = requests.head(url, timeout=self.probe_timeout)
        except requests.exceptions.Timeout:
            logger.warning("Printer probe timed out for %s", url)
            return {"available": False, "error": "Lost connection to printer (timeout)"}
        except requests.exceptions.RequestException as e:
            logger.warning("Printer probe error for %s: %s", url, e)
            return {"available": False, "error": f"Printer error: {e}"}

        if 200 <= r.status_code < 300:
            return {"available": True, "message": f"Printer responded with status {r.status_code}"}
        return {"available": False, "error": f"Printer not found (Status: {r.status_code})"}

    def check_status(self) -> Dict[str, Any]:
        if self.mode not in ("LAN", "CLOUD", "MOCK"):
            return {"available": True, "mode": self.mode, "message": "No printer check needed for this mode."}
        return {**self.probe(), "mode": self.mode}

    def dispatch(self, order) -> Optional[Dict[str, Any]]:
        """
        Deliver one order to the configured printer. Returns the printer's
        response (or None when printing is off); raises PrintDispatchError
        when delivery fails.
        """
        mode = self.mode
        url = self.settings.printer_url

        if mode == "NONE":
            return None

        if mode == "CLOUD":
            job = self.cloud_queue.stage(build_receipt_html(order, self.tz), "text/html")
            logger.info("CLOUD job %s staged for order %s", job["jobId"], order.orderNum)
            return {"status": "CLOUD job staged", "jobId": job["jobId"]}

        if mode not in ("LAN", "MOCK"):
            raise PrintDispatchError(f"Invalid printer mode: {mode}")
        if not url:
            raise PrintDispatchError(f"No printer URL configured for {mode} mode")

        if mode == "LAN":
            if self.settings.content_type == "text/html":
                document = build_receipt_html(order, self.tz)
            else:
                document = build_receipt_text(order, self.tz)
            payload = {"request": [{"document": document}]}
        else:
            payload = {**order.to_dict(), "mode": "MOCK"}

        logger.info("📡 Sending order %s to %s (%s)", order.orderNum, url, mode)
        try:
            r = requests.post(url, json=payload, timeout=self.send_timeout)
            r.raise_for_status()
        except requests.exceptions.RequestException as e:
            logger.error("Failed to print order %s: %s", order.orderNum, e)
            raise PrintDispatchError(f"Failed to send to printer: {e}", details=str(e)) from e

        try:
            return r.json()
        except ValueError:
            return {"status": r.status_code, "body": r.text[:500]}
