# watch_sheet.py
"""
Order watcher: turns each live-tab row into a printable PDF in a Drive
folder, keeps it current as the row changes, and parks it in a separate
folder while the customer is changing the order (ChkRecExist).

Run on its own:  python watch_sheet.py
"""
import io
import logging
import time
from datetime import datetime, timezone

from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.platypus import SimpleDocTemplate, Paragraph, Spacer

import config
from date_utils import parse_timestamp, now_in
from errors import OrderDashError, SchemaError
from order_parser import (
    Column, SheetSchema, STATUS_CHECK_RECORD, ITEM_PREFIX, extract_items,
)

logger = logging.getLogger(__name__)

PRINTED_HEADER = "Printed to PDF (timestamp)"
PDF_DRIVE_ID_HEADER = "PDF_Drive_ID"
FIRST_ITEM_HEADER = f"{ITEM_PREFIX}1"

WATCH_REQUIRED = (
    PRINTED_HEADER,
    Column.ORDER_NUM,
    FIRST_ITEM_HEADER,
    PDF_DRIVE_ID_HEADER,
    Column.SHEET_LAST_MODIFIED,
    Column.ORDER_UPDATE_STATUS,
)

PAGE_SIZE = (400, 600)


def _utc_now():
    return datetime.now(timezone.utc)


# ─── Drive ───────────────────────────────────────────────────────────────────
class DriveFiles:
    """The few Drive v3 calls the watcher makes, on a googleapiclient service."""

    def __init__(self, service):
        self.service = service

    def parent_of(self, file_id):
        """First parent folder of the file, or None when the file is gone."""
        if not file_id:
            return None
        try:
            meta = self.service.files().get(
                fileId=file_id, fields="parents", supportsAllDrives=True
            ).execute()
        except HttpError as e:
            if e.resp.status == 404:
                logger.warning("File %s not found in Drive.", file_id)
                return None
            raise
        parents = meta.get("parents") or []
        return parents[0] if parents else None

    def modified_time(self, file_id):
        """Drive modifiedTime (RFC 3339) of the file, or None when it is gone."""
        try:
            meta = self.service.files().get(
                fileId=file_id, fields="modifiedTime", supportsAllDrives=True
            ).execute()
        except HttpError as e:
            if e.resp.status == 404:
                return None
            raise
        return meta.get("modifiedTime") or ""

    def move(self, file_id, new_parent, old_parent=None):
        self.service.files().update(
            fileId=file_id,
            addParents=new_parent,
            removeParents=old_parent or "",
            fields="id, parents",
            supportsAllDrives=True,
        ).execute()
        logger.info("File %s moved from %s to folder %s.", file_id, old_parent or "root/unknown", new_parent)

    def upload_pdf(self, pdf_bytes, name, folder_id, existing_id=None):
        """
        Replace the content of ``existing_id`` when given; if that fails, or no
        id is given, create a new file in ``folder_id``. Returns the file id.
        """
        if existing_id:
            try:
                res = self.service.files().update(
                    fileId=existing_id,
                    body={"name": name},
                    media_body=MediaIoBaseUpload(io.BytesIO(pdf_bytes), mimetype="application/pdf"),
                    fields="id",
                    supportsAllDrives=True,
                ).execute()
                logger.info("   ↳ updated %s (Drive ID: %s)", name, res["id"])
                return res["id"]
            except HttpError as e:
                logger.warning(
                    "Could not update existing PDF %s: %s. Creating a new one in %s.", existing_id, e, folder_id
                )

        res = self.service.files().create(
            body={"name": name, "parents": [folder_id]},
            media_body=MediaIoBaseUpload(io.BytesIO(pdf_bytes), mimetype="application/pdf"),
            fields="id",
            supportsAllDrives=True,
        ).execute()
        logger.info("   ↳ uploaded %s (Drive ID: %s)", name, res["id"])
        return res["id"]


# ─── PDF ─────────────────────────────────────────────────────────────────────
def build_order_pdf(schema: SheetSchema, row, order_num: str, item_max: int = 20) -> bytes:
    """
    Ticket layout:
      Order Number / Type / Time Ordered / Printed / Caller / Address
      ================================
      Item: <name>    Qty: <n>
          Modifier: <text>
    """
    def get(name):
        return schema.cell(row, name)

    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=PAGE_SIZE,
        leftMargin=10,
        rightMargin=10,
        topMargin=20,
        bottomMargin=20,
    )
    styles = getSampleStyleSheet()
    normal = styles["Normal"]
    big = ParagraphStyle("OrderNum", parent=normal, fontSize=14, leading=18)
    mid = ParagraphStyle("Detail", parent=normal, fontSize=12, leading=16)
    modifier = ParagraphStyle("Modifier", parent=normal, leftIndent=20)

    caller = ", ".join(p for p in (get(Column.CALLER_NAME), get(Column.CALLER_PHONE)) if p)
    address = ", ".join(
        p for p in (
            get(Column.CALLER_ADDRESS), get(Column.CALLER_CITY), get(Column.CALLER_STATE), get(Column.CALLER_ZIP),
        ) if p
    )

    elems = [
        Paragraph(_esc(f"Order Number: {order_num}"), big),
        Paragraph(_esc(f"Order Type: {get(Column.ORDER_TYPE) or 'N/A'}"), mid),
        Paragraph(_esc(f"Time Ordered: {get(Column.TIME_ORDERED) or 'N/A'}"), mid),
        Paragraph(_esc(f"Printed: {get(PRINTED_HEADER)}"), mid),
        Paragraph(_esc(f"Caller: {caller}"), mid),
        Paragraph(_esc(f"Address: {address}"), mid),
        Paragraph("=" * 48, normal),
    ]
    for item in extract_items(get, item_max):
        elems.append(Paragraph(_esc(f"Item: {item.name}    Qty: {item.qty}"), normal))
        if item.modifier:
            elems.append(Paragraph(_esc(f"Modifier: {item.modifier}"), modifier))
        elems.append(Spacer(1, 14))

    doc.build(elems)
    return buffer.getvalue()


def _esc(text: str) -> str:
    # Paragraph takes mini-markup
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def pdf_file_name(order_num, now: datetime) -> str:
    stamp = now.astimezone(timezone.utc).strftime("%Y-%m-%d_%H-%M-%S")
    return f"Pickup-Order-{order_num}-{stamp}.pdf"


def watcher_timestamp(tz: str, now: datetime) -> str:
    """Local wall-clock stamp, e.g. 6/5/2025, 12:02:11 PM."""
    local = now_in(tz, now)
    hour = local.hour % 12 or 12
    return f"{local.month}/{local.day}/{local.year}, {hour}:{local:%M:%S} {local:%p}"


# ─── Watcher ─────────────────────────────────────────────────────────────────
class SheetWatcher:
    def __init__(self, client, drive, tab, incoming_folder, updating_folder,
                 tz="America/New_York", item_max=20, now=_utc_now):
        self.client = client
        self.drive = drive
        self.tab = tab
        self.incoming_folder = incoming_folder
        self.updating_folder = updating_folder
        self.tz = tz
        self.item_max = item_max
        self.now = now

    def needs_pdf(self, row_index, printed, drive_id, sheet_last_modified) -> bool:
        if not printed or not drive_id:
            logger.info("Row %s: PDF needs initial generation or PDF_Drive_ID was missing.", row_index)
            return True

        try:
            pdf_modified = self.drive.modified_time(drive_id)
        except HttpError as e:
            logger.error("Error checking PDF modified time for row %s: %s", row_index, e)
            return True
        if pdf_modified is None:
            logger.warning("Row %s: PDF with ID %s not found in Drive. Will re-create.", row_index, drive_id)
            return True

        sheet_dt = parse_timestamp(sheet_last_modified, self.tz)
        if sheet_dt is None:
            logger.warning(
                "Row %s: Invalid Sheet_Last_Modified timestamp: %r. Assuming update needed.",
                row_index, sheet_last_modified,
            )
            return True

        pdf_dt = parse_timestamp(pdf_modified, self.tz)
        if pdf_dt is None or sheet_dt > pdf_dt:
            logger.info(
                "Row %s: Sheet data (Modified: %s) is newer than PDF (Modified: %s). Will update PDF.",
                row_index, sheet_last_modified, pdf_modified,
            )
            return True
        return False

    def process_row(self, schema: SheetSchema, row, row_index: int):
        """Bring one row's PDF in line with the sheet. Returns a short action tag."""
        if not schema.cell(row, FIRST_ITEM_HEADER):
            logger.debug("Row %s: skipped (no Order_item_1)", row_index)
            return "skipped"

        printed = schema.cell(row, PRINTED_HEADER)
        drive_id = schema.cell(row, PDF_DRIVE_ID_HEADER)
        sheet_last_modified = schema.cell(row, Column.SHEET_LAST_MODIFIED)
        status = schema.cell(row, Column.ORDER_UPDATE_STATUS)

        order_num = schema.cell(row, Column.ORDER_NUM)
        if not order_num:
            order_num = str(row_index - 1)
            self.client.write_cell(
                self.tab, schema.index_of(Column.ORDER_NUM), row_index, order_num, input_mode="USER_ENTERED"
            )
            logger.info("   ↳ wrote Order # %s", order_num)

        parent = self.drive.parent_of(drive_id) if drive_id else None

        if status == STATUS_CHECK_RECORD:
            if drive_id and parent == self.incoming_folder:
                logger.info("Row %s: Order flagged for update. Moving PDF %s to the updating folder.", row_index, drive_id)
                self.drive.move(drive_id, self.updating_folder, self.incoming_folder)
                return "moved-to-updating"
            if not drive_id:
                logger.warning("Row %s: Order_Update_Status is ChkRecExist but no PDF_Drive_ID found.", row_index)
            return "held"

        action = "unchanged"
        if drive_id and parent == self.updating_folder:
            logger.info("Row %s: Moving PDF %s back to the incoming folder.", row_index, drive_id)
            self.drive.move(drive_id, self.incoming_folder, self.updating_folder)
            action = "moved-to-incoming"

        if self.needs_pdf(row_index, printed, drive_id, sheet_last_modified):
            now = self.now()
            pdf_bytes = build_order_pdf(schema, row, order_num, self.item_max)
            new_id = self.drive.upload_pdf(
                pdf_bytes, pdf_file_name(order_num, now), self.incoming_folder, existing_id=drive_id or None
            )
            self.client.write_cell(
                self.tab, schema.index_of(PRINTED_HEADER), row_index, watcher_timestamp(self.tz, now)
            )
            self.client.write_cell(self.tab, schema.index_of(PDF_DRIVE_ID_HEADER), row_index, new_id)
            logger.info(" → PDF generated/updated for order %s ✓", order_num)
            action = "generated"
        return action

    def poll_once(self):
        rows = self.client.read(self.tab)
        if len(rows) < 2:
            return {}
        logger.info("Pulled %d data rows", len(rows) - 1)

        try:
            schema = SheetSchema.resolve(rows[0], WATCH_REQUIRED)
        except SchemaError as e:
            logger.error("ERROR: %s", e)
            return {}

        results = {}
        for row_index, row in enumerate(rows[1:], start=2):
            try:
                results[row_index] = self.process_row(schema, row or [], row_index)
            except (HttpError, OrderDashError) as e:
                logger.error("Row %s failed: %s", row_index, e)
                results[row_index] = "error"
        return results

    def run_forever(self, interval=15.0):
        logger.info("Watcher started, polling every %ss", interval)
        while True:
            try:
                self.poll_once()
            except Exception:
                logger.exception("pollSheet error")
            time.sleep(interval)


def main():
    from google_clients import get_google_credentials, open_spreadsheet, get_drive_service
    from sheets_client import SpreadsheetClient

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    if not config.SPREADSHEET_ID:
        raise SystemExit("SPREADSHEET_ID is not set")
    if not (config.INCOMING_FOLDER_ID and config.CUSTOMER_UPDATING_FOLDER_ID):
        raise SystemExit("INCOMING_FOLDER_ID and CUSTOMER_UPDATING_FOLDER_ID must be set")

    creds = get_google_credentials()
    app_settings = config.AppSettings()
    watcher = SheetWatcher(
        client=SpreadsheetClient(open_spreadsheet(config.SPREADSHEET_ID, creds)),
        drive=DriveFiles(get_drive_service(creds)),
        tab=config.LIVE_TAB,
        incoming_folder=config.INCOMING_FOLDER_ID,
        updating_folder=config.CUSTOMER_UPDATING_FOLDER_ID,
        tz=app_settings.timezone,
        item_max=config.LIVE_ITEM_MAX,
    )
    watcher.run_forever(config.WATCH_POLL_SECONDS)


if __name__ == "__main__":
    main()
