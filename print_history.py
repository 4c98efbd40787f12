import os
import json
import logging

logger = logging.getLogger(__name__)


class PrintHistoryLog:
    """
    Local append-only record of fire/reprint actions, kept as a JSON list in a
    flat file: ``[{"id", "orderNum", "printedAt", "mode"}, ...]``.

    The file is read once at construction and rewritten in full on every
    append. It is a recovery aid independent of the sheet and a fallback
    source of print timestamps for older rows.
    """

    def __init__(self, path):
        self.path = path
        self.entries = []
        self._ensure_file()
        self.load()

    def _ensure_file(self):
        if os.path.exists(self.path):
            return
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump([], f)
        logger.info("Created print history file at %s", self.path)

    def load(self):
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                parsed = json.load(f)
        except (OSError, ValueError) as e:
            logger.error("Error loading %s: %s", self.path, e)
            parsed = []
        self.entries = parsed if isinstance(parsed, list) else []
        return self.entries

    def append(self, row_index, order_num, printed_at, mode):
        entry = {
            "id": row_index,
            "orderNum": order_num,
            "printedAt": printed_at,
            "mode": mode,
        }
        self.entries.append(entry)
        self.save()
        return entry

    def save(self):
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self.entries, f, indent=2)

    def timestamps_for(self, row_index, order_num):
        """
        printedAt values logged for this order, oldest first. Matches on both
        row index and order number since row indices are reused after archival.
        """
        return [
            e.get("printedAt")
            for e in self.entries
            if e.get("id") == row_index and str(e.get("orderNum")) == str(order_num) and e.get("printedAt")
        ]
