"""
Row parser: sheet header + data rows → typed Order records.

The live tab is a duck-typed table whose columns are found by header name.
``SheetSchema`` resolves the header once per fetch into a fixed index table;
a required column that is absent is a ``SchemaError`` for the whole fetch,
while a blank or malformed cell only defaults that one field.
"""
import enum
import logging
import uuid
from dataclasses import dataclass, field, asdict

from errors import SchemaError

logger = logging.getLogger(__name__)

STATUS_NONE = "NONE"
STATUS_CHECK_RECORD = "ChkRecExist"


class Column(str, enum.Enum):
    CATEGORY = "Category"
    CANCELLED = "Cancelled"
    ORDER_PROCESSED = "Order_Processed"
    ORDER_TYPE = "Order_type"
    ORDER_UPDATE_STATUS = "Order_Update_Status"
    TIME_ORDERED = "Time_ordered"
    EMAIL = "Email"
    ORDER_NUM = "OrderNum"
    CALLER_NAME = "Caller_name"
    CALLER_PHONE = "Caller_phone"
    CALLER_ADDRESS = "Caller_address"
    CALLER_CITY = "Caller_City"
    CALLER_STATE = "Caller_State"
    CALLER_ZIP = "Caller_Zip"
    SHEET_LAST_MODIFIED = "Sheet_Last_Modified"
    PRINTED_COUNT = "Printed_Count"
    PRINTED_TIMESTAMPS = "Printed_Timestamps"
    ORDER_SUMMARY = "orderSummary"


ITEM_PREFIX = "Order_item_"
QTY_PREFIX = "Qty_"
MODIFIER_PREFIX = "modifier_"

# Columns a live-tab fetch cannot do without
READ_REQUIRED = (Column.ORDER_NUM,)

# Columns fire/reprint write back in one batch
WRITE_REQUIRED = (
    Column.ORDER_PROCESSED,
    Column.PRINTED_COUNT,
    Column.PRINTED_TIMESTAMPS,
    Column.SHEET_LAST_MODIFIED,
)


def _norm(name) -> str:
    return " ".join(str(name or "").strip().lower().split())


class SheetSchema:
    """Header name → 0-based column index, matched case-insensitively."""

    def __init__(self, header):
        self.header = [str(h or "").strip() for h in (header or [])]
        self._index = {}
        for i, h in enumerate(self.header):
            # first occurrence wins when a header is duplicated
            self._index.setdefault(_norm(h), i)

    @classmethod
    def resolve(cls, header, required=READ_REQUIRED):
        schema = cls(header)
        missing = [getattr(c, "value", c) for c in required if c not in schema]
        if missing:
            raise SchemaError(f"Expected sheet headers missing: {', '.join(missing)}")
        return schema

    def __contains__(self, name):
        return self.index_of(name) is not None

    def index_of(self, name):
        if isinstance(name, Column):
            name = name.value
        return self._index.get(_norm(name))

    def cell(self, row, name) -> str:
        idx = self.index_of(name)
        if idx is None or idx >= len(row):
            return ""
        val = row[idx]
        return "" if val is None else str(val).strip()


@dataclass
class OrderItem:
    name: str
    qty: str = "1"
    modifier: str = ""


@dataclass
class Order:
    rowIndex: int
    orderNum: str = ""
    category: str = ""
    cancelled: bool = False
    orderProcessed: bool = False
    orderType: str = ""
    orderUpdateStatus: str = STATUS_NONE
    timeOrdered: str = ""
    email: str = ""
    callerName: str = ""
    callerPhone: str = ""
    callerAddress: str = ""
    callerCity: str = ""
    callerState: str = ""
    callerZip: str = ""
    sheetLastModified: str = ""
    printedCount: int = 0
    printedTimestamps: list = field(default_factory=list)
    orderSummary: str = ""
    items: list = field(default_factory=list)
    orderNumIsTemporary: bool = False

    @property
    def id(self) -> int:
        return self.rowIndex

    def to_dict(self) -> dict:
        out = asdict(self)
        out["id"] = self.rowIndex
        return out


def synthetic_order_num(row_index: int) -> str:
    return f"TEMP-{uuid.uuid4().hex[:8]}-{row_index}"


def parse_flag(text) -> bool:
    return str(text or "").strip().upper() in ("TRUE", "Y")


def parse_count(text) -> int:
    try:
        return max(int(float(str(text).strip() or "0")), 0)
    except (TypeError, ValueError):
        return 0


def parse_timestamp_list(text) -> list:
    return [t.strip() for t in str(text or "").split(",") if t.strip()]


def extract_items(get, max_items):
    """
    Collect {name, qty, modifier} for indices 1..max_items. Each index is
    checked on its own, so a blank item 3 does not hide item 4.
    """
    items = []
    for n in range(1, max_items + 1):
        name = get(f"{ITEM_PREFIX}{n}")
        if not name:
            continue
        items.append(OrderItem(
            name=name,
            qty=get(f"{QTY_PREFIX}{n}") or "1",
            modifier=get(f"{MODIFIER_PREFIX}{n}") or "",
        ))
    return items


def parse_row(schema: SheetSchema, row, row_index: int, max_items: int = 20) -> Order:
    def get(name):
        return schema.cell(row, name)

    sheet_num = get(Column.ORDER_NUM)
    return Order(
        rowIndex=row_index,
        orderNum=sheet_num or synthetic_order_num(row_index),
        orderNumIsTemporary=not sheet_num,
        category=get(Column.CATEGORY),
        cancelled=parse_flag(get(Column.CANCELLED)),
        orderProcessed=parse_flag(get(Column.ORDER_PROCESSED)),
        orderType=get(Column.ORDER_TYPE),
        orderUpdateStatus=get(Column.ORDER_UPDATE_STATUS) or STATUS_NONE,
        timeOrdered=get(Column.TIME_ORDERED),
        email=get(Column.EMAIL),
        callerName=get(Column.CALLER_NAME),
        callerPhone=get(Column.CALLER_PHONE),
        callerAddress=get(Column.CALLER_ADDRESS),
        callerCity=get(Column.CALLER_CITY),
        callerState=get(Column.CALLER_STATE),
        callerZip=get(Column.CALLER_ZIP),
        sheetLastModified=get(Column.SHEET_LAST_MODIFIED),
        printedCount=parse_count(get(Column.PRINTED_COUNT)),
        printedTimestamps=parse_timestamp_list(get(Column.PRINTED_TIMESTAMPS)),
        orderSummary=get(Column.ORDER_SUMMARY),
        items=extract_items(get, max_items),
    )


def parse_orders(rows, max_items: int = 20, required=READ_REQUIRED):
    """
    Parse a full tab (header first) into Orders. Row numbers start at 2.
    Raises SchemaError when a required header is missing; a row that fails
    to parse degrades to a blank Order instead of aborting the fetch.
    """
    if not rows:
        return []
    schema = SheetSchema.resolve(rows[0], required)
    orders = []
    for row_index, row in enumerate(rows[1:], start=2):
        try:
            orders.append(parse_row(schema, row or [], row_index, max_items))
        except Exception:
            logger.warning("Row %s could not be parsed; using blank defaults", row_index, exc_info=True)
            orders.append(Order(
                rowIndex=row_index,
                orderNum=synthetic_order_num(row_index),
                orderNumIsTemporary=True,
            ))
    return orders
