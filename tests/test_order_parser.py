from __future__ import annotations

import pytest

from conftest import LIVE_HEADER, make_row
from errors import SchemaError
from order_parser import (
    Column, SheetSchema, STATUS_NONE, WRITE_REQUIRED, parse_orders, parse_count, parse_flag,
)


def test_minimal_header_parses_with_defaults():
    rows = [["OrderNum", "Order_item_1", "Qty_1"], ["1001", "Pizza"]]

    (order,) = parse_orders(rows)

    assert order.rowIndex == 2
    assert order.orderNum == "1001"
    assert order.orderNumIsTemporary is False
    assert order.orderUpdateStatus == STATUS_NONE
    assert order.printedCount == 0
    assert order.printedTimestamps == []
    assert order.cancelled is False and order.orderProcessed is False
    assert [(i.name, i.qty, i.modifier) for i in order.items] == [("Pizza", "1", "")]


def test_missing_order_num_header_fails_the_whole_fetch():
    with pytest.raises(SchemaError):
        parse_orders([["Order_item_1", "Qty_1"], ["Pizza", "2"]])


def test_missing_write_columns_only_fail_when_required():
    header = ["OrderNum", "Order_Processed"]
    assert parse_orders([header, ["7", "Y"]])[0].orderProcessed is True
    with pytest.raises(SchemaError) as exc:
        SheetSchema.resolve(header, WRITE_REQUIRED)
    assert "Printed_Count" in str(exc.value)


def test_item_gaps_do_not_hide_later_items():
    row = make_row(
        OrderNum="55",
        Order_item_1="Burger", Qty_1="2", modifier_1="no onions",
        Order_item_3="Fries",
    )
    (order,) = parse_orders([LIVE_HEADER, row])

    assert [(i.name, i.qty, i.modifier) for i in order.items] == [
        ("Burger", "2", "no onions"),
        ("Fries", "1", ""),
    ]


def test_item_scan_stops_at_max_items():
    row = make_row(OrderNum="1", Order_item_1="A", Order_item_2="B", Order_item_3="C")
    (order,) = parse_orders([LIVE_HEADER, row], max_items=2)
    assert [i.name for i in order.items] == ["A", "B"]


def test_blank_order_num_gets_a_temporary_one():
    (order,) = parse_orders([LIVE_HEADER, make_row(Order_item_1="Soup")])
    assert order.orderNumIsTemporary is True
    assert order.orderNum.startswith("TEMP-")
    assert order.orderNum.endswith("-2")


def test_header_matching_is_case_insensitive():
    rows = [["ordernum", "Order_processed", "CANCELLED"], ["9", "y", "true"]]
    (order,) = parse_orders(rows)
    assert order.orderNum == "9"
    assert order.orderProcessed is True
    assert order.cancelled is True


def test_derived_columns_parse():
    row = make_row(
        OrderNum="12",
        Printed_Count="2",
        Printed_Timestamps="2025-06-05T13:00:00.000Z, 2025-06-05T14:00:00.000Z",
        Sheet_Last_Modified="2025-06-05T14:00:00.000Z",
        Order_Update_Status="ChkRecExist",
    )
    (order,) = parse_orders([LIVE_HEADER, row])
    assert order.printedCount == 2
    assert order.printedTimestamps == ["2025-06-05T13:00:00.000Z", "2025-06-05T14:00:00.000Z"]
    assert order.orderUpdateStatus == "ChkRecExist"
    d = order.to_dict()
    assert d["id"] == 2 and d["items"] == []


def test_short_rows_and_empty_tab():
    assert parse_orders([]) == []
    assert parse_orders([LIVE_HEADER]) == []
    (order,) = parse_orders([LIVE_HEADER, ["Food", "", "", "Pickup"]])
    assert order.category == "Food"
    assert order.orderType == "Pickup"
    assert order.orderNumIsTemporary is True


def test_flag_and_count_helpers():
    assert parse_flag("TRUE") and parse_flag(" y ")
    assert not parse_flag("FALSE") and not parse_flag("") and not parse_flag("N")
    assert parse_count("3") == 3
    assert parse_count("2.0") == 2
    assert parse_count("abc") == 0
    assert parse_count("-4") == 0


def test_schema_cell_lookup():
    schema = SheetSchema(["OrderNum", " Caller_name "])
    assert Column.CALLER_NAME in schema
    assert schema.cell(["1"], Column.CALLER_NAME) == ""
    assert schema.cell(["1", "  Ann "], "caller_name") == "Ann"
    assert schema.index_of("nope") is None


def test_row_that_fails_to_parse_gets_blank_defaults(monkeypatch):
    import order_parser

    real_extract = order_parser.extract_items

    def extract(get, max_items):
        if get("OrderNum") == "bad":
            raise ValueError("unreadable item cells")
        return real_extract(get, max_items)
    monkeypatch.setattr(order_parser, "extract_items", extract)

    rows = [
        LIVE_HEADER,
        make_row(OrderNum="1001", Order_item_1="Wings"),
        make_row(OrderNum="bad", Order_item_1="Fries", Caller_name="Sam"),
        make_row(OrderNum="1003", Order_item_1="Tea"),
    ]

    first, broken, last = parse_orders(rows)

    assert (first.orderNum, [i.name for i in first.items]) == ("1001", ["Wings"])
    assert (last.orderNum, [i.name for i in last.items]) == ("1003", ["Tea"])
    assert broken.rowIndex == 3
    assert broken.orderNumIsTemporary is True
    assert broken.orderNum.startswith("TEMP-")
    assert broken.callerName == ""
    assert broken.items == []
