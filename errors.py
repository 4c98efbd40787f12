class OrderDashError(Exception):
    """Base class for errors raised by the order dashboard backend."""

    status_code = 500
    public_message = "Action failed"

    def __init__(self, message="", details=None):
        super().__init__(message)
        self.details = details if details is not None else message


class SchemaError(OrderDashError):
    """An expected sheet header is missing; the sheet layout is wrong."""

    public_message = "Sheet columns not configured correctly"


class OrderNotFound(OrderDashError):
    """No order at the given row index in the current snapshot."""

    status_code = 404
    public_message = "Order not found"


class SheetAccessError(OrderDashError):
    """A read or write against the spreadsheet failed or timed out."""

    public_message = "Failed to reach Google Sheets"


class PrinterUnavailable(OrderDashError):
    status_code = 503
    public_message = "Printer unavailable"


class PrintDispatchError(OrderDashError):
    status_code = 503
    public_message = "Failed to send to printer"


class PartialWriteError(OrderDashError):
    """The real-world side effect happened but the sheet bookkeeping did not."""

    public_message = "Action completed but the sheet could not be updated"
