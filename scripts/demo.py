import sys
import tempfile
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Optional

from openpyxl import Workbook

from sheet_import.config import get_settings
from sheet_import.ingest.summary import ImportSummary
from sheet_import.logging_config import configure_logging
from sheet_import.pipeline.importer import import_typed

# small end-to-end run against a generated workbook


@dataclass
class Order:
    order_no: str = ""
    placed_on: Optional[date] = None
    amount: Decimal = Decimal("0")
    paid: bool = False
    raw_data_json: Optional[str] = None


ROWS = [
    ["Order No", "Placed On", "Amount", "Paid", "Card Number", "Channel"],
    ["SO-1001", "2024-03-01", "19.90", "yes", "4111111111111111", "web"],
    ["SO-1002", "2024/03/02", "n/a", "no", "4000000000000002", "store"],
    [None, None, None, None, None, None],
    ["SO-1003", 45352, "7", "是", "", "web"],
]


def write_workbook(path: Path) -> None:
    wb = Workbook()
    ws = wb.active
    ws.title = "Orders"
    for row in ROWS:
        ws.append(row)
    wb.save(path)


def main() -> int:
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_format)

    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "orders.xlsx"
        write_workbook(path)

        result = import_typed(
            path,
            Order,
            {"Order No": "order_no", "Placed On": "placed_on", "Amount": "amount", "Paid": "paid"},
            unmapped_field_name="raw_data_json",
            sensitive_field_names=["Card Number"],
            settings=settings,
        )

    print(ImportSummary.from_result(result, input_path="orders.xlsx", sheet_index=0).render_one_line())
    for order in result.items:
        print(f"  {order.order_no} {order.placed_on} {order.amount} paid={order.paid} extra={order.raw_data_json}")
    for f in result.failures:
        code = f.reason_code.value if f.reason_code else "-"
        print(f"  row {f.row_index} [{code}]: {f.error_message}")

    return 0 if result.items else 1


if __name__ == "__main__":
    sys.exit(main())
