from __future__ import annotations

import argparse
import logging
from pathlib import Path

from sheet_import.config import get_settings
from sheet_import.errors import ConfigurationError, RowImportError, SheetImportError
from sheet_import.ingest.readers import list_sheets
from sheet_import.ingest.summary import ImportSummary
from sheet_import.logging_config import configure_logging
from sheet_import.parsing.registry import load_template_file
from sheet_import.parsing.schema import ColumnSpec
from sheet_import.parsing.types import ImportResult
from sheet_import.pipeline.adapters import TemplateAdapter
from sheet_import.pipeline.importer import import_dynamic

logger = logging.getLogger(__name__)


def _parse_mapping(pairs: list[str]) -> list[ColumnSpec]:
    """`SRC=DST` pairs, in the order given."""
    specs: list[ColumnSpec] = []
    for pair in pairs:
        source, sep, target = pair.partition("=")
        if not sep or not source.strip() or not target.strip():
            raise ConfigurationError(f"--map expects SRC=DST, got {pair!r}")
        specs.append(ColumnSpec(source_name=source.strip(), target_field=target.strip()))
    return specs


def _print_failures(result: ImportResult) -> None:
    for f in result.failures:
        code = f.reason_code.value if f.reason_code is not None else "-"
        print(f"  row {f.row_index} [{code}]: {f.error_message}")


def main(argv: list[str] | None = None) -> int:
    """
    A CLI for inspecting and importing spreadsheet/CSV files.

    The `cmd` options are:
    ## sheets:
    Lists the sheets of a workbook as `index: name` lines.
    - `--input` as the path to the file

    ## import:
    Imports one sheet into dict records and prints a summary.
    - `--input` as the path to the file (`.csv`, `.xlsx`, `.xlsm`)
    - `--sheet` as the 0-based sheet index
    - `--map SRC=DST` (repeatable) to map and rename columns, all headers are kept otherwise
    - `--template` as the path to a template JSON file
    - `--no-header` when the first row is data (columns become `Column1..N`)
    - `--start-row` as the 0-based row the table starts at (rows above it are skipped)
    - `--stop-on-first-error` to halt at the first failed row
    - `--unmapped-field` as the record key receiving the unmapped columns as JSON
    - `--sensitive` (repeatable) for column names to redact in that JSON
    - `--show-failures` to print one line per failed row

    Exit codes: 0 when every row imported, 1 when any row failed, 2 on configuration errors.

    ### Example import usage:
    - `sheet-import import --input data/customers.xlsx --sheet 1 --map Name=name --map Age=age --show-failures`
    """
    p = argparse.ArgumentParser(prog="sheet-import")
    sub = p.add_subparsers(dest="cmd", required=True)

    # sheets cmd
    sheets = sub.add_parser("sheets", help="List the sheets of a workbook.")
    sheets.add_argument("--input", required=True, help="Path to input file.")

    # import cmd
    imp = sub.add_parser("import", help="Import one sheet and print a summary.")
    imp.add_argument("--input", required=True, help="Path to input file (CSV, XLSX or XLSM).")
    imp.add_argument("--sheet", type=int, default=0, help="0-based sheet index.")
    imp.add_argument("--map", action="append", default=[], metavar="SRC=DST", help="Column mapping entry.")
    imp.add_argument("--template", default=None, help="Path to a template JSON file.")
    imp.add_argument("--no-header", action="store_true", help="First row is data, not headers.")
    imp.add_argument("--start-row", type=int, default=None, help="0-based row the table starts at.")
    imp.add_argument("--stop-on-first-error", action="store_true")
    imp.add_argument("--unmapped-field", default=None, help="Record key that receives unmapped columns as JSON.")
    imp.add_argument("--sensitive", action="append", default=None, metavar="NAME", help="Column to redact.")
    imp.add_argument("--show-failures", action="store_true")

    args = p.parse_args(argv)

    try:
        settings = get_settings()
    except ConfigurationError as e:
        print(f"error: {e}")
        return 2
    configure_logging(settings.log_level, settings.log_format)

    try:
        if args.cmd == "sheets":
            for index, name in list_sheets(Path(args.input)).items():
                print(f"{index}: {name}")
            return 0

        if args.cmd == "import":
            input_path = Path(args.input)
            mapping = _parse_mapping(args.map) or None
            options = dict(
                sheet_index=args.sheet,
                stop_on_first_error=args.stop_on_first_error,
                settings=settings,
            )
            if args.no_header:
                options["has_header"] = False
            if args.start_row is not None:
                options["start_row"] = args.start_row
            if args.unmapped_field:
                options["unmapped_field_name"] = args.unmapped_field
            if args.sensitive is not None:
                options["sensitive_field_names"] = args.sensitive

            try:
                if args.template:
                    adapter = TemplateAdapter(load_template_file(Path(args.template)))
                    result = adapter.load(input_path, mapping=mapping, **options)
                else:
                    result = import_dynamic(input_path, mapping, **options)
            except RowImportError as e:
                result = e.result
                print(f"stopped: {e}")

            summary = ImportSummary.from_result(result, input_path=str(input_path), sheet_index=args.sheet)
            print(summary.render_one_line())
            if args.show_failures:
                _print_failures(result)
            return 1 if result.failures else 0

    except ConfigurationError as e:
        print(f"error: {e}")
        return 2
    except SheetImportError as e:
        logger.error("import failed: %s", e, exc_info=True)
        print(f"error: {e}")
        return 1

    return 2

