"""Main entry point for the test sheet engine"""

import argparse
import json
import sys
from pathlib import Path

from config import settings
from core.enums import ExportFormat
from core.exceptions import SheetError
from core.models import SheetData
from engine.export import export_csv, export_xlsx
from engine.grid import Grid
from utils.logging import configure_logging


def load_sheet_data(path: Path) -> SheetData:
    """Read a sheet document; accepts bare sheet data or a full test sheet."""
    payload = json.loads(path.read_text(encoding="utf-8"))
    if isinstance(payload, dict) and "cells" not in payload and "data" in payload:
        payload = payload["data"]
    return SheetData.model_validate(payload)


def serve(args) -> int:
    import uvicorn

    uvicorn.run(
        "web.api:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=settings.LOG_LEVEL.lower()
    )
    return 0


def recalc(args) -> int:
    grid = Grid.from_data(load_sheet_data(args.file))
    grid.recalculate_all()
    output = grid.to_data().model_dump_json(by_alias=True, exclude_none=True, indent=2)

    if args.output:
        args.output.write_text(output, encoding="utf-8")
        errors = sum(1 for cell in grid if cell.has_error)
        print(f"✓ Recalculated {len(grid)} cells ({errors} in error)")
        print(f"  Output: {args.output}")
    else:
        print(output)
    return 0


def export(args) -> int:
    grid = Grid.from_data(load_sheet_data(args.file))
    fmt = ExportFormat(args.format)

    if fmt == ExportFormat.XLSX:
        args.output.write_bytes(export_xlsx(grid, title=args.file.stem))
    else:
        args.output.write_text(export_csv(grid), encoding="utf-8", newline="")

    print(f"✓ Exported {args.file} as {fmt.value}")
    print(f"  Output: {args.output}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Test Sheets - spreadsheet cell engine and sheet service"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP API")
    serve_parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")
    serve_parser.set_defaults(handler=serve)

    recalc_parser = subparsers.add_parser("recalc", help="Re-evaluate every formula in a sheet file")
    recalc_parser.add_argument("file", type=Path, help="Sheet JSON file")
    recalc_parser.add_argument("--output", type=Path, help="Write the result here instead of stdout")
    recalc_parser.set_defaults(handler=recalc)

    export_parser = subparsers.add_parser("export", help="Export resolved values to CSV or XLSX")
    export_parser.add_argument("file", type=Path, help="Sheet JSON file")
    export_parser.add_argument(
        "--format",
        choices=[f.value for f in ExportFormat],
        default=ExportFormat.CSV.value,
        help="Output format"
    )
    export_parser.add_argument("--output", type=Path, required=True, help="Output file path")
    export_parser.set_defaults(handler=export)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(settings.LOG_LEVEL)

    file = getattr(args, "file", None)
    if file is not None and not file.exists():
        print(f"Error: File not found: {file}")
        return 1

    try:
        return args.handler(args)
    except ValueError as e:
        print(f"\n✗ Invalid sheet file: {e}")
        return 1
    except SheetError as e:
        print(f"\n✗ {e.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
