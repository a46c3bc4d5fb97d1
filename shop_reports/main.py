"""
CLI entry point for Shop Reports.

Usage:
    shop-reports orders --format csv
    shop-reports products --format xlsx --filter minPrice=10 --filter active=true
    shop-reports sales --format pdf --filter startDate=2025-01-01 --filter interval=weekly
    shop-reports inventory --all-formats            # csv, xlsx, pdf and json
    shop-reports vendors --format json --output-dir /tmp/exports
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Optional

from shop_reports.export import RENDERER_REGISTRY
from shop_reports.export.errors import ExportError
from shop_reports.export.models import OutputFormat, ReportKind
from shop_reports.export.orchestrator import ExportOrchestrator
from shop_reports.export.staging import StagingManager
from shop_reports.infra.config import get_data_source, get_settings


def _parse_filter(text: str) -> tuple[str, str]:
    key, sep, value = text.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError(f"expected key=value, got {text!r}")
    return key.strip(), value.strip()


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Export shop data as CSV, Excel, PDF or JSON reports.",
    )
    parser.add_argument(
        "kind", choices=[k.value for k in ReportKind],
        help="Report to export",
    )
    fmt = parser.add_mutually_exclusive_group()
    fmt.add_argument(
        "-f", "--format", default=OutputFormat.CSV.value,
        help=f"Output format ({', '.join(f.value for f in RENDERER_REGISTRY)}; default: csv)",
    )
    fmt.add_argument(
        "--all-formats", action="store_true",
        help="Render the report in every supported format",
    )
    parser.add_argument(
        "--filter", dest="filters", action="append", type=_parse_filter, default=[],
        metavar="KEY=VALUE",
        help="Filter criterion, repeatable (e.g. status=DELIVERED)",
    )
    parser.add_argument(
        "-o", "--output-dir", type=str, default=None,
        help="Export directory (default: EXPORT_DIR or ./exports)",
    )
    parser.add_argument(
        "--log-level", default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: WARNING)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    """Run one or more exports and print where the files landed."""
    args = _parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    settings = get_settings()
    filters = dict(args.filters)
    try:
        formats = (
            list(RENDERER_REGISTRY) if args.all_formats else [OutputFormat.parse(args.format)]
        )
    except ExportError as exc:
        print(f"❌ {exc}")
        sys.exit(1)

    failures: list[str] = []
    try:
        source = get_data_source(settings)
    except ExportError as exc:
        print(f"❌ {exc}")
        sys.exit(1)

    try:
        staging = StagingManager(
            args.output_dir or settings.export_dir,
            unique_suffix=settings.export_unique_suffix,
        )
        orchestrator = ExportOrchestrator(source, staging, settings)
        for fmt in formats:
            try:
                artifact = orchestrator.export(args.kind, fmt, filters)
            except ExportError as exc:
                print(f"❌ {args.kind} → {fmt.value}: {exc}")
                failures.append(fmt.value)
                continue
            print(
                f"✅ {artifact.row_count} {args.kind} rows saved to {artifact.path} "
                f"({artifact.size_bytes} bytes)"
            )
    finally:
        source.close()

    if failures:
        sys.exit(1)


if __name__ == "__main__":
    main()
