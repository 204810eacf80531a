"""Command-line entrypoint for statement ingestion."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from statement_ingest.application.dto import IngestionRequest
from statement_ingest.application.use_cases import IngestFileUseCase, IngestionContext
from statement_ingest.config import SETTINGS
from statement_ingest.domain.errors import IngestionError
from statement_ingest.domain.models import SourceLayout
from statement_ingest.infrastructure.storage.json_store import JsonFileRecordStore
from statement_ingest.presentation.summary_report import render_preview, render_summary

LAYOUT_CHOICES = {
    "nse": SourceLayout.EXCHANGE_A,
    "bse": SourceLayout.EXCHANGE_B,
    "master": SourceLayout.RATINGS_MASTER,
    "holdings": SourceLayout.HOLDINGS_STATEMENT,
}


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingest exchange trade reports, rating masters and holdings statements")
    parser.add_argument("files", nargs="+", type=Path, help="Spreadsheet or CSV files to ingest")
    parser.add_argument("--data-dir", type=Path, help="Directory for the JSON record store")
    parser.add_argument("--layout", choices=sorted(LAYOUT_CHOICES), help="Skip detection and force a layout")
    parser.add_argument("--preview", action="store_true", help="Parse and show records without storing them")
    parser.add_argument(
        "--reject-low-confidence",
        action="store_true",
        help="Refuse sheets whose layout could only be guessed",
    )
    parser.add_argument("-v", "--verbose", action="count", default=0, help="More logging (-vv for debug)")
    return parser.parse_args(argv)


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    _configure_logging(args.verbose)

    settings = SETTINGS
    if args.data_dir:
        settings = settings.with_overrides(data_dir=args.data_dir)
    if args.reject_low_confidence:
        settings = settings.with_overrides(reject_low_confidence=True)

    context = IngestionContext.for_store(JsonFileRecordStore(settings.data_dir), settings)
    use_case = IngestFileUseCase(context)
    layout = LAYOUT_CHOICES.get(args.layout) if args.layout else None

    exit_code = 0
    for path in args.files:
        request = IngestionRequest(source=path, filename=path.name, layout_override=layout)
        try:
            if args.preview:
                print(render_preview(use_case.preview(request)))
            else:
                print(render_summary(use_case.execute(request)))
        except IngestionError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            exit_code = 1
        print()
    return exit_code


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
