#!/usr/bin/env python3
"""
Funding-Body Sync Script

Applies a batch of stage reports exported from the funding body's portal to
the funding compliance records, with:
- CSV or JSON input (columns/keys: status, record_id, external_file_id)
- Portal status codes (ACCEPTE, ENTREE_DECLAREE, ...) or plain stage names
- Out-of-order reports rejected and counted, never forced through
- Summary statistics and a non-zero exit code when anything was rejected

Usage:
    python sync_funding_reports.py path/to/reports.csv
    python sync_funding_reports.py path/to/reports.json --error-log sync_errors.json
"""

from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from pathlib import Path
from typing import List
from uuid import UUID

# Add parent directory to path to import modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from services.funding_sync_service import FundingStageReport, SyncSummary, sync_funding_reports
from services.pipeline_service import build_orchestrator
from services.settings import PipelineSettings


def _report_from_mapping(item: dict, position: int) -> FundingStageReport:
    status = (item.get("status") or "").strip()
    if not status:
        raise ValueError(f"Report {position}: missing status")

    raw_record_id = (item.get("record_id") or "").strip()
    external_file_id = (item.get("external_file_id") or "").strip() or None
    if not raw_record_id and external_file_id is None:
        raise ValueError(f"Report {position}: record_id or external_file_id required")

    try:
        record_id = UUID(raw_record_id) if raw_record_id else None
    except ValueError:
        raise ValueError(f"Report {position}: invalid record_id {raw_record_id!r}") from None

    return FundingStageReport(status=status, record_id=record_id, external_file_id=external_file_id)


def load_reports(path: str) -> List[FundingStageReport]:
    """
    Read reports from a .json (list of objects) or .csv file.

    Raises:
        ValueError: malformed file or report
    """
    file_path = Path(path)

    if file_path.suffix.lower() == ".json":
        with open(file_path, "r", encoding="utf-8") as f:
            items = json.load(f)
        if not isinstance(items, list):
            raise ValueError("JSON input must be a list of report objects")
    else:
        with open(file_path, "r", encoding="utf-8", newline="") as f:
            items = list(csv.DictReader(f))

    return [_report_from_mapping(dict(item), position) for position, item in enumerate(items, start=1)]


def print_summary(summary: SyncSummary) -> None:
    print()
    print("=" * 60)
    print("FUNDING SYNC SUMMARY")
    print("=" * 60)
    print(f"Reports processed: {summary.total}")
    print(f"  Advanced:  {summary.advanced}")
    print(f"  Unchanged: {summary.unchanged}")
    print(f"  Rejected:  {summary.rejected}")
    print(f"  Errors:    {summary.errors}")

    if summary.messages:
        print()
        print("First 5 problems:")
        for message in summary.messages[:5]:
            print(f"  - {message}")
        if len(summary.messages) > 5:
            print(f"  ... and {len(summary.messages) - 5} more")

    print("=" * 60)


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Apply funding-body stage reports to funding compliance records",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Apply a CSV export from the portal
  python sync_funding_reports.py reports.csv

  # Apply a JSON batch and keep the problem list
  python sync_funding_reports.py reports.json --error-log sync_errors.json
        """
    )

    parser.add_argument(
        "reports_path",
        help="Path to the CSV or JSON report file"
    )

    parser.add_argument(
        "--error-log",
        default=None,
        help="Optional path to save rejected/failed report messages as JSON"
    )

    args = parser.parse_args()

    try:
        settings = PipelineSettings.from_env()
        logging.basicConfig(
            level=settings.log_level,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

        reports = load_reports(args.reports_path)
        print(f"Loaded {len(reports)} reports from {args.reports_path}")

        orchestrator = build_orchestrator(settings)
        summary = sync_funding_reports(orchestrator, reports)
        print_summary(summary)

        if args.error_log and summary.messages:
            with open(args.error_log, "w", encoding="utf-8") as f:
                json.dump(summary.messages, f, indent=2)
            print(f"\nError log saved to: {args.error_log}")

        return 1 if summary.rejected or summary.errors else 0

    except KeyboardInterrupt:
        print("\n\nSync interrupted by user")
        return 130

    except Exception as e:
        print(f"\nFATAL ERROR: {e}", file=sys.stderr)
        import traceback
        traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
