#!/usr/bin/env python3
"""Run the reservation conflict audit and print its JSON report.

Exit codes:
    0  no failures
    1  one or more removals failed (partial failure)
    2  conflicts remain after resolution
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from workspace_booking.domain.clock import LocalClock
from workspace_booking.repository.data_repository import DataRepository
from workspace_booking.services.audit_service import AuditPostconditionError, ConflictAuditService
from workspace_booking.utils.config import get_settings
from workspace_booking.utils.logger import get_logger


logger = get_logger(__name__)

EXIT_OK = 0
EXIT_PARTIAL_FAILURE = 1
EXIT_POSTCONDITION_FAILED = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be removed without deleting anything.",
    )
    parser.add_argument(
        "--database",
        type=Path,
        default=None,
        help="SQLite database path (defaults to DATABASE_PATH).",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    if args.database is not None:
        settings = replace(settings, database_path=args.database)

    repository = DataRepository(settings)
    repository.initialize_database()
    service = ConflictAuditService(repository, LocalClock(settings.local_timezone))

    try:
        report = service.run_conflict_audit(dry_run=args.dry_run)
    except AuditPostconditionError as exc:
        logger.error("%s", exc)
        print(json.dumps(exc.report.to_dict(), indent=2))
        return EXIT_POSTCONDITION_FAILED

    print(json.dumps(report.to_dict(), indent=2))
    if report.partial_failure:
        return EXIT_PARTIAL_FAILURE
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
