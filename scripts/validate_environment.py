#!/usr/bin/env python3
"""Validate local workspace booking environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import date, timedelta
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from workspace_booking.domain.clock import ClockFormatError, LocalClock
from workspace_booking.repository.data_repository import DataRepository
from workspace_booking.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="workspace-booking-env-")

    # CHECK 1 - Python version >= 3.11
    if sys.version_info >= (3, 11):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.11",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2 - Required packages importable with versions
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("pandas", "pandas"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except (ImportError, PackageNotFoundError) as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    try:
        base_settings = get_settings()

        # CHECK 3 - Timezone resolvable and local dates round-trip for a year
        try:
            clock = LocalClock(base_settings.local_timezone)
            start = date(2025, 1, 1)
            for offset in range(366):
                local_date = (start + timedelta(days=offset)).isoformat()
                if clock.to_local_date(clock.to_instant(local_date)) != local_date:
                    raise RuntimeError(f"{local_date} shifted through {base_settings.local_timezone}")
            ok, line = _print_result(
                "Clock round-trip",
                True,
                f": {base_settings.local_timezone}",
            )
        except (ClockFormatError, RuntimeError) as exc:
            ok, line = _print_result("Clock round-trip", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        temp_db_path = Path(temp_dir) / "workspace_booking_validation.db"
        validation_settings = replace(base_settings, database_path=temp_db_path)
        repository = DataRepository(validation_settings)

        # CHECK 4 - Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except RuntimeError as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5 - Default area seeding
        try:
            repository.seed_default_areas()
            areas = repository.list_areas()
            if len(areas) != 3:
                raise RuntimeError(f"expected 3 default areas, got {len(areas)}")
            ok, line = _print_result(
                "Default areas",
                True,
                ": " + ", ".join(area.name for area in areas),
            )
        except Exception as exc:
            ok, line = _print_result("Default areas", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Workspace Booking Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
