#!/usr/bin/env python3
"""Validate local availability-engine environment readiness."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.repository.data_repository import DataRepository
from backend.services.availability_service import AvailabilityService
from backend.utils.config import get_settings

SEPARATOR_LINE = "=" * 44

# Monday with seeded Pilates Caracas hours (06:00-21:00, 60 min, capacity 5).
SAMPLE_DATE = date(2026, 1, 26)
SAMPLE_NOW = datetime(2026, 1, 1, 8, 0)


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="availability-env-")

    # CHECK 1 - Python version >= 3.10
    if sys.version_info >= (3, 10):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.10",
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
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    from importlib.metadata import PackageNotFoundError, version

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
        validation_settings = replace(
            get_settings(),
            database_path=Path(temp_dir) / "availability_validation.db",
        )
        repository = DataRepository(validation_settings)

        # CHECK 3 - Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except Exception as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 4 - Demo schedule seeding
        try:
            seeded_rules = repository.seed_demo_data()
            if seeded_rules == 0:
                raise RuntimeError("no availability rules were seeded")
            ok, line = _print_result("Demo schedules", True, f": {seeded_rules} rules")
        except Exception as exc:
            ok, line = _print_result("Demo schedules", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5 - Sample slot query
        try:
            service = AvailabilityService(repository=repository, settings=validation_settings)
            day = service.get_slots("pilates-clase", 6, SAMPLE_DATE, now=SAMPLE_NOW)
            if len(day.slots) != 15:
                raise RuntimeError(f"expected 15 slots, got {len(day.slots)}")
            ok, line = _print_result(
                "Slot query",
                True,
                f": {len(day.slots)} slots on {SAMPLE_DATE.isoformat()}",
            )
        except Exception as exc:
            ok, line = _print_result("Slot query", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Availability Engine Environment Validation")
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
