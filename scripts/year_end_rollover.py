"""
Leave year-end rollover.

    python scripts/year_end_rollover.py --year 2025 --dry-run

Defaults to last year. Run without --dry-run to write carried-over days
into the following year's balances.
"""
import argparse
from datetime import date

from hrcore.core.logging import setup_logging
from hrcore.database import SessionLocal
from hrcore.services.rollover_service import rollover


def main():
    parser = argparse.ArgumentParser(description="Carry unused leave into the next year")
    parser.add_argument("--year", type=int, default=date.today().year - 1, help="source year (default: last year)")
    parser.add_argument("--dry-run", action="store_true", help="report only, change nothing")
    args = parser.parse_args()

    setup_logging()
    db = SessionLocal()
    try:
        report = rollover(db, args.year, dry_run=args.dry_run)
    finally:
        db.close()

    print(f"\n=== Leave Year-End Rollover ===")
    print(f"Source year: {report.from_year} -> Target year: {report.target_year}")
    print(f"Mode: {'DRY RUN (no changes)' if report.dry_run else 'LIVE'}\n")
    print(f"{'Employee':<35} {'Type':<6} {'Unused':<8} {'Carried':<8} Warning")
    print("-" * 80)
    if not report.entries:
        print("No carry-over eligible balances found.")
    for entry in report.entries:
        who = f"{entry.employee_name} (#{entry.employee_id})"
        print(f"{who:<35} {entry.leave_type_code:<6} {str(entry.unused):<8} {str(entry.carried):<8} {entry.warning or ''}")

    print(f"\nEmployees processed: {report.employees_processed}")
    print(f"Total days carried over: {report.total_carried}")
    for error in report.errors:
        print(f"[Error] employee {error['employee_id']}: {error['error']}")
    if report.dry_run:
        print("\n[DRY RUN] No changes were made. Run without --dry-run to apply.")


if __name__ == "__main__":
    main()
