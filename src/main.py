"""
Main entry point for the Belt Tracker command-line tool.

Thin wrappers over the ledger services for setup and inspection.

Usage Examples:
    # Create the database and tables
    python run.py init-db

    # Add a compound to the catalog
    python run.py add-compound nk5 Nk-5 90 --category cover

    # List batches (newest first), optionally for one compound
    python run.py batches --code nk5

    # Check whether a day is a working day and already used as a production date
    python run.py check-date 2025-03-10

    # Find a free compound date 3-30 working days before calendaring
    python run.py find-date 2025-04-21

    # Resolve cover/skim production-date wishes into two free days
    python run.py resolve-dates --cover 2025-03-10 --skim 2025-03-10

    # Work out a belt's process schedule from its dispatch date (or any other step)
    python run.py schedule 2025-04-30
    python run.py schedule 2025-04-07 --step calendaring_date

    # Re-check every ledger invariant
    python run.py audit
"""

import argparse
import logging
import sys
from typing import List, Optional

from src.services.compound_batch_service import (
    get_inventory_summary,
    is_production_date_used,
    list_compound_batches,
)
from src.services.compound_catalog_service import create_compound_master
from src.services.database import close_connections, initialize_app_database
from src.services.exceptions import LedgerError
from src.services.ledger_audit_service import audit_ledger
from src.services.logging_utils import configure_logging
from src.services.production_date_service import (
    describe_production_dates,
    find_available_compound_date,
    resolve_production_dates,
)
from src.utils.config import get_config
from src.utils.constants import COMPOUND_CATEGORIES, ROLE_COVER
from src.utils.working_days import (
    PROCESS_DATE_FIELDS,
    format_date,
    is_working_day,
    parse_date,
    process_dates_from_any_date,
)


def cmd_init_db(args) -> int:
    config = get_config()
    print(f"Database: {config.database_url}")
    initialize_app_database()
    print("Database initialized")
    return 0


def cmd_add_compound(args) -> int:
    master = create_compound_master(
        args.code, args.name, args.weight, category=args.category
    )
    print(
        f"Added {master['compound_code']} ({master['compound_name']}), "
        f"{master['default_weight_per_batch']} kg per batch"
    )
    return 0


def cmd_batches(args) -> int:
    batches = list_compound_batches(compound_code=args.code)
    if not batches:
        print("No batches")
        return 0

    print(f"{'ID':>5}  {'Code':<10} {'Date':<10} {'Batches':>7} {'Total':>12} {'Remaining':>12}")
    for batch in batches:
        print(
            f"{batch['id']:>5}  {batch['compound_code']:<10} {batch['date']:<10} "
            f"{batch['batches']:>7} {batch['total_inventory']:>12} "
            f"{batch['inventory_remaining']:>12}"
        )
    if args.code:
        summary = get_inventory_summary(args.code)
        print(
            f"\n{summary['compound_code']}: {summary['inventory_remaining']} kg remaining of "
            f"{summary['total_inventory']} kg in {summary['batch_count']} batch(es)"
        )
    return 0


def cmd_check_date(args) -> int:
    day = parse_date(args.date)
    used_by = is_production_date_used(day)
    print(f"{format_date(day)}: {'working day' if is_working_day(day) else 'not a working day'}")
    print(f"Production date used by: {used_by or 'nothing'}")
    return 0


def cmd_find_date(args) -> int:
    day = find_available_compound_date(args.calendaring_date, exclude_date=args.exclude)
    print(format_date(day))
    return 0


def cmd_resolve_dates(args) -> int:
    dates = describe_production_dates(resolve_production_dates(args.cover, args.skim))
    print(f"cover: {dates['cover_date'] or '-'}")
    print(f"skim:  {dates['skim_date'] or '-'}")
    return 0


def cmd_schedule(args) -> int:
    dates = process_dates_from_any_date(args.step, args.date)
    for name, value in dates.to_dict().items():
        print(f"{name:<26} {value}")
    return 0


def cmd_audit(args) -> int:
    issues = audit_ledger(check_attribution=not args.no_attribution)
    if not issues:
        print("Ledger is consistent")
        return 0
    print(f"{len(issues)} issue(s) found:")
    for issue in issues:
        print(f"  - {issue}")
    return 1


COMMANDS = {
    "init-db": cmd_init_db,
    "add-compound": cmd_add_compound,
    "batches": cmd_batches,
    "check-date": cmd_check_date,
    "find-date": cmd_find_date,
    "resolve-dates": cmd_resolve_dates,
    "schedule": cmd_schedule,
    "audit": cmd_audit,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Compound batch ledger utility for Belt Tracker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("init-db", help="Create the database and tables")

    add_parser = subparsers.add_parser("add-compound", help="Add a compound to the catalog")
    add_parser.add_argument("code", help="Compound code (e.g. nk5)")
    add_parser.add_argument("name", help="Display name (e.g. Nk-5)")
    add_parser.add_argument("weight", help="Default weight per batch in kg")
    add_parser.add_argument(
        "--category", choices=COMPOUND_CATEGORIES, default=ROLE_COVER, help="Compound category"
    )

    batches_parser = subparsers.add_parser("batches", help="List compound batches")
    batches_parser.add_argument("--code", help="Only batches of this compound")

    check_parser = subparsers.add_parser("check-date", help="Check a production date")
    check_parser.add_argument("date", help="Date (YYYY-MM-DD)")

    find_parser = subparsers.add_parser(
        "find-date", help="Find a free compound date before calendaring"
    )
    find_parser.add_argument("calendaring_date", help="Calendaring date (YYYY-MM-DD)")
    find_parser.add_argument("--exclude", help="Date that must not be returned")

    resolve_parser = subparsers.add_parser(
        "resolve-dates", help="Resolve cover/skim production-date wishes"
    )
    resolve_parser.add_argument("--cover", help="Cover production date wish (YYYY-MM-DD)")
    resolve_parser.add_argument("--skim", help="Skim production date wish (YYYY-MM-DD)")

    schedule_parser = subparsers.add_parser(
        "schedule", help="Work out a belt's process schedule from one known step"
    )
    schedule_parser.add_argument("date", help="Date of the known step (YYYY-MM-DD)")
    schedule_parser.add_argument(
        "--step",
        choices=PROCESS_DATE_FIELDS,
        default="dispatch_date",
        help="Which step the date belongs to (default: dispatch_date)",
    )

    audit_parser = subparsers.add_parser("audit", help="Re-check ledger invariants")
    audit_parser.add_argument(
        "--no-attribution",
        action="store_true",
        help="Don't require batch consumption to be explained by belts",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    if args.command != "init-db":
        initialize_app_database()

    try:
        return COMMANDS[args.command](args)
    except LedgerError as e:
        print(f"ERROR: {e}")
        return 1
    except ValueError as e:
        print(f"ERROR: {e}")
        return 1
    finally:
        close_connections()


if __name__ == "__main__":
    sys.exit(main())
