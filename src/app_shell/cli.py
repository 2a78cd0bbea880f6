import argparse
import logging
import sys
from pathlib import Path

from src.adapters.clock import SystemClock
from src.adapters.sqlite.document_store import SQLiteDocumentStore
from src.adapters.sqlite.migrator import SQLiteMigrator
from src.api.deps import get_settings
from src.components.purchases import PurchaseRecorder
from src.components.purchases import load_config_from_rules as load_purchases_config
from src.components.reconcile import load_config_from_rules as load_reconcile_config
from src.components.reconcile import reconcile
from src.rules.loader import load_rules
from src.rules.models import Rules

logger = logging.getLogger("cli")


def get_rules(rules_path: Path) -> Rules:
    if not rules_path.exists():
        logger.error("Rules file %s not found.", rules_path)
        sys.exit(1)
    try:
        return load_rules(rules_path)
    except ValueError as e:
        logger.error("%s", e)
        sys.exit(1)


def handle_migrate(db_path: str, migrations_dir: Path) -> None:
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    applied = SQLiteMigrator(db_path, str(migrations_dir)).run_migrations()
    print(f"Applied {len(applied)} migrations.")
    for name in applied:
        print(f"  {name}")


def handle_reconcile(db_path: str, rules: Rules, args: argparse.Namespace) -> int:
    store = SQLiteDocumentStore(db_path)
    recorder = PurchaseRecorder(store, SystemClock(), load_purchases_config(rules))
    report = reconcile(store, recorder, load_reconcile_config(rules), buyer_ids=args.buyer or None)

    print(
        f"Scanned {report.scanned}: {report.upserted} upserted, {report.skipped} skipped, "
        f"{report.filtered} filtered, {report.errors} errors."
    )
    if args.verbose:
        for detail in report.details:
            suffix = f" ({detail.reason})" if detail.reason else ""
            print(f"  {detail.action:<9} {detail.path}/{detail.legacy_id}{suffix}")
    return 1 if report.errors else 0


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO)

    parser = argparse.ArgumentParser(description="Bundle fulfillment CLI")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # migrate
    subparsers.add_parser("migrate", help="Apply SQLite migrations")

    # reconcile
    reconcile_parser = subparsers.add_parser(
        "reconcile", help="Move legacy purchases into the unified stores"
    )
    reconcile_parser.add_argument(
        "--buyer", action="append", metavar="UID", help="Only this buyer (repeatable)"
    )
    reconcile_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Print one line per entry"
    )

    args = parser.parse_args(argv)
    settings = get_settings()

    if args.command == "migrate":
        handle_migrate(settings.db_path, settings.migrations_dir)
        return 0

    rules = get_rules(settings.rules_path)
    return handle_reconcile(settings.db_path, rules, args)


if __name__ == "__main__":
    sys.exit(main())
