#!/usr/bin/env python3
"""
Order import / allocation command line.

WHAT:
    Runs the same services as the API against the configured DATABASE_URL:
    - import: import a CSV file of orders for a business
    - allocate-pending: allocate every unallocated ad campaign of a business

USAGE:
    python scripts/import_orders.py import --business-id <uuid> orders.csv
    python scripts/import_orders.py import --business-id <uuid> orders.csv --json
    python scripts/import_orders.py allocate-pending --business-id <uuid>

REFERENCES:
    - backend/codboard/services/orders_service.py
    - backend/codboard/services/ad_cost_allocation.py
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from uuid import UUID

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def run_import(business_id: UUID, path: Path, as_json: bool) -> int:
    from codboard.database import get_sync_session
    from codboard.deps import get_settings
    from codboard.exceptions import CodboardError
    from codboard.services.orders_service import OrdersService

    settings = get_settings()
    content = path.read_bytes()

    with get_sync_session() as db:
        service = OrdersService(
            db,
            order_number_prefix=settings.ORDER_NUMBER_PREFIX,
            max_order_number_attempts=settings.ORDER_NUMBER_MAX_ATTEMPTS,
        )
        try:
            report = service.import_orders(business_id, content)
        except CodboardError as e:
            logger.error(f"Import refused: {e.to_user_message()}")
            return 2

    if as_json:
        print(json.dumps(report.to_dict(), ensure_ascii=False, indent=2))
        return 0 if not report.header_errors else 1

    if report.header_errors:
        print("Missing required columns:")
        for column in report.header_errors:
            print(f"  - {column}")
        return 1

    print(f"Imported {report.success} of {report.total_rows} rows ({report.failed} failed)")
    for row in report.errors:
        messages = "; ".join(f"{e['column']}: {e['message']}" for e in row["errors"])
        print(f"  row {row['row_number']}: {messages}")
    return 0


def run_allocate_pending(business_id: UUID) -> int:
    from codboard.database import get_sync_session
    from codboard.services.ad_cost_allocation import AdCostAllocationService

    with get_sync_session() as db:
        result = AdCostAllocationService(db).allocate_all_pending_campaigns(business_id)

    print(f"Orders updated: {result.orders_updated}, cost allocated: {result.total_cost_allocated}")
    for error in result.errors:
        print(f"  failed: {error}")
    return 0 if result.success else 1


def main() -> int:
    parser = argparse.ArgumentParser(description="codboard order import and ad cost allocation")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Command")

    import_parser = subparsers.add_parser("import", help="Import a CSV file of orders")
    import_parser.add_argument("--business-id", required=True, type=UUID, help="Target business id")
    import_parser.add_argument("--json", action="store_true", help="Print the full report as JSON")
    import_parser.add_argument("file", type=Path, help="CSV file to import")

    allocate_parser = subparsers.add_parser("allocate-pending", help="Allocate all unallocated campaigns")
    allocate_parser.add_argument("--business-id", required=True, type=UUID, help="Target business id")

    args = parser.parse_args()

    if args.command == "import":
        if not args.file.is_file():
            parser.error(f"file not found: {args.file}")
        return run_import(args.business_id, args.file, args.json)
    return run_allocate_pending(args.business_id)


if __name__ == "__main__":
    sys.exit(main())
