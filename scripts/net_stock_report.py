#!/usr/bin/env python3
"""
Print the net stock of one category (or every category).

Usage:
    python3 scripts/net_stock_report.py
    python3 scripts/net_stock_report.py --category leather
    python3 scripts/net_stock_report.py --category material --json
    python3 scripts/net_stock_report.py --config stock_config/sets/default.yaml
"""

import argparse
import json
import logging
import sys

W = 88


def _print_category(category: str, views: dict) -> None:
    print()
    print(f" {category.upper()} ".center(W, "="))
    if not views:
        print("  No stock recorded.")
        return
    print(f"  {'Item':<32} {'Original':>12} {'Removed':>12} {'Available':>12} {'Used %':>8}")
    print(f"  {'-' * 32} {'-' * 12} {'-' * 12} {'-' * 12} {'-' * 8}")
    for view in views.values():
        flag = " !" if view.is_overdrawn or view.is_degenerate else ""
        print(
            f"  {view.display_name[:32]:<32} {view.total_original:>12} "
            f"{view.total_removed:>12} {view.net_available:>12} "
            f"{view.percentage_consumed:>8}{flag}"
        )


def main() -> int:
    parser = argparse.ArgumentParser(description="Net stock per key")
    parser.add_argument("--category", choices=["leather", "material", "finished_product"])
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--db-url", help="Override the configured database URL")
    parser.add_argument("--json", action="store_true", help="Emit JSON instead of a table")
    args = parser.parse_args()

    logging.disable(logging.WARNING)

    from dataclasses import replace

    from stock_config import get_active_config
    from stock_kernel.domain.values import Category
    from stock_services import StockLedger

    config = get_active_config(args.config)
    if args.db_url:
        config = replace(config, database=replace(config.database, url=args.db_url))

    try:
        ledger = StockLedger.from_config(config, create_schema=False)
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    categories = [Category(args.category)] if args.category else list(Category)
    report = {c.value: ledger.get_net_stock(c) for c in categories}

    if args.json:
        print(json.dumps(
            {c: [v.to_dict() for v in views.values()] for c, views in report.items()},
            indent=2,
        ))
    else:
        for category, views in report.items():
            _print_category(category, views)
        print()
    return 0


if __name__ == "__main__":
    sys.exit(main())
