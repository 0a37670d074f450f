#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import logging
from typing import Any, Dict, Optional

from ledger.errors import LedgerError
from ledger.service import LedgerService


def _summary(snapshot) -> Dict[str, Any]:
    data = snapshot.to_document()
    data.pop("invoices", None)
    data.pop("purchases", None)
    return data


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Rebuild derived ledger balances from raw invoice history.")
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--customer", help="Customer id to recalculate")
    target.add_argument("--supplier", help="Supplier id to recalculate")
    target.add_argument("--all-customers", action="store_true", help="Recalculate every customer")
    parser.add_argument("--full", action="store_true", help="Include every invoice in the output")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO)
    service = LedgerService.from_settings()
    try:
        if args.customer:
            snapshots = [service.recalculate_customer(args.customer)]
        elif args.supplier:
            snapshots = [service.recalculate_supplier(args.supplier)]
        else:
            snapshots = [
                service.recalculate_customer(customer.id) for customer in service.store.list_customers()
            ]
    except LedgerError as exc:
        raise SystemExit(f"Recalculation failed: {exc}")
    finally:
        service.close()

    output = [snapshot.to_document() if args.full else _summary(snapshot) for snapshot in snapshots]
    print(json.dumps(output, indent=2))


if __name__ == "__main__":
    main()
