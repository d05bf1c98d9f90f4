"""
Run a catalog/file-store reconciliation pass from CLI.
"""

from __future__ import annotations

import argparse
import json
import logging

from app.services.reconciliation_service import build_reconciliation_service


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Report (and optionally repair) orphaned uploads and stale reservations."
    )
    parser.add_argument(
        "--repair",
        action="store_true",
        help="Delete orphaned and leftover staged files and release stale reservations.",
    )
    parser.add_argument(
        "--stale-after-minutes",
        dest="stale_after_minutes",
        type=int,
        default=None,
        help="Age after which an uncommitted reservation is considered abandoned.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

    service = build_reconciliation_service(stale_after_minutes=args.stale_after_minutes)
    report = service.scan()
    payload: dict[str, object] = {"report": report.to_dict()}
    if args.repair and not report.is_clean:
        payload["repair"] = service.repair(report).to_dict()

    print(json.dumps(payload, indent=2))
    return 0 if report.is_clean or args.repair else 1


if __name__ == "__main__":
    raise SystemExit(main())
