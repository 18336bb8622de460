"""
MineSmart — command-line lot lookup.

Connects to the store configured by DATABASE_URL / DATABASE_NAME, looks up
each lot code given, and prints its stage and history.

Usage:
    python main.py O-123 [C-045 ...]
"""

import argparse
import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent))

from minesmart.dashboard import get_lot_overview
from minesmart.gateway import GatewayError, MongoGateway
from minesmart.history import history_frame

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def print_overview(overview: dict) -> None:
    print("=" * 70)
    print(f"  LOT {overview['query']}")
    print("=" * 70)

    if overview["status"] != "found":
        print(f"\n{overview['error']}\n")
        return

    lot = overview["lot"]
    print(f"\nZone: {lot['zona']}  |  Material: {lot['material']}  |  Extracted: {lot['fecha_display']}")

    stage = overview["stage"]
    done = [name for name, flag in stage["stages"].items() if flag]
    print(f"Stage: {stage['current_stage']}  ({', '.join(done)})")
    print(f"Status: {stage['status_message']}")
    if overview["degraded"]:
        print(f"Warning: {overview['error']}")

    print("\nHistory")
    print("-" * 40)
    history = history_frame(overview["history"])
    if history.empty:
        print("(no events)")
    else:
        print(history[["date", "label", "details"]].to_string(index=False))
    print()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Look up MineSmart lots.")
    parser.add_argument("lots", nargs="+", help="Lot codes, e.g. O-123")
    args = parser.parse_args(argv)

    try:
        gateway = MongoGateway.from_env()
    except GatewayError as exc:
        logger.error("Cannot connect to the store: %s", exc)
        return 1

    status = 0
    for code in args.lots:
        overview = get_lot_overview(gateway, code)
        print_overview(overview)
        if overview["status"] == "error":
            status = 1
    return status


if __name__ == "__main__":
    sys.exit(main())
