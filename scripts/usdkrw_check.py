# flake8: noqa E402
# Run via uv so project deps are loaded, e.g.:
# uv run scripts/usdkrw_check.py --only yahoo --timeout 3
from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Ensure the src directory is importable when the script is invoked via uv/python directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from errors import AllSourcesFailedError
from services.price_sources import FallbackPriceFetcher
from services.usdkrw_sources import USDKRW_SOURCES


def parse_args() -> argparse.Namespace:
    source_names = [spec.name for spec in USDKRW_SOURCES]
    parser = argparse.ArgumentParser(description="Run the USD/KRW fallback chain against the live sources.")
    parser.add_argument(
        "--only",
        action="append",
        choices=source_names,
        help="Restrict the chain to these sources, in the given order. Can be repeated (default: all).",
    )
    parser.add_argument("--timeout", type=float, default=5.0, help="Per-source timeout in seconds (default: 5).")
    parser.add_argument("--verbose", action="store_true", help="Log every source attempt.")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    by_name = {spec.name: spec for spec in USDKRW_SOURCES}
    sources = [by_name[name] for name in args.only] if args.only else list(USDKRW_SOURCES)
    fetcher = FallbackPriceFetcher(sources, timeout=args.timeout)

    print(f"Trying {', '.join(spec.name for spec in sources)} (timeout {args.timeout}s each)")
    try:
        quote = fetcher.fetch()
    except AllSourcesFailedError as exc:
        print(json.dumps({"error": str(exc), "tries": [attempt.to_dict() for attempt in exc.attempts]}, indent=2))
        return 1

    print(json.dumps(quote.to_dict(), indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
