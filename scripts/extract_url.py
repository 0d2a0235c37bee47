#!/usr/bin/env python3
"""
Extract a single product URL and print the record as JSON.

Useful for checking how a new site parses before relying on it.
"""

import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from universal_parser.ingest.base import FetchStrategy
from universal_parser.ingest.extraction_engine import create_engine
from universal_parser.logging_config import setup_logging


async def extract_url(url: str, strategy: str | None = None, timeout_ms: int | None = None, learn: bool = True):
    """Run one extraction and print the result."""
    engine = create_engine(pattern_learning_enabled=learn)
    try:
        force = FetchStrategy(strategy) if strategy else None
        record = await engine.extract(url, force_strategy=force, timeout_ms=timeout_ms)
        print(json.dumps(record.to_dict(), indent=2, ensure_ascii=False))

        if record.confidence == 0:
            print(f"\nExtraction failed: {record.error}", file=sys.stderr)
            return 1
        return 0
    finally:
        await engine.shutdown()


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="Extract product data from a URL")
    parser.add_argument("url", help="Product page URL")
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in FetchStrategy],
        default=None,
        help="Force a fetch strategy (disables escalation)",
    )
    parser.add_argument(
        "--timeout-ms",
        type=int,
        default=None,
        help="Deadline for the whole extraction",
    )
    parser.add_argument(
        "--no-learn",
        action="store_true",
        help="Do not record learned selectors for the domain",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log at debug level")

    args = parser.parse_args()
    setup_logging(level="DEBUG" if args.verbose else "WARNING")

    sys.exit(asyncio.run(extract_url(
        args.url,
        strategy=args.strategy,
        timeout_ms=args.timeout_ms,
        learn=not args.no_learn,
    )))
