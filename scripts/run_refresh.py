"""
Refresh keywords once from the CLI.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os

from app.services.keyword_refresh import KeywordRefreshService
from db.config import load_env_files
from db.session import create_db_engine, create_session_factory, init_models


async def _run(args: argparse.Namespace) -> list[dict]:
    engine = create_db_engine()
    try:
        await init_models(engine)
        service = KeywordRefreshService(session_factory=create_session_factory(engine))
        if args.retry_failed:
            refreshed = await service.retry_failed()
        else:
            refreshed = await service.start_refresh(keyword_ids=args.ids, domain=args.domain)
    finally:
        await engine.dispose()
    return [keyword.to_dict() for keyword in refreshed]


def main() -> int:
    parser = argparse.ArgumentParser(description="Refresh keyword rankings once.")
    parser.add_argument("--id", dest="ids", type=int, action="append", help="Keyword id (repeatable).")
    parser.add_argument("--domain", dest="domain", default=None, help="Refresh every keyword of a domain.")
    parser.add_argument(
        "--retry-failed",
        dest="retry_failed",
        action="store_true",
        help="Refresh the keywords in the retry queue.",
    )
    args = parser.parse_args()
    if not args.retry_failed and not args.ids and not args.domain:
        parser.error("one of --id, --domain or --retry-failed is required")

    load_env_files()
    logging.basicConfig(level=getattr(logging, os.getenv("LOG_LEVEL", "INFO").strip().upper(), logging.INFO))

    payload = asyncio.run(_run(args))
    print(json.dumps(payload, indent=2, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
