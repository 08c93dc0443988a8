#!/usr/bin/env python3
"""
Fetch one remote tarball into a local cache and print the result as JSON.

Settings come from the settings file (default data/config.json); command line
flags override them for this run only.

Examples:
  python3 scripts/fetch_tarball.py https://registry.example.org/pkg/-/pkg-1.0.0.tgz
  python3 scripts/fetch_tarball.py URL --sha1 3b1e... --retries 5 --cache-root /tmp/cache

Exit codes: 0 success, 1 fetch failure, 2 usage error.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from src.fetcher.downloader.fetcher import FetchRequest  # noqa: E402
from src.fetcher.errors import FetchError  # noqa: E402
from src.fetcher.net.retry import RetryConfig  # noqa: E402
from src.fetcher.pipeline.runner import build_fetcher  # noqa: E402
from src.fetcher.settings.store import SettingsStore  # noqa: E402


async def run(args: argparse.Namespace) -> int:
    config_path = Path(args.config)
    settings = SettingsStore(path=config_path).load()

    if args.cache_root:
        settings.cache_root = args.cache_root
    if args.timeout_s is not None:
        settings.timeout_s = args.timeout_s
    if args.retries is not None:
        retry = settings.get_retry()
        settings.retry = RetryConfig(
            retries=args.retries,
            backoff_factor=retry.backoff_factor,
            min_delay_s=retry.min_delay_s,
            max_delay_s=retry.max_delay_s,
        )

    credential = args.credential or os.environ.get("TARBALL_FETCH_CREDENTIAL") or None
    metadata = {}
    if args.name:
        metadata["name"] = args.name

    fetcher = build_fetcher(settings, base_dir=config_path.parent)
    request = FetchRequest(
        url=args.url,
        expected_digest=args.sha1 or None,
        credential=credential,
        metadata=metadata,
    )

    try:
        result = await fetcher.fetch(request)
    except ValueError as exc:
        print(f"invalid request: {exc}", file=sys.stderr)
        return 2
    except FetchError as exc:
        print(json.dumps(exc.to_public_dict(), ensure_ascii=False, indent=2), file=sys.stderr)
        return 1

    print(json.dumps(result.to_public_dict(), ensure_ascii=False, indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="fetch_tarball",
        description="Fetch, verify and cache a remote tarball",
    )

    p.add_argument("url", help="tarball URL")
    p.add_argument("--sha1", default="", help="expected SHA-1 (hex); omit to trust the download")
    p.add_argument("--name", default="", help="package name recorded in the result metadata")
    p.add_argument("--credential", default="", help="Authorization header value (or env TARBALL_FETCH_CREDENTIAL)")

    p.add_argument("--config", default="data/config.json", help="settings file (default data/config.json)")
    p.add_argument("--cache-root", default="", help="cache root, overrides settings")
    p.add_argument("--retries", type=int, default=None, help="total attempts, overrides settings")
    p.add_argument("--timeout-s", type=float, default=None, help="per-request timeout, overrides settings")
    p.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return p


def main() -> int:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
