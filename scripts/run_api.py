#!/usr/bin/env python3
"""Start the DuckChain assistant API under uvicorn.

    python scripts/run_api.py --host 0.0.0.0 --port 8000

Settings come from the environment or a ``.env`` file (see ``core.config``).
Without ``TOGETHER_API_KEY`` the assistant classifies messages with its
keyword and regex rules only.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import uvicorn  # noqa: E402

from core.config import Settings, get_settings  # noqa: E402

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def parse_args(settings: Settings, argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="restart on code changes")
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        default=settings.log_level,
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    settings = get_settings()
    args = parse_args(settings, argv)
    logging.basicConfig(level=args.log_level, format=LOG_FORMAT)
    log = logging.getLogger("run_api")

    if not settings.together_api_key:
        log.warning("TOGETHER_API_KEY is not set; LLM features fall back to rule-based handling")
    log.info("DuckChain RPC %s (chain %s)", settings.rpc_url, settings.chain_id)
    log.info("Serving on http://%s:%d (health at /system/health)", args.host, args.port)

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload, log_level=args.log_level.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
