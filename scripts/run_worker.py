#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json

from app.container import build_container
from app.observability import configure_logging
from app.settings import ServiceSettings


def main() -> int:
    parser = argparse.ArgumentParser(description="Run the resident packet generation worker.")
    parser.add_argument(
        "--iterations",
        type=int,
        default=0,
        help="Stop after N iterations (0 means run forever).",
    )
    args = parser.parse_args()

    settings = ServiceSettings.from_env()
    configure_logging(settings.log_level)
    container = build_container(settings)
    try:
        stats = container.worker.run_forever(stop_after_iterations=args.iterations if args.iterations > 0 else None)
    finally:
        container.observability.flush()
    print(json.dumps({"success": True, "stats": stats}, ensure_ascii=True))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
