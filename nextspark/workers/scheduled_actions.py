"""Scheduled actions worker.

Usage:
    python -m nextspark.workers.scheduled_actions --once
    python -m nextspark.workers.scheduled_actions --loop

Alternative to POST /api/v1/cron/process for deployments that run a
long-lived worker instead of external cron.

Environment flags:
- SCHEDULED_ACTIONS_ENABLED (default true)
- SCHEDULED_ACTIONS_BATCH_SIZE (default 10)
- SCHEDULED_ACTIONS_LOOP_SECONDS (default 60)
"""

from __future__ import annotations

import argparse
import asyncio
import os
import time

from nextspark.core.config import settings
from nextspark.core.logging import configure_logging
from nextspark.features.scheduled_actions.processor import cleanup_old_actions, process_pending_actions
from nextspark.features.webhooks.service import register_webhook_actions

DEFAULT_LOOP_SECONDS = int(os.getenv("SCHEDULED_ACTIONS_LOOP_SECONDS", "60") or 60)


async def _process_once(limit: int) -> int:
    result = await process_pending_actions(batch_size=limit)
    cleanup_old_actions()
    return result.processed


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Scheduled actions worker")
    parser.add_argument("--once", action="store_true", help="Process due actions once and exit")
    parser.add_argument("--loop", action="store_true", help="Run in continuous loop")
    parser.add_argument("--limit", type=int, default=settings.SCHEDULED_ACTIONS_BATCH_SIZE, help="Batch size per iteration")
    parser.add_argument(
        "--sleep",
        type=int,
        default=DEFAULT_LOOP_SECONDS,
        help="Seconds to sleep between loops (when --loop)",
    )
    args = parser.parse_args(argv)

    configure_logging(settings.ENV, settings.LOG_LEVEL)
    if not settings.SCHEDULED_ACTIONS_ENABLED:
        print("[scheduled-actions-worker] Disabled (SCHEDULED_ACTIONS_ENABLED=false). Exiting.")
        return

    register_webhook_actions()

    if args.once:
        processed = asyncio.run(_process_once(limit=args.limit))
        print(f"[scheduled-actions-worker] Processed: {processed}")
        return

    # Default to loop mode when not explicitly once
    print(
        f"[scheduled-actions-worker] Starting loop (sleep={args.sleep}s, batch={args.limit}). CTRL+C to stop."
    )
    try:
        while True:
            processed = asyncio.run(_process_once(limit=args.limit))
            if processed:
                print(f"[scheduled-actions-worker] Processed {processed} actions")
            time.sleep(args.sleep)
    except KeyboardInterrupt:
        print("[scheduled-actions-worker] Stopped")


if __name__ == "__main__":
    main()
