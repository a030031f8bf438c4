"""
Background Sync Worker
======================
Drains the kiosk queue when the gateway page is not in the foreground.

Runs outside the gateway process (cron, systemd timer, or --loop) and
shares only the SQLite file with it. Each pass checks whether the record
API is reachable and, if so, signals every registered deferred-retry tag.

Usage:
    signin-sync            # one pass
    signin-sync --loop     # pass every SYNC_WORKER_INTERVAL_SECONDS
"""

import argparse
import asyncio
import logging
import sys

from . import config
from .backend_client import RecordApiClient
from .storage import CheckinQueue, LocalStore, SyncIntentStore
from .sync_engine import BackgroundSync, SyncEngine

logger = logging.getLogger(__name__)


async def run_pass(background: BackgroundSync, client: RecordApiClient) -> int:
    """
    One deferred-retry pass.

    Returns:
        Number of entries delivered
    """
    tags = background.pending_tags()
    if not tags:
        logger.info("[SYNC] No registered intents")
        return 0

    if not await client.ping():
        logger.info(f"[SYNC] Record API unreachable, {len(tags)} intents deferred")
        return 0

    delivered = 0
    for tag in tags:
        report = await background.handle_signal(tag)
        if report:
            delivered += len(report.delivered)
    return delivered


async def run(loop: bool, interval: float) -> int:
    store = LocalStore(config.QUEUE_DB_PATH)
    client = RecordApiClient(config.BACKEND_URL, config.KIOSK_TOKEN, config.REQUEST_TIMEOUT_SECONDS)
    engine = SyncEngine(CheckinQueue(store), client)
    background = BackgroundSync(engine, SyncIntentStore(store))

    delivered = 0
    try:
        while True:
            delivered += await run_pass(background, client)
            if not loop:
                break
            await asyncio.sleep(interval)
    finally:
        await client.close()
        store.close()
    return delivered


def main(argv=None):
    parser = argparse.ArgumentParser(description="Deliver queued kiosk check-ins to the record API")
    parser.add_argument("--loop", action="store_true", help="Keep running, one pass per interval")
    parser.add_argument("--interval", type=float, default=config.SYNC_WORKER_INTERVAL_SECONDS,
                        help="Seconds between passes with --loop")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        delivered = asyncio.run(run(args.loop, args.interval))
    except KeyboardInterrupt:
        return 0
    logger.info(f"[SYNC] Delivered {delivered} entries")
    return 0


if __name__ == "__main__":
    sys.exit(main())
