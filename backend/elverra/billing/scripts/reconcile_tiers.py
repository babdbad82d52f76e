"""Retry membership tier updates that failed after a subscription was activated.

Run periodically (cron) inside the backend container:
    python -m elverra.billing.scripts.reconcile_tiers [--limit 100]
"""

import argparse
import asyncio
import logging

from elverra.database import async_session_factory, engine
from elverra.services.tier_sync import reconcile_pending_tier_syncs

logger = logging.getLogger(__name__)


async def main(limit: int = 100) -> int:
    async with async_session_factory() as db:
        try:
            resolved = await reconcile_pending_tier_syncs(db, limit=limit)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    await engine.dispose()
    return resolved


if __name__ == "__main__":
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--limit", type=int, default=100, help="max tasks per run")
    args = parser.parse_args()

    count = asyncio.run(main(args.limit))
    print(f"Resolved {count} pending tier update(s)")
