"""CLI: expire consent records that have been pending for too long.

Usage:
    python scripts/expire_pending.py --older-than-days 30 [--dry-run]

Meant to run from cron. Completed records are never touched.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import timedelta
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv
load_dotenv()


def main():
    parser = argparse.ArgumentParser(description="Expire stale pending consent records")
    parser.add_argument("--older-than-days", type=int, required=True, help="Expire records sent more than N days ago")
    parser.add_argument("--dry-run", action="store_true", help="Count matching records without changing them")
    args = parser.parse_args()

    if args.older_than_days < 1:
        print(f"Error: --older-than-days must be at least 1, got {args.older_than_days}")
        sys.exit(1)

    from sqlalchemy import func, select

    from consentlink.db.session import async_session_factory, engine
    from consentlink.models.base import utcnow
    from consentlink.models.consent import ConsentRecord, ConsentStatus
    from consentlink.services.consent import expire_consent_records

    cutoff = utcnow() - timedelta(days=args.older_than_days)

    async def run():
        async with async_session_factory() as db:
            if args.dry_run:
                count = (
                    await db.execute(
                        select(func.count())
                        .select_from(ConsentRecord)
                        .where(ConsentRecord.status == ConsentStatus.PENDING, ConsentRecord.sent_at < cutoff)
                    )
                ).scalar()
                print(f"{count} pending record(s) sent before {cutoff:%Y-%m-%d %H:%M} UTC would expire")
            else:
                count = await expire_consent_records(db, sent_before=cutoff)
                print(f"Expired {count} pending record(s) sent before {cutoff:%Y-%m-%d %H:%M} UTC")
        await engine.dispose()

    asyncio.run(run())


if __name__ == "__main__":
    main()
