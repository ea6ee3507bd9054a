from __future__ import annotations

import argparse
import asyncio
import sys

from saaforge.persistence.db import SessionLocal
from saaforge.services.maintenance import cleanup_duplicate_profiles


async def _cleanup(dry_run: bool) -> int:
    async with SessionLocal() as session:
        removed = await cleanup_duplicate_profiles(session, dry_run=dry_run)
        await session.commit()
    for profile_id in removed:
        print(f"removed_profile_id={profile_id}")
    print(f"removed_profiles={len(removed)} dry_run={dry_run}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Delete legacy email-keyed team profiles that duplicate a member profile")
    parser.add_argument("--dry-run", action="store_true", help="List duplicates without deleting them")
    args = parser.parse_args()
    try:
        return asyncio.run(_cleanup(args.dry_run))
    except Exception as exc:  # noqa: BLE001 - surface store failures to the operator
        print(f"cleanup_duplicate_profiles failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
