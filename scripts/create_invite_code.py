from __future__ import annotations

import argparse
import asyncio
import sys

from saaforge.persistence.db import SessionLocal
from saaforge.services.maintenance import DEFAULT_WILDCARD_CODE, WILDCARD_TTL_DAYS, upsert_wildcard_invite


async def _upsert(code: str, ttl_days: int) -> int:
    async with SessionLocal() as session:
        invite = await upsert_wildcard_invite(session, code=code, ttl_days=ttl_days)
        await session.commit()
    print(f"Upserted invite code '{invite.code}' (ignore_email: true, expires_at: {invite.expires_at.isoformat()})")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Create or reset a wildcard invite code")
    parser.add_argument("--code", default=DEFAULT_WILDCARD_CODE)
    parser.add_argument("--ttl-days", type=int, default=WILDCARD_TTL_DAYS)
    args = parser.parse_args()
    try:
        return asyncio.run(_upsert(args.code, args.ttl_days))
    except Exception as exc:  # noqa: BLE001 - surface store failures to the operator
        print(f"Failed to upsert invite code: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
