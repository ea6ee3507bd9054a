from __future__ import annotations

import argparse
import asyncio
import getpass
import sys

from saaforge.persistence.db import SessionLocal
from saaforge.services.audit import record_audit
from saaforge.services.maintenance import create_principal


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Create or update a portal principal")
    parser.add_argument("--email", required=True)
    parser.add_argument("--role", default="owner", help="Role: owner|team|user")
    parser.add_argument("--password", default=None, help="Prompted when omitted")
    parser.add_argument("--unapproved", action="store_true", help="Leave a team profile unapproved")
    return parser


async def _create(args: argparse.Namespace, password: str) -> int:
    async with SessionLocal() as session:
        principal = await create_principal(
            session,
            email=args.email,
            password=password,
            role=args.role,
            approved=not args.unapproved,
        )
        await session.commit()
        await record_audit(
            action="user.created",
            performed_by="create_principal",
            target_id=principal.id,
            target_type="principal",
            details={"email": principal.email, "role": principal.role},
        )
    print(f"principal_id={principal.id}")
    print(f"email={principal.email}")
    print(f"role={principal.role}")
    return 0


def main() -> int:
    args = _build_parser().parse_args()
    password = args.password or getpass.getpass("Password: ")
    try:
        return asyncio.run(_create(args, password))
    except Exception as exc:  # noqa: BLE001 - surface provisioning failures clearly
        print(f"create_principal failed: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
