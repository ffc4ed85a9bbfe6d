# leaseledger/cli/__main__.py
from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from typing import Any, Optional, Sequence

from ..db import SessionLocal, init_db
from ..errors import LedgerError
from ..logging_config import configure_logging
from ..middleware.correlation import bind_correlation_id
from ..services.consistency import repair_unit_statuses, run_integrity_check
from ..services.holds import expire_stale_holds
from ..services.payments import process_overdue_payments
from .seed_demo import seed_demo


def _with_session(fn) -> Any:
    db = SessionLocal()
    try:
        return fn(db)
    finally:
        db.close()


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="leaseledger")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="create all tables")

    seed = sub.add_parser("seed-demo", help="owner, property, units and a tenant")
    seed.add_argument("--owner-email", default="owner@demo.local")
    seed.add_argument("--tenant-email", default="tenant@demo.local")
    seed.add_argument("--units", type=int, default=3)

    sub.add_parser("repair", help="re-derive unit statuses from active leases")

    check = sub.add_parser("check", help="report lease/unit status drift")
    check.add_argument("--auto-fix", action="store_true")

    sub.add_parser("process-overdue", help="assess late fees on overdue pending payments")
    sub.add_parser("expire-holds", help="drop expired holds and free their units")
    return p


def run(argv: Optional[Sequence[str]] = None) -> dict:
    args = build_parser().parse_args(argv)

    if args.command == "init-db":
        init_db()
        return {"ok": True}

    if args.command == "seed-demo":
        out = seed_demo(owner_email=args.owner_email, tenant_email=args.tenant_email, units=args.units)
        return {"ok": True, **asdict(out)}

    if args.command == "repair":
        return {"ok": True, **_with_session(lambda db: repair_unit_statuses(db, actor="cli"))}

    if args.command == "check":
        return {"ok": True, **_with_session(lambda db: run_integrity_check(db, auto_fix=args.auto_fix, actor="cli"))}

    if args.command == "process-overdue":
        rows = _with_session(lambda db: process_overdue_payments(db, actor="cli"))
        return {"ok": True, "processed": len(rows), "results": rows}

    if args.command == "expire-holds":
        return {"ok": True, **_with_session(lambda db: expire_stale_holds(db, actor="cli"))}

    raise SystemExit(f"unknown command {args.command}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    # stdout carries the result JSON
    configure_logging(stream=sys.stderr)
    try:
        with bind_correlation_id():
            out = run(argv)
    except LedgerError as e:
        print(json.dumps({"ok": False, "error": e.to_dict()}))
        return 1
    print(json.dumps(out, default=str))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
