# rentledger/cli/__main__.py
from __future__ import annotations

import argparse
from datetime import date

from rentledger.cli.seed_demo import seed_demo
from rentledger.db import session_scope
from rentledger.logging_config import configure_logging
from rentledger.services.installments import ensure_installments
from rentledger.services.recompute import recompute_installment_statuses


def _cmd_recompute(args: argparse.Namespace) -> dict:
    today = date.fromisoformat(args.today) if args.today else None
    with session_scope() as db:
        r = recompute_installment_statuses(db, today=today, page_size=args.page_size)
    return {"ok": True, "scanned": r.scanned, "updated": r.updated, "pages": r.pages}


def _cmd_generate(args: argparse.Namespace) -> dict:
    with session_scope() as db:
        r = ensure_installments(db, org_id=args.org_id, contract_id=args.contract_id)
    return {"ok": True, "created": r.created, "skipped": r.skipped}


def _cmd_seed_demo(args: argparse.Namespace) -> dict:
    out = seed_demo(
        org_slug=args.org_slug,
        org_name=args.org_name,
        user_email=args.user_email,
        user_name=args.user_name,
        create_sample_contract=(not args.no_sample_contract),
    )
    return {
        "ok": True,
        "org_slug": out.org_slug,
        "user_email": out.user_email,
        "sample_contract_id": out.contract_id,
        "installments_created": out.installments_created,
    }


def main() -> None:
    p = argparse.ArgumentParser(prog="rentledger")
    sub = p.add_subparsers(dest="command", required=True)

    rc = sub.add_parser("recompute", help="run the installment status sweep once")
    rc.add_argument("--today", default=None, help="YYYY-MM-DD (defaults to the UTC day)")
    rc.add_argument("--page-size", type=int, default=None)
    rc.set_defaults(func=_cmd_recompute)

    gen = sub.add_parser("generate", help="materialize missing installments for one contract")
    gen.add_argument("--org-id", type=int, required=True)
    gen.add_argument("--contract-id", required=True)
    gen.set_defaults(func=_cmd_generate)

    seed = sub.add_parser("seed-demo", help="create a demo office, owner and contract")
    seed.add_argument("--org-slug", default="demo")
    seed.add_argument("--org-name", default="demo")
    seed.add_argument("--user-email", default="owner@demo.local")
    seed.add_argument("--user-name", default="Owner")
    seed.add_argument("--no-sample-contract", action="store_true")
    seed.set_defaults(func=_cmd_seed_demo)

    args = p.parse_args()
    configure_logging()
    print(args.func(args))


if __name__ == "__main__":
    main()
