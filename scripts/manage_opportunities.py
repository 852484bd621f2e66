#!/usr/bin/env python3
"""Operator CLI for the opportunity store.

Talks to the database directly through the service layer, so it works
while the web app is down.

Usage:
  python scripts/manage_opportunities.py status
  python scripts/manage_opportunities.py user sam@acme.com
  python scripts/manage_opportunities.py ingest payload.json
"""

import argparse
import json
import os
import sys

# Add project root so we can import pipelinehub without installing it
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pipelinehub.database import SessionLocal  # noqa: E402
from pipelinehub.services import opportunity_service  # noqa: E402
from pipelinehub.services.ingestion import (  # noqa: E402
    InvalidPayloadError,
    OpportunityIngestor,
    PersistenceError,
    decode_body,
)


def cmd_status(db, args) -> int:
    summary = opportunity_service.status_summary(db)
    conn = summary["connection"]
    print("Total opportunities:", summary["totalOpportunities"])
    print("Unique owners:", ", ".join(summary["uniqueOwners"]) or "None")
    if conn["connected"]:
        print(f"Salesforce feed: active ({conn['instanceUrl']}), last payload {conn['lastUpdated']}")
    else:
        print("Salesforce feed: no payload received yet")
    return 0


def cmd_user(db, args) -> int:
    rows, total = opportunity_service.get_opportunities_for_email(db, args.email)
    print(f"Opportunities for {args.email.lower()}: {len(rows)}")
    print(f"Total pipeline: ${total:,.2f}")
    for opp in rows:
        print(f"  - {opp.name or opp.sf_opportunity_id}: ${float(opp.amount or 0):,.2f} ({opp.stage_name or 'Unknown'})")
    return 0


def cmd_ingest(db, args) -> int:
    """Replay a saved webhook payload through the normalizer."""
    with open(args.file, "rb") as f:
        raw = f.read()
    try:
        result = OpportunityIngestor(db).ingest(decode_body(raw))
    except (InvalidPayloadError, PersistenceError) as e:
        print(f"Rejected: {e}", file=sys.stderr)
        return 1
    verb = "Created" if result.created else "Updated"
    print(f"{verb} {result.sf_opportunity_id} (local id {result.opportunity_id})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Pipeline Hub opportunity manager")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("status", help="Show counts, owners and feed status").set_defaults(func=cmd_status)

    user = sub.add_parser("user", help="List one owner's opportunities")
    user.add_argument("email")
    user.set_defaults(func=cmd_user)

    ingest = sub.add_parser("ingest", help="Upsert an opportunity from a JSON payload file")
    ingest.add_argument("file")
    ingest.set_defaults(func=cmd_ingest)
    return parser


def main(argv=None, session_factory=SessionLocal) -> int:
    args = build_parser().parse_args(argv)
    db = session_factory()
    try:
        return args.func(db, args)
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
