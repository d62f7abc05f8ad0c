"""
Jobshare CLI - inspect and drive job sharing against a local SQLite store.

Usage:
    jobshare --company ID partners [--json]
    jobshare --company ID partner-request TARGET [--message MSG]
    jobshare --company ID share JOB_ID TARGET --fee FEE [--expires-in HOURS] [--carbon-copy]
    jobshare --company ID incoming [--json]
    jobshare --company ID respond REQUEST_ID (--accept | --decline) [--counter-fee FEE]
    jobshare --company ID chain JOB_ID [--json]
    jobshare --company ID status JOB_ID STATUS [--service-date DATE]
    jobshare retry-sync
"""

import argparse
import json
import logging
import os
import sys

from jobshare import JobShareError, JobSharing
from jobshare.config import JobShareConfig
from jobshare.storage import SQLiteStore

logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "jobshare.db"


def _print(data, as_json: bool, text: str) -> None:
    if as_json:
        print(json.dumps(data, indent=2, default=str))
    else:
        print(text)


def _require_company(args) -> str:
    if not args.company:
        raise ValueError("--company (or JOBSHARE_COMPANY_ID) is required for this command")
    return args.company


def cmd_partners(args, sharing: JobSharing):
    """List partners and their auto-assignment settings."""
    partners = sharing.list_partners(_require_company(args))
    if args.json:
        _print([p.to_dict() for p in partners], True, "")
        return
    if not partners:
        print("No partners yet.")
        return
    for p in partners:
        zones = ", ".join(
            f"{'/'.join(z.zip_codes)} @ ${z.default_fee:.2f} (p{z.priority})"
            for z in p.auto_assignment_zones
        )
        auto = "auto" if p.auto_assignment_enabled else "manual"
        accept = "needs acceptance" if p.requires_acceptance else "auto-accept"
        print(f"{p.partner_company_id} [{p.status}] {auto}, {accept}")
        if zones:
            print(f"  zones: {zones}")
        print(f"  shared: {p.total_jobs_shared} ({p.auto_assigned_count} auto)")


def cmd_partner_request(args, sharing: JobSharing):
    request = sharing.create_partnership_request(
        _require_company(args), args.target, args.message or ""
    )
    _print(request.to_dict(), args.json, f"✓ Partnership request sent: {request.id}")


def cmd_share(args, sharing: JobSharing):
    """Offer a job to another company."""
    request = sharing.create_job_share_request(
        _require_company(args),
        args.job_id,
        args.target,
        proposed_fee=args.fee,
        expires_in_hours=args.expires_in,
        create_carbon_copy=args.carbon_copy,
    )
    _print(
        request.to_dict(),
        args.json,
        f"✓ Share request {request.id}: {request.status} (fee ${request.proposed_fee:.2f})",
    )


def cmd_incoming(args, sharing: JobSharing):
    requests = sharing.incoming_share_requests(_require_company(args))
    if args.json:
        _print([r.to_dict() for r in requests], True, "")
        return
    if not requests:
        print("No pending share requests.")
        return
    for r in requests:
        expires = r.expires_at.isoformat() if r.expires_at else "never"
        auto = " [auto]" if r.auto_assigned else ""
        print(f"{r.id}  job {r.job_id} from {r.source_company_id}  ${r.proposed_fee:.2f}  expires {expires}{auto}")


def cmd_respond(args, sharing: JobSharing):
    request = sharing.respond_to_share_request(
        _require_company(args),
        args.request_id,
        args.accept,
        counter_fee=args.counter_fee,
        decline_reason=args.reason,
    )
    _print(request.to_dict(), args.json, f"✓ Share request {request.id}: {request.status}")


def cmd_chain(args, sharing: JobSharing):
    """Show the caller's window of a job's chain."""
    view = sharing.view_chain(args.job_id, _require_company(args))
    if args.json:
        _print(view.to_dict(), True, "")
        return
    print(f"Job {view.job_id}: level {view.viewer_level} of {view.total_levels}")
    for link in view.links:
        marker = "→" if link.level == view.viewer_level else " "
        amount = f"${link.invoice_amount:.2f}" if link.invoice_amount is not None else "-"
        auto = " [auto]" if link.auto_assigned else ""
        print(f" {marker} L{link.level} {link.company_name or link.company_id}  {amount}{auto}")


def cmd_status(args, sharing: JobSharing):
    fields = {}
    if args.service_date:
        fields["service_date"] = args.service_date
    result = sharing.update_job_status(args.job_id, args.status, _require_company(args), **fields)
    _print(
        result.to_dict(),
        args.json,
        f"✓ Status set: {len(result.updated)} copies updated, {len(result.skipped)} skipped, "
        f"{len(result.failed)} queued for retry",
    )


def cmd_retry_sync(args, sharing: JobSharing):
    result = sharing.sync.retry_failed()
    dead = len(sharing.sync.dead_letters())
    _print(
        {**result.to_dict(), "dead_letters": dead},
        args.json,
        f"Retried sync: {len(result.updated)} updated, {len(result.failed)} still failing, "
        f"{dead} dead letters",
    )


COMMANDS = {
    "partners": cmd_partners,
    "partner-request": cmd_partner_request,
    "share": cmd_share,
    "incoming": cmd_incoming,
    "respond": cmd_respond,
    "chain": cmd_chain,
    "status": cmd_status,
    "retry-sync": cmd_retry_sync,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jobshare",
        description="Job hand-offs between partner companies",
    )
    parser.add_argument(
        "--db",
        default=os.environ.get("JOBSHARE_DB_PATH", DEFAULT_DB_PATH),
        help="SQLite database path",
    )
    parser.add_argument(
        "--company", "-c", default=os.environ.get("JOBSHARE_COMPANY_ID"), help="Acting company ID"
    )
    parser.add_argument("--verbose", "-v", action="store_true")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_partners = subparsers.add_parser("partners", help="List partners")
    p_partners.add_argument("--json", "-j", action="store_true")

    p_preq = subparsers.add_parser("partner-request", help="Ask a company to partner")
    p_preq.add_argument("target", help="Target company ID")
    p_preq.add_argument("--message", "-m", help="Note for the target")
    p_preq.add_argument("--json", "-j", action="store_true")

    p_share = subparsers.add_parser("share", help="Offer a job to another company")
    p_share.add_argument("job_id")
    p_share.add_argument("target", help="Target company ID")
    p_share.add_argument("--fee", type=float, required=True, help="Proposed fee")
    p_share.add_argument("--expires-in", type=int, help="Hours until the offer expires")
    p_share.add_argument("--carbon-copy", action="store_true", help="Give the target its own job copy")
    p_share.add_argument("--json", "-j", action="store_true")

    p_incoming = subparsers.add_parser("incoming", help="Pending share requests")
    p_incoming.add_argument("--json", "-j", action="store_true")

    p_respond = subparsers.add_parser("respond", help="Answer a share request")
    p_respond.add_argument("request_id")
    decision = p_respond.add_mutually_exclusive_group(required=True)
    decision.add_argument("--accept", dest="accept", action="store_true")
    decision.add_argument("--decline", dest="accept", action="store_false")
    p_respond.add_argument("--counter-fee", type=float, help="Accept at this fee instead")
    p_respond.add_argument("--reason", help="Decline reason")
    p_respond.add_argument("--json", "-j", action="store_true")

    p_chain = subparsers.add_parser("chain", help="Show a job's chain")
    p_chain.add_argument("job_id")
    p_chain.add_argument("--json", "-j", action="store_true")

    p_status = subparsers.add_parser("status", help="Set a job's status")
    p_status.add_argument("job_id")
    p_status.add_argument("status")
    p_status.add_argument("--service-date", help="ISO date of service")
    p_status.add_argument("--json", "-j", action="store_true")

    p_retry = subparsers.add_parser("retry-sync", help="Retry queued status syncs")
    p_retry.add_argument("--json", "-j", action="store_true")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.getLogger("jobshare").setLevel(logging.INFO)

    try:
        sharing = JobSharing(SQLiteStore(args.db), config=JobShareConfig.from_env())
    except (ValueError, OSError) as e:
        logger.error(f"Failed to open {args.db}: {e}")
        sys.exit(1)

    try:
        COMMANDS[args.command](args, sharing)
    except JobShareError as e:
        logger.error(f"{e.code}: {e}")
        sys.exit(2)
    except ValueError as e:
        logger.error(f"Input validation error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
