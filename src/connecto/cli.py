"""Connecto CLI — command-line interface for the marketplace engine.

Usage:
    connecto status
    connecto create-request --customer c1 --worker w1 --problem "Leaking tap"
    connecto set-status --worker w1 --deal deal_1a2b3c --status ACCEPTED
    connecto advance-work --worker w1 --deal deal_1a2b3c --to ONGOING
    connecto review --customer c1 --deal deal_1a2b3c --rating 5
    connecto suspend --admin admin-001 --user w1 --reason "Repeated no-shows"
    connecto analytics --worker w1
    connecto check-invariants

Environment (a .env file in the working directory is loaded first):
    CONNECTO_CONFIG_DIR  policy directory (default: config/)
    CONNECTO_DATA_DIR    collection and event log directory (default: data/)
    CONNECTO_ADMIN_ID    admin id used when --admin is not given
"""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

from dotenv import find_dotenv, load_dotenv

from connecto.errors import ServiceResult
from connecto.invariants import check
from connecto.log import configure_logging
from connecto.models.deal import DealStatus, WorkStatus
from connecto.persistence.event_log import EventLog
from connecto.persistence.store import JsonFileStore
from connecto.policy import POLICY_FILENAME, MarketplacePolicy
from connecto.service import MarketplaceService


DEFAULT_CONFIG = Path(__file__).resolve().parents[2] / "config"
DEFAULT_DATA = Path(__file__).resolve().parents[2] / "data"


def _make_service(args: argparse.Namespace) -> MarketplaceService:
    """Create a MarketplaceService over JSON files in the data directory."""
    config_dir: Path = args.config
    data_dir: Path = args.data_dir
    data_dir.mkdir(parents=True, exist_ok=True)
    if (config_dir / POLICY_FILENAME).exists():
        policy = MarketplacePolicy.from_config_dir(config_dir)
    else:
        policy = MarketplacePolicy.default()
    return MarketplaceService(
        policy,
        store=JsonFileStore(data_dir),
        event_log=EventLog(storage_path=data_dir / "events.jsonl"),
    )


def _to_jsonable(value: Any) -> Any:
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_to_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_jsonable(v) for k, v in value.items()}
    return value


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(_to_jsonable(result.data), indent=2, default=str))
        return 0
    code = result.error_code.value if result.error_code else "error"
    print(f"Failed ({code}): {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    try:
        print(json.dumps(service.status(), indent=2))
    finally:
        service.close()
    return 0


def cmd_create_request(args: argparse.Namespace) -> int:
    service = _make_service(args)
    try:
        result = service.create_request(
            customer_id=args.customer,
            customer_name=args.customer_name or args.customer,
            worker_id=args.worker,
            worker_name=args.worker_name or args.worker,
            problem=args.problem,
            location=args.location,
            preferred_time=args.time,
            budget=args.budget,
        )
    finally:
        service.close()
    return _report(result)


def cmd_set_status(args: argparse.Namespace) -> int:
    service = _make_service(args)
    try:
        result = service.set_status(args.worker, args.deal, DealStatus(args.status))
    finally:
        service.close()
    return _report(result)


def cmd_advance_work(args: argparse.Namespace) -> int:
    service = _make_service(args)
    try:
        result = service.advance_work_status(args.worker, args.deal, WorkStatus(args.to))
    finally:
        service.close()
    return _report(result)


def cmd_review(args: argparse.Namespace) -> int:
    service = _make_service(args)
    try:
        result = service.submit_review(args.customer, args.deal, args.rating, args.comment)
    finally:
        service.close()
    return _report(result)


def cmd_suspend(args: argparse.Namespace) -> int:
    service = _make_service(args)
    try:
        result = service.suspend_user(
            args.admin, args.user, args.reason, notes=args.notes,
        )
    finally:
        service.close()
    return _report(result)


def cmd_unsuspend(args: argparse.Namespace) -> int:
    service = _make_service(args)
    try:
        result = service.unsuspend_user(args.admin, args.user)
    finally:
        service.close()
    return _report(result)


def cmd_report(args: argparse.Namespace) -> int:
    service = _make_service(args)
    try:
        result = service.file_report(
            args.reporter, args.reported, args.reason, related_deal_id=args.deal,
        )
    finally:
        service.close()
    return _report(result)


def cmd_resolve_report(args: argparse.Namespace) -> int:
    service = _make_service(args)
    try:
        result = service.resolve_report(args.admin, args.report, args.action)
    finally:
        service.close()
    return _report(result)


def cmd_analytics(args: argparse.Namespace) -> int:
    service = _make_service(args)
    try:
        analytics = service.worker_analytics(args.worker)
        rating = service.worker_rating(args.worker)
        level = service.worker_verification(args.worker).level
    finally:
        service.close()
    output = analytics.to_dict()
    output["rating"] = {"average": rating.average, "count": rating.count}
    output["verification"] = level.label
    print(json.dumps(output, indent=2))
    return 0


def cmd_notifications(args: argparse.Namespace) -> int:
    service = _make_service(args)
    try:
        items = service.notifications_for(args.user)
        if args.mark_read:
            result = service.mark_all_notifications_read(args.user)
            if not result.success:
                return _report(result)
    finally:
        service.close()
    print(json.dumps([n.to_dict() for n in items], indent=2))
    return 0


def cmd_check_invariants(args: argparse.Namespace) -> int:
    """Run policy and transition-table invariant checks."""
    return check(args.config)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="connecto",
        description="Connecto — local services marketplace engine CLI",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(os.environ.get("CONNECTO_CONFIG_DIR", DEFAULT_CONFIG)),
        help="Path to config directory (default: config/)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=Path(os.environ.get("CONNECTO_DATA_DIR", DEFAULT_DATA)),
        help="Path to data directory (default: data/)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    sub = parser.add_subparsers(dest="command")
    admin_default = os.environ.get("CONNECTO_ADMIN_ID")

    # status
    sub.add_parser("status", help="Show system status")

    # create-request
    p_create = sub.add_parser("create-request", help="Send a deal request to a worker")
    p_create.add_argument("--customer", required=True, help="Customer ID")
    p_create.add_argument("--customer-name", default=None, help="Customer display name")
    p_create.add_argument("--worker", required=True, help="Worker ID")
    p_create.add_argument("--worker-name", default=None, help="Worker display name")
    p_create.add_argument("--problem", required=True, help="Description of the work")
    p_create.add_argument("--location", default="", help="Where the work is")
    p_create.add_argument("--time", default="", help="Preferred time")
    p_create.add_argument("--budget", default=None, help='Free-text budget, e.g. "₹2000 - ₹3000"')

    # set-status
    p_status = sub.add_parser("set-status", help="Accept, waitlist or reject a request")
    p_status.add_argument("--worker", required=True, help="Worker ID")
    p_status.add_argument("--deal", required=True, help="Deal ID")
    p_status.add_argument(
        "--status", required=True,
        choices=[s.value for s in DealStatus if s != DealStatus.NEW],
    )

    # advance-work
    p_work = sub.add_parser("advance-work", help="Start or complete accepted work")
    p_work.add_argument("--worker", required=True, help="Worker ID")
    p_work.add_argument("--deal", required=True, help="Deal ID")
    p_work.add_argument(
        "--to", required=True,
        choices=[WorkStatus.ONGOING.value, WorkStatus.COMPLETED.value],
    )

    # review
    p_review = sub.add_parser("review", help="Review completed work")
    p_review.add_argument("--customer", required=True, help="Customer ID")
    p_review.add_argument("--deal", required=True, help="Deal ID")
    p_review.add_argument("--rating", required=True, type=int, help="Stars, 1-5")
    p_review.add_argument("--comment", default=None)

    # suspend / unsuspend
    p_susp = sub.add_parser("suspend", help="Suspend a user (admin)")
    p_susp.add_argument("--admin", default=admin_default, required=admin_default is None)
    p_susp.add_argument("--user", required=True, help="User ID")
    p_susp.add_argument("--reason", required=True)
    p_susp.add_argument("--notes", default=None)

    p_unsusp = sub.add_parser("unsuspend", help="Lift a suspension (admin)")
    p_unsusp.add_argument("--admin", default=admin_default, required=admin_default is None)
    p_unsusp.add_argument("--user", required=True, help="User ID")

    # report / resolve-report
    p_report = sub.add_parser("report", help="Report a user")
    p_report.add_argument("--reporter", required=True, help="Reporting user ID")
    p_report.add_argument("--reported", required=True, help="Reported user ID")
    p_report.add_argument("--reason", required=True)
    p_report.add_argument("--deal", default=None, help="Related deal ID")

    p_resolve = sub.add_parser("resolve-report", help="Resolve a report (admin)")
    p_resolve.add_argument("--admin", default=admin_default, required=admin_default is None)
    p_resolve.add_argument("--report", required=True, help="Report ID")
    p_resolve.add_argument("--action", default=None, help="Action taken")

    # analytics
    p_analytics = sub.add_parser("analytics", help="Show a worker's analytics")
    p_analytics.add_argument("--worker", required=True, help="Worker ID")

    # notifications
    p_notif = sub.add_parser("notifications", help="List a user's notifications")
    p_notif.add_argument("--user", required=True, help="User ID")
    p_notif.add_argument("--mark-read", action="store_true", help="Mark them all read")

    # check-invariants
    sub.add_parser("check-invariants", help="Run policy invariant checks")

    return parser


def main(argv: list[str] | None = None) -> int:
    load_dotenv(find_dotenv(usecwd=True))
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    configure_logging(logging.DEBUG if args.verbose else logging.WARNING)

    commands = {
        "status": cmd_status,
        "create-request": cmd_create_request,
        "set-status": cmd_set_status,
        "advance-work": cmd_advance_work,
        "review": cmd_review,
        "suspend": cmd_suspend,
        "unsuspend": cmd_unsuspend,
        "report": cmd_report,
        "resolve-report": cmd_resolve_report,
        "analytics": cmd_analytics,
        "notifications": cmd_notifications,
        "check-invariants": cmd_check_invariants,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args)


if __name__ == "__main__":
    raise SystemExit(main())
