"""Invariant checks against the marketplace policy and transition tables.

Run via `connecto check-invariants` or `python tools/check_invariants.py`.
Prints one line per violation and returns a non-zero exit code if any
are found.
"""

from __future__ import annotations

import json
import re
import sys
from pathlib import Path
from typing import Any

from connecto.engine.state_machine import DealStateMachine
from connecto.models.deal import DealStatus, WorkStatus
from connecto.policy import POLICY_FILENAME, MarketplacePolicy


MAX_WRITE_TIMEOUT_SECONDS = 60.0

_SAFE_PREFIX = re.compile(r"^[A-Za-z0-9_\-]+$")


def check_policy(data: dict[str, Any]) -> list[str]:
    """Validate raw policy JSON. Returns a list of violations."""
    errors: list[str] = []

    # --- Structural validation (same rules the loader applies) ---
    try:
        MarketplacePolicy.from_dict(data)
    except ValueError as e:
        errors.append(str(e))
        return errors

    # --- Admin invariants ---
    admin_ids = data.get("admin_ids", [])
    if not admin_ids:
        errors.append("admin_ids must name at least one administrator")
    if len(set(admin_ids)) != len(admin_ids):
        errors.append("admin_ids must not contain duplicates")

    # --- Earnings invariants ---
    if data.get("default_earnings_estimate", 1) <= 0:
        errors.append("default_earnings_estimate must be > 0")

    # --- Storage invariants ---
    prefix = data.get("storage_prefix", "")
    if prefix and not _SAFE_PREFIX.match(prefix):
        errors.append(
            f"storage_prefix may only contain letters, digits, '_' and '-', got {prefix!r}"
        )

    # --- Durability invariants ---
    durability = data.get("durability", {})
    timeout = durability.get("write_timeout_seconds")
    if timeout is not None and timeout > MAX_WRITE_TIMEOUT_SECONDS:
        errors.append(
            f"durability.write_timeout_seconds must be <= {MAX_WRITE_TIMEOUT_SECONDS}, "
            f"got {timeout}"
        )

    return errors


def check_transitions() -> list[str]:
    """Validate the deal transition tables."""
    errors: list[str] = []

    for status in (DealStatus.WAITLISTED, DealStatus.REJECTED):
        if DealStateMachine.valid_status_transitions(status):
            errors.append(f"{status.value} must be terminal")
    if DealStateMachine.valid_status_transitions(DealStatus.ACCEPTED):
        errors.append("ACCEPTED must not change status; progress moves on work_status")
    if DealStatus.NEW in DealStateMachine.valid_status_transitions(DealStatus.NEW):
        errors.append("NEW must not transition to itself")

    if DealStateMachine.valid_work_transitions(WorkStatus.COMPLETED):
        errors.append("work COMPLETED must be terminal")
    if WorkStatus.COMPLETED in DealStateMachine.valid_work_transitions(WorkStatus.ACCEPTED):
        errors.append("work may not skip ONGOING")
    for work_status in WorkStatus:
        if work_status in DealStateMachine.valid_work_transitions(work_status):
            errors.append(f"work {work_status.value} must not transition to itself")

    return errors


def check(config_dir: Path) -> int:
    path = Path(config_dir) / POLICY_FILENAME
    if not path.exists():
        print(f"Invariant check failed: {path} not found", file=sys.stderr)
        return 1
    with path.open("r", encoding="utf-8") as handle:
        data = json.load(handle)

    errors = check_policy(data) + check_transitions()
    if errors:
        print("Invariant check failed:", file=sys.stderr)
        for error in errors:
            print(f"  - {error}", file=sys.stderr)
        return 1

    print("Connecto invariant checks passed.")
    return 0
