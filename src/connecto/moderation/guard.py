"""Moderation guard — suspensions, user reports, review flags, admin audit trail.

The guard owns four collections:
- suspended users (presence is the suspension predicate)
- user reports (resolved once, by an admin)
- flagged reviews (toggled hidden/visible, never deleted)
- admin actions (append-only; one per administrative step)

Suspension is advisory middleware for the DealStore: the service wraps
is_suspended(actor_id) in a predicate and passes it into each actor-role
mutation. The guard and the store share one lock, so a suspension either
lands before a mutation's check or after the mutation commits.

Authorization (is this actor an admin?) is the service's job; the guard
trusts the admin_id it is given and records it.
"""

from __future__ import annotations

import threading
import uuid
from typing import Any, Callable, Mapping, Optional

from connecto.clock import Clock, not_before, utc_now
from connecto.errors import ErrorCode, ServiceResult
from connecto.log import get_logger
from connecto.models.moderation import (
    AdminAction,
    AdminActionKind,
    FlaggedReview,
    ReviewSnapshot,
    SuspendedUser,
    TargetType,
    UserReport,
)
from connecto.persistence.event_log import EventKind, EventLog
from connecto.persistence.writer import CollectionWriter


SUSPENDED_USERS = "suspended_users"
REPORTS = "reports"
FLAGGED_REVIEWS = "flagged_reviews"
ADMIN_ACTIONS = "admin_actions"

COLLECTIONS = (SUSPENDED_USERS, REPORTS, FLAGGED_REVIEWS, ADMIN_ACTIONS)

log = get_logger("moderation")


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


class ModerationGuard:
    """Owns moderation state and the admin action log.

    Usage:
        guard = ModerationGuard(writers=writers, lock=shared_lock)
        guard.suspend("admin-001", "w1", "No-show on three jobs")
        guard.is_suspended("w1")  # True
        guard.unsuspend("admin-001", "w1")
    """

    def __init__(
        self,
        writers: Optional[Mapping[str, CollectionWriter]] = None,
        event_log: Optional[EventLog] = None,
        clock: Clock = utc_now,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self._writers = dict(writers or {})
        self._event_log = event_log
        self._clock = clock
        self._lock = lock or threading.RLock()

        self._suspended: dict[str, SuspendedUser] = {}
        self._reports: dict[str, UserReport] = {}
        self._flags: dict[str, FlaggedReview] = {}
        self._actions: list[AdminAction] = []
        self._load()

    @property
    def persistence_degraded(self) -> bool:
        return any(w.degraded for w in self._writers.values())

    # ------------------------------------------------------------------
    # Suspensions
    # ------------------------------------------------------------------

    def is_suspended(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._suspended

    def suspend(
        self,
        admin_id: str,
        user_id: str,
        reason: str,
        notes: Optional[str] = None,
        user_name: Optional[str] = None,
    ) -> ServiceResult:
        """Suspend a user, replacing any earlier suspension record."""
        user_id = (user_id or "").strip()
        reason = (reason or "").strip()
        if not user_id:
            return ServiceResult.fail(ErrorCode.INVALID_REQUEST, "A user id is required.")
        if not reason:
            return ServiceResult.fail(
                ErrorCode.INVALID_REQUEST, "A suspension reason is required.",
            )

        with self._lock:
            now = self._clock()
            previous = self._suspended.get(user_id)
            record = SuspendedUser(
                user_id=user_id,
                user_name=user_name,
                suspended_utc=now,
                suspended_by=admin_id,
                reason=reason,
                notes=notes,
            )
            self._suspended[user_id] = record
            action = self._append_action(
                admin_id, AdminActionKind.SUSPEND_USER, user_id, TargetType.USER,
                reason=reason, notes=notes,
                metadata={"replaced_existing": previous is not None},
            )

            def _rollback() -> None:
                self._actions.remove(action)
                if previous is None:
                    self._suspended.pop(user_id, None)
                else:
                    self._suspended[user_id] = previous

            err = self._persist((SUSPENDED_USERS, ADMIN_ACTIONS), _rollback)
            if err:
                return ServiceResult.fail(ErrorCode.PERSISTENCE_FAILED, err)

            self._audit(EventKind.USER_SUSPENDED, admin_id, user_id, {"reason": reason})
            log.warning("User %s suspended by %s: %s", user_id, admin_id, reason)
            return ServiceResult.ok(suspension=record, action=_copy_action(action))

    def unsuspend(self, admin_id: str, user_id: str) -> ServiceResult:
        """Lift a suspension. Always logged, even if none was active."""
        with self._lock:
            previous = self._suspended.pop(user_id, None)
            action = self._append_action(
                admin_id, AdminActionKind.UNSUSPEND_USER, user_id, TargetType.USER,
                metadata={"was_suspended": previous is not None},
            )

            def _rollback() -> None:
                self._actions.remove(action)
                if previous is not None:
                    self._suspended[user_id] = previous

            err = self._persist((SUSPENDED_USERS, ADMIN_ACTIONS), _rollback)
            if err:
                return ServiceResult.fail(ErrorCode.PERSISTENCE_FAILED, err)

            self._audit(EventKind.USER_UNSUSPENDED, admin_id, user_id, {
                "was_suspended": previous is not None,
            })
            log.info("User %s unsuspended by %s", user_id, admin_id)
            return ServiceResult.ok(was_suspended=previous is not None, action=_copy_action(action))

    def suspended_users(self) -> list[SuspendedUser]:
        with self._lock:
            return sorted(
                self._suspended.values(),
                key=lambda s: s.suspended_utc,
                reverse=True,
            )

    def get_suspension(self, user_id: str) -> Optional[SuspendedUser]:
        with self._lock:
            return self._suspended.get(user_id)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def file_report(
        self,
        reporter_id: str,
        reported_user_id: str,
        reason: str,
        related_deal_id: Optional[str] = None,
        reporter_name: Optional[str] = None,
        reported_user_name: Optional[str] = None,
    ) -> ServiceResult:
        """File a report against another user. Any user may do this."""
        reason = (reason or "").strip()
        if not reason:
            return ServiceResult.fail(
                ErrorCode.INVALID_REQUEST, "Please describe the problem you are reporting.",
            )
        if not reported_user_id or reporter_id == reported_user_id:
            return ServiceResult.fail(
                ErrorCode.INVALID_REQUEST, "You cannot report yourself.",
            )

        with self._lock:
            report = UserReport(
                report_id=_new_id("report"),
                reporter_id=reporter_id,
                reporter_name=reporter_name,
                reported_user_id=reported_user_id,
                reported_user_name=reported_user_name,
                reason=reason,
                related_deal_id=related_deal_id,
                created_utc=self._clock(),
            )
            self._reports[report.report_id] = report

            def _rollback() -> None:
                self._reports.pop(report.report_id, None)

            err = self._persist((REPORTS,), _rollback)
            if err:
                return ServiceResult.fail(ErrorCode.PERSISTENCE_FAILED, err)

            self._audit(EventKind.REPORT_FILED, reporter_id, report.report_id, {
                "reported_user_id": reported_user_id,
                "related_deal_id": related_deal_id,
            })
            log.info("Report %s filed against %s", report.report_id, reported_user_id)
            return ServiceResult.ok(report=_copy_report(report))

    def resolve_report(
        self,
        admin_id: str,
        report_id: str,
        action_taken: Optional[str] = None,
    ) -> ServiceResult:
        """Mark a report reviewed. A report can be resolved only once."""
        with self._lock:
            report = self._reports.get(report_id)
            if report is None:
                return ServiceResult.fail(ErrorCode.REPORT_NOT_FOUND)
            if report.reviewed:
                return ServiceResult.fail(ErrorCode.ALREADY_RESOLVED)

            report.reviewed = True
            report.reviewed_by = admin_id
            report.reviewed_utc = not_before(self._clock(), report.created_utc)
            report.action_taken = action_taken
            action = self._append_action(
                admin_id, AdminActionKind.RESOLVE_REPORT, report_id, TargetType.REPORT,
                notes=action_taken,
                metadata={"reported_user_id": report.reported_user_id},
            )

            def _rollback() -> None:
                self._actions.remove(action)
                report.reviewed = False
                report.reviewed_by = None
                report.reviewed_utc = None
                report.action_taken = None

            err = self._persist((REPORTS, ADMIN_ACTIONS), _rollback)
            if err:
                return ServiceResult.fail(ErrorCode.PERSISTENCE_FAILED, err)

            self._audit(EventKind.REPORT_RESOLVED, admin_id, report_id, {
                "action_taken": action_taken,
            })
            return ServiceResult.ok(report=_copy_report(report), action=_copy_action(action))

    def reports(self) -> list[UserReport]:
        """All reports, newest first."""
        with self._lock:
            ordered = sorted(
                self._reports.values(), key=lambda r: r.created_utc, reverse=True,
            )
            return [_copy_report(r) for r in ordered]

    def unreviewed_reports(self) -> list[UserReport]:
        return [r for r in self.reports() if not r.reviewed]

    def reports_against(self, user_id: str) -> list[UserReport]:
        return [r for r in self.reports() if r.reported_user_id == user_id]

    def get_report(self, report_id: str) -> Optional[UserReport]:
        with self._lock:
            report = self._reports.get(report_id)
            return _copy_report(report) if report else None

    # ------------------------------------------------------------------
    # Review flags
    # ------------------------------------------------------------------

    def flag_review(
        self,
        admin_id: str,
        deal_id: str,
        reason: str,
        snapshot: ReviewSnapshot,
    ) -> ServiceResult:
        """Hide a review. The snapshot keeps the content if the deal goes away."""
        with self._lock:
            flag = FlaggedReview(
                flag_id=_new_id("flag"),
                deal_id=deal_id,
                snapshot=snapshot,
                flagged_utc=self._clock(),
                flagged_by=admin_id,
                flag_reason=(reason or "").strip(),
            )
            self._flags[flag.flag_id] = flag
            action = self._append_action(
                admin_id, AdminActionKind.FLAG_REVIEW, deal_id, TargetType.REVIEW,
                reason=flag.flag_reason,
                metadata={"flag_id": flag.flag_id, "rating": snapshot.rating},
            )

            def _rollback() -> None:
                self._actions.remove(action)
                self._flags.pop(flag.flag_id, None)

            err = self._persist((FLAGGED_REVIEWS, ADMIN_ACTIONS), _rollback)
            if err:
                return ServiceResult.fail(ErrorCode.PERSISTENCE_FAILED, err)

            self._audit(EventKind.REVIEW_FLAGGED, admin_id, deal_id, {
                "flag_id": flag.flag_id,
                "reason": flag.flag_reason,
            })
            return ServiceResult.ok(flag=_copy_flag(flag), action=_copy_action(action))

    def unflag_review(self, admin_id: str, flag_id: str) -> ServiceResult:
        """Make a flagged review visible again. The flag record stays."""
        with self._lock:
            flag = self._flags.get(flag_id)
            if flag is None:
                return ServiceResult.fail(ErrorCode.FLAG_NOT_FOUND)

            was_hidden = flag.hidden
            flag.hidden = False
            action = self._append_action(
                admin_id, AdminActionKind.UNFLAG_REVIEW, flag.deal_id, TargetType.REVIEW,
                metadata={"flag_id": flag_id, "was_hidden": was_hidden},
            )

            def _rollback() -> None:
                self._actions.remove(action)
                flag.hidden = was_hidden

            err = self._persist((FLAGGED_REVIEWS, ADMIN_ACTIONS), _rollback)
            if err:
                return ServiceResult.fail(ErrorCode.PERSISTENCE_FAILED, err)

            self._audit(EventKind.REVIEW_UNFLAGGED, admin_id, flag.deal_id, {
                "flag_id": flag_id,
            })
            return ServiceResult.ok(flag=_copy_flag(flag), action=_copy_action(action))

    def flagged_reviews(self, hidden_only: bool = False) -> list[FlaggedReview]:
        """Flags, newest first."""
        with self._lock:
            flags = sorted(
                self._flags.values(), key=lambda f: f.flagged_utc, reverse=True,
            )
            return [_copy_flag(f) for f in flags if f.hidden or not hidden_only]

    def is_review_flagged(self, deal_id: str) -> bool:
        """True iff a hidden flag exists for the deal's review."""
        with self._lock:
            return any(f.deal_id == deal_id and f.hidden for f in self._flags.values())

    # ------------------------------------------------------------------
    # Admin action log
    # ------------------------------------------------------------------

    def admin_actions(
        self,
        kind: Optional[AdminActionKind] = None,
        target_id: Optional[str] = None,
    ) -> list[AdminAction]:
        """Admin actions, newest first, optionally filtered."""
        with self._lock:
            return [
                _copy_action(a) for a in reversed(self._actions)
                if (kind is None or a.action == kind)
                and (target_id is None or a.target_id == target_id)
            ]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _append_action(
        self,
        admin_id: str,
        kind: AdminActionKind,
        target_id: str,
        target_type: TargetType,
        reason: Optional[str] = None,
        notes: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> AdminAction:
        now = self._clock()
        if self._actions:
            now = not_before(now, self._actions[-1].timestamp_utc)
        action = AdminAction(
            action_id=_new_id("action"),
            admin_id=admin_id,
            action=kind,
            target_id=target_id,
            target_type=target_type,
            timestamp_utc=now,
            reason=reason,
            notes=notes,
            metadata=dict(metadata or {}),
        )
        self._actions.append(action)
        return action

    def _snapshot(self, collection: str) -> list[dict[str, Any]]:
        if collection == SUSPENDED_USERS:
            return [s.to_dict() for s in self._suspended.values()]
        if collection == REPORTS:
            return [r.to_dict() for r in self._reports.values()]
        if collection == FLAGGED_REVIEWS:
            return [f.to_dict() for f in self._flags.values()]
        if collection == ADMIN_ACTIONS:
            return [a.to_dict() for a in self._actions]
        raise ValueError(f"Unknown moderation collection: {collection}")

    def _persist(
        self,
        collections: tuple[str, ...],
        on_rollback: Callable[[], None],
    ) -> Optional[str]:
        """Write each touched collection in order.

        On the first failure the in-memory change is rolled back and the
        collections already written are rewritten from the restored state.
        """
        written: list[str] = []
        for name in collections:
            writer = self._writers.get(name)
            if writer is None:
                continue
            err = writer.write(self._snapshot(name))
            if err:
                on_rollback()
                writer.restore(self._snapshot(name))
                for done in written:
                    restore_err = self._writers[done].write(self._snapshot(done))
                    if restore_err:
                        log.error("Could not restore %s after failed write: %s", done, restore_err)
                return err
            written.append(name)
        return None

    def _audit(
        self,
        kind: EventKind,
        actor_id: str,
        subject_id: str,
        payload: dict[str, Any],
    ) -> None:
        if self._event_log is None:
            return
        try:
            self._event_log.record(
                kind, actor_id, subject_id, payload, timestamp_utc=self._clock(),
            )
        except (OSError, ValueError) as e:
            log.error("Audit append failed for %s (%s): %s", subject_id, kind.value, e)

    def _load(self) -> None:
        for name, writer in self._writers.items():
            records = writer.load() or []
            if name == SUSPENDED_USERS:
                for data in records:
                    record = SuspendedUser.from_dict(data)
                    self._suspended[record.user_id] = record
            elif name == REPORTS:
                for data in records:
                    report = UserReport.from_dict(data)
                    self._reports[report.report_id] = report
            elif name == FLAGGED_REVIEWS:
                for data in records:
                    flag = FlaggedReview.from_dict(data)
                    self._flags[flag.flag_id] = flag
            elif name == ADMIN_ACTIONS:
                self._actions.extend(AdminAction.from_dict(d) for d in records)
            else:
                raise ValueError(f"Unknown moderation collection: {name}")


def _copy_report(report: UserReport) -> UserReport:
    return UserReport.from_dict(report.to_dict())


def _copy_flag(flag: FlaggedReview) -> FlaggedReview:
    return FlaggedReview.from_dict(flag.to_dict())


def _copy_action(action: AdminAction) -> AdminAction:
    return AdminAction.from_dict(action.to_dict())
