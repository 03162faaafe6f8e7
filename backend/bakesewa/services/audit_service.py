# Overview: Append-only audit log writes, filtered reads and the compliance report.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional

from flask import current_app
from sqlalchemy import func, or_

from ..errors import ValidationError
from ..extensions import db
from ..models import AUDIT_ACTIONS, AUDIT_STATUSES, AuditLogEntry
from ..time_utils import hours_between, in_business_hours, to_utc_z, utcnow
"""
Audit Log Invariants

- Rows are written once and never updated or deleted; ORM listeners in
  models/audit.py reject both. There is deliberately no update/delete
  function in this module.
- Business operations write their audit row AFTER their own commit, through
  try_record_action(). A failed audit write is logged and rolled back; it
  never undoes or fails the business change. This is best-effort logging,
  not a transactional guarantee.
- record_action() itself either returns the persisted row or raises.
"""

logger = logging.getLogger(__name__)

SYSTEM_USER_ID = "system"
SYSTEM_USER_EMAIL = "system@bakesewa.com"
SYSTEM_USER_NAME = "System"

CRITICAL_ACTIONS = ("CREATE", "DELETE")
CRITICAL_RESOURCES = ("users", "settings")


@dataclass(frozen=True)
class Actor:
    """Who performed an action and from where."""
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    user_name: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def label(self) -> str:
        return self.user_email or self.user_id or SYSTEM_USER_ID


SYSTEM_ACTOR = Actor(
    user_id=SYSTEM_USER_ID,
    user_email=SYSTEM_USER_EMAIL,
    user_name=SYSTEM_USER_NAME,
    ip_address="127.0.0.1",
)


def record_action(
    *,
    action: str,
    resource: str,
    actor: Actor | None = None,
    resource_id: Any = None,
    details: Optional[dict] = None,
    old_values: Optional[dict] = None,
    new_values: Optional[dict] = None,
    status: str = "success",
    error_message: str | None = None,
    commit: bool = True,
) -> AuditLogEntry:
    """
    Append one audit row. Returns the row or raises.

    A missing actor is attributed to the system user.
    """
    if action not in AUDIT_ACTIONS:
        raise ValidationError(f"action must be one of {', '.join(AUDIT_ACTIONS)}")
    if status not in AUDIT_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(AUDIT_STATUSES)}")
    if not resource:
        raise ValidationError("resource is required")

    actor = actor or SYSTEM_ACTOR
    entry = AuditLogEntry(
        user_id=actor.user_id or SYSTEM_USER_ID,
        user_email=actor.user_email or SYSTEM_USER_EMAIL,
        user_name=actor.user_name or SYSTEM_USER_NAME,
        action=action,
        resource=resource,
        resource_id=str(resource_id) if resource_id is not None else None,
        details=details,
        old_values=old_values,
        new_values=new_values,
        ip_address=actor.ip_address or "127.0.0.1",
        user_agent=actor.user_agent,
        timestamp=utcnow(),
        status=status,
        error_message=error_message,
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return entry


def try_record_action(**kwargs) -> AuditLogEntry | None:
    """
    Best-effort wrapper for business operations.

    Never raises: the failure goes to the operational log and the session
    is rolled back so the caller can keep using it.
    """
    try:
        return record_action(**kwargs)
    except Exception:
        logger.exception(
            "Failed to write audit log entry: action=%s resource=%s resource_id=%s",
            kwargs.get("action"),
            kwargs.get("resource"),
            kwargs.get("resource_id"),
        )
        db.session.rollback()
        return None


@dataclass
class AuditLogPage:
    items: list
    total: int
    limit: int
    offset: int

    def to_dict(self) -> dict:
        return {
            "items": [e.to_dict() for e in self.items],
            "total": self.total,
            "limit": self.limit,
            "offset": self.offset,
        }


def query_logs(
    *,
    user_id: str | None = None,
    action: str | None = None,
    resource: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int | None = None,
    offset: int = 0,
) -> AuditLogPage:
    """Filtered, paginated read, newest first. start/end are inclusive."""
    if limit is None:
        limit = int(current_app.config.get("AUDIT_QUERY_DEFAULT_LIMIT", 1000))
    if limit <= 0:
        raise ValidationError("limit must be positive")
    if offset < 0:
        raise ValidationError("offset must not be negative")

    q = db.session.query(AuditLogEntry)
    if user_id:
        q = q.filter(AuditLogEntry.user_id == user_id)
    if action:
        q = q.filter(AuditLogEntry.action == action)
    if resource:
        q = q.filter(AuditLogEntry.resource == resource)
    if start is not None:
        q = q.filter(AuditLogEntry.timestamp >= start)
    if end is not None:
        q = q.filter(AuditLogEntry.timestamp <= end)

    total = q.count()
    items = (
        q.order_by(AuditLogEntry.timestamp.desc(), AuditLogEntry.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return AuditLogPage(items=items, total=total, limit=limit, offset=offset)


@dataclass
class ComplianceReport:
    total_logs: int
    counts_by_action: dict = field(default_factory=dict)
    counts_by_status: dict = field(default_factory=dict)
    recent_activity_count: int = 0
    critical_event_count: int = 0
    data_integrity_ok: bool = True
    retention_ok: bool = True
    gap_heuristic_ok: bool = True
    suspicious_gaps: list = field(default_factory=list)
    generated_at: datetime | None = None

    @property
    def overall_compliant(self) -> bool:
        return self.data_integrity_ok and self.retention_ok and self.gap_heuristic_ok

    def to_dict(self) -> dict:
        return {
            "total_logs": self.total_logs,
            "counts_by_action": self.counts_by_action,
            "counts_by_status": self.counts_by_status,
            "recent_activity_count": self.recent_activity_count,
            "critical_event_count": self.critical_event_count,
            "data_integrity_ok": self.data_integrity_ok,
            "retention_ok": self.retention_ok,
            "gap_heuristic_ok": self.gap_heuristic_ok,
            "suspicious_gaps": self.suspicious_gaps,
            "overall_compliant": self.overall_compliant,
            "generated_at": to_utc_z(self.generated_at),
        }


def find_suspicious_gaps(
    timestamps: list[datetime],
    *,
    threshold_hours: float,
    business_start: int,
    business_end: int,
) -> list[dict]:
    """
    Scan timestamps (newest first) for long silences.

    A gap counts when consecutive rows are more than threshold_hours apart
    and the older row falls inside business hours. This is advisory: a quiet
    afternoon looks exactly like deleted rows, so false positives are
    expected.
    """
    gaps = []
    for i in range(1, len(timestamps)):
        newer = timestamps[i - 1]
        older = timestamps[i]
        gap_hours = hours_between(newer, older)
        if gap_hours > threshold_hours and in_business_hours(older, business_start, business_end):
            gaps.append({
                "from": to_utc_z(older),
                "to": to_utc_z(newer),
                "hours": round(gap_hours, 2),
            })
    return gaps


def compute_compliance_report(*, now: datetime | None = None) -> ComplianceReport:
    cfg = current_app.config
    now = now or utcnow()

    total = db.session.query(func.count(AuditLogEntry.id)).scalar() or 0

    counts_by_action = {
        action: count
        for action, count in db.session.query(AuditLogEntry.action, func.count(AuditLogEntry.id))
        .group_by(AuditLogEntry.action)
        .all()
    }
    counts_by_status = {
        (status or "unknown"): count
        for status, count in db.session.query(AuditLogEntry.status, func.count(AuditLogEntry.id))
        .group_by(AuditLogEntry.status)
        .all()
    }

    recent = db.session.query(func.count(AuditLogEntry.id)).filter(
        AuditLogEntry.timestamp >= now - timedelta(hours=24)
    ).scalar() or 0

    critical = db.session.query(func.count(AuditLogEntry.id)).filter(
        AuditLogEntry.action.in_(CRITICAL_ACTIONS),
        AuditLogEntry.resource.in_(CRITICAL_RESOURCES),
    ).scalar() or 0

    broken = db.session.query(func.count(AuditLogEntry.id)).filter(
        or_(
            AuditLogEntry.user_id.is_(None),
            AuditLogEntry.user_email.is_(None),
            AuditLogEntry.action.is_(None),
            AuditLogEntry.resource.is_(None),
        )
    ).scalar() or 0

    # Flag only; nothing is purged here
    retention_cutoff = now - timedelta(days=int(cfg["AUDIT_RETENTION_DAYS"]))
    too_old = db.session.query(func.count(AuditLogEntry.id)).filter(
        AuditLogEntry.timestamp < retention_cutoff
    ).scalar() or 0

    recent_rows = (
        db.session.query(AuditLogEntry.timestamp)
        .order_by(AuditLogEntry.timestamp.desc(), AuditLogEntry.id.desc())
        .limit(int(cfg["AUDIT_GAP_SCAN_LIMIT"]))
        .all()
    )
    gaps = find_suspicious_gaps(
        [ts for (ts,) in recent_rows],
        threshold_hours=float(cfg["AUDIT_GAP_THRESHOLD_HOURS"]),
        business_start=int(cfg["AUDIT_BUSINESS_HOURS_START"]),
        business_end=int(cfg["AUDIT_BUSINESS_HOURS_END"]),
    )
    for gap in gaps:
        logger.warning("Suspicious audit gap: %.2f hours between %s and %s", gap["hours"], gap["from"], gap["to"])

    report = ComplianceReport(
        total_logs=total,
        counts_by_action=counts_by_action,
        counts_by_status=counts_by_status,
        recent_activity_count=recent,
        critical_event_count=critical,
        data_integrity_ok=broken == 0,
        retention_ok=too_old == 0,
        gap_heuristic_ok=not gaps,
        suspicious_gaps=gaps,
        generated_at=now,
    )
    logger.info(
        "Audit compliance: total=%d integrity=%s retention=%s gaps=%s",
        total, report.data_integrity_ok, report.retention_ok, report.gap_heuristic_ok,
    )
    return report
