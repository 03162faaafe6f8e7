# Overview: Security anomaly detection over login and audit logs; in-memory alert list.

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import AuditLogEntry, LoginLog
from ..time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)

SEVERITIES = ("LOW", "MEDIUM", "HIGH", "CRITICAL")
ROLE_HIERARCHY = ("staff", "supervisor", "marketer", "manager", "admin", "super_admin")


@dataclass
class SecurityAlert:
    type: str
    severity: str
    title: str
    description: str
    user_id: Optional[str] = None
    user_email: Optional[str] = None
    ip_address: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utcnow)
    id: str = field(default_factory=lambda: f"alert_{uuid.uuid4().hex[:12]}")

    @property
    def dedupe_key(self) -> tuple:
        return (self.type, self.user_id, self.ip_address, self.metadata.get("key"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity,
            "title": self.title,
            "description": self.description,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "ip_address": self.ip_address,
            "metadata": self.metadata,
            "timestamp": to_utc_z(self.timestamp),
        }


def is_role_escalation(old_role: str | None, new_role: str | None) -> bool:
    """True when new_role ranks above old_role. Unknown old roles rank lowest."""
    if not new_role or new_role not in ROLE_HIERARCHY:
        return False
    old_index = ROLE_HIERARCHY.index(old_role) if old_role in ROLE_HIERARCHY else -1
    return ROLE_HIERARCHY.index(new_role) > old_index


def calculate_risk_score(failed_logins: int, suspicious_activities: int, active_threats: int) -> int:
    score = min(failed_logins * 2, 30)
    score += min(suspicious_activities * 3, 40)
    score += active_threats * 10
    return min(score, 100)


class SecurityMonitor:
    """
    Periodic threat detection over LoginLog and AuditLogEntry rows.

    Nothing runs in the background: call run_checks() from the CLI, a
    scheduler or an endpoint. Alerts live in memory for ALERT_RETENTION
    and are handed to every registered callback. A failing detector or
    callback is logged and does not stop the others.
    """

    BRUTE_FORCE_THRESHOLD = 5
    BRUTE_FORCE_WINDOW = timedelta(minutes=15)
    SUSPICIOUS_LOGIN_THRESHOLD = 3
    SUSPICIOUS_LOGIN_WINDOW = timedelta(hours=24)
    BULK_OPERATION_THRESHOLD = 20
    BULK_OPERATION_WINDOW = timedelta(minutes=10)
    API_ABUSE_THRESHOLD = 100
    API_ABUSE_WINDOW = timedelta(minutes=1)
    ROLE_CHANGE_WINDOW = timedelta(minutes=30)
    ACTIVE_WINDOW = timedelta(hours=1)
    ALERT_RETENTION = timedelta(hours=24)

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._alerts: list[SecurityAlert] = []
        self._callbacks: list[Callable[[SecurityAlert], Any]] = []

    def on_alert(self, callback: Callable[[SecurityAlert], Any]) -> None:
        self._callbacks.append(callback)

    def enable(self) -> None:
        self.enabled = True
        logger.info("Security monitoring enabled")

    def disable(self) -> None:
        self.enabled = False
        logger.info("Security monitoring disabled")

    def reset(self) -> None:
        self._alerts = []

    def run_checks(self, *, now: datetime | None = None) -> list[SecurityAlert]:
        """Run every detector once; returns the alerts raised by this run."""
        if not self.enabled:
            return []
        now = now or utcnow()
        self.clean_old_alerts(now=now)

        raised = []
        for detector in (
            self.detect_brute_force,
            self.detect_suspicious_logins,
            self.detect_bulk_operations,
            self.detect_api_abuse,
            self.detect_role_escalation,
        ):
            try:
                candidates = detector(now)
            except Exception:
                logger.exception("Security detector %s failed", detector.__name__)
                continue
            for alert in candidates:
                if self._add_alert(alert, now=now):
                    raised.append(alert)
        return raised

    def _add_alert(self, alert: SecurityAlert, *, now: datetime) -> bool:
        # One alert per condition while it stays active
        for existing in self._alerts:
            if existing.dedupe_key == alert.dedupe_key and existing.timestamp > now - self.ACTIVE_WINDOW:
                return False

        alert.timestamp = now
        self._alerts.append(alert)
        logger.warning(
            "SECURITY ALERT [%s] %s: %s (user=%s ip=%s)",
            alert.severity, alert.title, alert.description, alert.user_email, alert.ip_address,
        )
        for callback in self._callbacks:
            try:
                callback(alert)
            except Exception:
                logger.exception("Security alert callback failed for %s", alert.id)
        return True

    def detect_brute_force(self, now: datetime) -> list[SecurityAlert]:
        rows = (
            db.session.query(LoginLog.ip_address, func.count(LoginLog.id))
            .filter(LoginLog.status == "failed", LoginLog.login_time >= now - self.BRUTE_FORCE_WINDOW)
            .group_by(LoginLog.ip_address)
            .having(func.count(LoginLog.id) >= self.BRUTE_FORCE_THRESHOLD)
            .all()
        )
        return [
            SecurityAlert(
                type="BRUTE_FORCE",
                severity="HIGH",
                title="Brute Force Attack Detected",
                description=f"{count} failed login attempts from IP {ip} in the last 15 minutes",
                user_id="system",
                user_email="system",
                ip_address=ip,
                metadata={"attempt_count": count, "time_window": "15 minutes"},
            )
            for ip, count in rows
        ]

    def detect_suspicious_logins(self, now: datetime) -> list[SecurityAlert]:
        location_count = func.count(func.distinct(LoginLog.location))
        rows = (
            db.session.query(
                LoginLog.user_id,
                LoginLog.email,
                location_count,
                func.count(func.distinct(LoginLog.ip_address)),
            )
            .filter(LoginLog.status == "success", LoginLog.login_time >= now - self.SUSPICIOUS_LOGIN_WINDOW)
            .group_by(LoginLog.user_id, LoginLog.email)
            .having(location_count >= self.SUSPICIOUS_LOGIN_THRESHOLD)
            .all()
        )
        return [
            SecurityAlert(
                type="SUSPICIOUS_LOGIN",
                severity="MEDIUM",
                title="Suspicious Login Pattern",
                description=f"User {email} logged in from {locations} different locations in 24 hours",
                user_id=user_id,
                user_email=email,
                ip_address="multiple",
                metadata={"location_count": locations, "ip_count": ips},
            )
            for user_id, email, locations, ips in rows
        ]

    def detect_bulk_operations(self, now: datetime) -> list[SecurityAlert]:
        rows = (
            db.session.query(AuditLogEntry.user_id, AuditLogEntry.user_email, func.count(AuditLogEntry.id))
            .filter(
                AuditLogEntry.timestamp >= now - self.BULK_OPERATION_WINDOW,
                AuditLogEntry.action.in_(("CREATE", "UPDATE", "DELETE")),
            )
            .group_by(AuditLogEntry.user_id, AuditLogEntry.user_email)
            .having(func.count(AuditLogEntry.id) >= self.BULK_OPERATION_THRESHOLD)
            .all()
        )
        return [
            SecurityAlert(
                type="BULK_OPERATION",
                severity="MEDIUM",
                title="Bulk Operations Detected",
                description=f"User {email} performed {count} operations in 10 minutes",
                user_id=user_id,
                user_email=email,
                ip_address="unknown",
                metadata={"operation_count": count, "time_window": "10 minutes"},
            )
            for user_id, email, count in rows
        ]

    def detect_api_abuse(self, now: datetime) -> list[SecurityAlert]:
        rows = (
            db.session.query(AuditLogEntry.ip_address, func.count(AuditLogEntry.id))
            .filter(AuditLogEntry.timestamp >= now - self.API_ABUSE_WINDOW)
            .group_by(AuditLogEntry.ip_address)
            .having(func.count(AuditLogEntry.id) >= self.API_ABUSE_THRESHOLD)
            .all()
        )
        return [
            SecurityAlert(
                type="API_ABUSE",
                severity="HIGH",
                title="API Abuse Detected",
                description=f"Excessive API requests ({count}) from IP {ip} in 1 minute",
                user_id="system",
                user_email="system",
                ip_address=ip,
                metadata={"request_count": count, "time_window": "1 minute"},
            )
            for ip, count in rows
        ]

    def detect_role_escalation(self, now: datetime) -> list[SecurityAlert]:
        changes = (
            db.session.query(AuditLogEntry)
            .filter(
                AuditLogEntry.timestamp >= now - self.ROLE_CHANGE_WINDOW,
                AuditLogEntry.resource == "users",
                AuditLogEntry.action == "UPDATE",
            )
            .order_by(AuditLogEntry.timestamp.desc())
            .all()
        )
        alerts = []
        for change in changes:
            old_role = (change.old_values or {}).get("role")
            new_role = (change.new_values or {}).get("role")
            if not old_role or not new_role or not is_role_escalation(old_role, new_role):
                continue
            alerts.append(SecurityAlert(
                type="ROLE_ESCALATION",
                severity="CRITICAL",
                title="Unauthorized Role Escalation",
                description=f"User {change.user_email} changed user role from {old_role} to {new_role}",
                user_id=change.user_id,
                user_email=change.user_email,
                ip_address=change.ip_address,
                metadata={
                    "key": change.id,
                    "old_role": old_role,
                    "new_role": new_role,
                    "target_user": change.resource_id,
                },
            ))
        return alerts

    def clean_old_alerts(self, *, now: datetime | None = None) -> int:
        cutoff = (now or utcnow()) - self.ALERT_RETENTION
        before = len(self._alerts)
        self._alerts = [a for a in self._alerts if a.timestamp > cutoff]
        return before - len(self._alerts)

    def get_active_alerts(self, *, now: datetime | None = None) -> list[SecurityAlert]:
        cutoff = (now or utcnow()) - self.ACTIVE_WINDOW
        return [a for a in self._alerts if a.timestamp > cutoff]

    def get_all_alerts(self) -> list[SecurityAlert]:
        return list(self._alerts)

    def get_security_metrics(self, *, now: datetime | None = None) -> dict:
        now = now or utcnow()
        since = now - timedelta(hours=24)

        failed_logins = db.session.query(func.count(LoginLog.id)).filter(
            LoginLog.status == "failed", LoginLog.login_time >= since,
        ).scalar() or 0
        suspicious_activities = db.session.query(func.count(AuditLogEntry.id)).filter(
            AuditLogEntry.status == "failed", AuditLogEntry.timestamp >= since,
        ).scalar() or 0

        active_threats = [
            a for a in self.get_active_alerts(now=now) if a.severity in ("HIGH", "CRITICAL")
        ]
        recent = sorted(self._alerts, key=lambda a: a.timestamp, reverse=True)[:10]

        return {
            "failed_logins_24h": failed_logins,
            "suspicious_activities_24h": suspicious_activities,
            "active_threats": [a.to_dict() for a in active_threats],
            "risk_score": calculate_risk_score(failed_logins, suspicious_activities, len(active_threats)),
            "recent_alerts": [a.to_dict() for a in recent],
        }


def get_security_monitor() -> SecurityMonitor:
    return current_app.extensions["security_monitor"]
