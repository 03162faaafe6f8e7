from __future__ import annotations

from sqlalchemy import event

from ..errors import AuditImmutabilityError
from ..extensions import db
from ..time_utils import to_utc_z

AUDIT_ACTIONS = ("CREATE", "UPDATE", "DELETE", "LOGIN", "LOGOUT", "READ", "EXPORT", "IMPORT", "VIEW")
AUDIT_STATUSES = ("success", "failed", "error")


class AuditLogEntry(db.Model):
    """
    User-attributable action log.

    IMMUTABLE: Never update or delete. Append-only for audit integrity.
    register_audit_immutability() installs ORM listeners that reject any
    UPDATE or DELETE issued through a session.

    user_id/user_email are nullable so the compliance integrity check can
    see rows written without an actor instead of failing the insert.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.Index("ix_audit_logs_user_action", "user_id", "action"),
        db.Index("ix_audit_logs_resource", "resource", "resource_id"),
    )

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.String(100), nullable=True, index=True)
    user_email = db.Column(db.String(255), nullable=True)
    user_name = db.Column(db.String(200), nullable=True)

    action = db.Column(db.String(100), nullable=False, index=True)
    resource = db.Column(db.String(100), nullable=False)
    resource_id = db.Column(db.String(100), nullable=True)

    details = db.Column(db.JSON, nullable=True)
    old_values = db.Column(db.JSON, nullable=True)
    new_values = db.Column(db.JSON, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True, index=True)
    user_agent = db.Column(db.Text, nullable=True)

    timestamp = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    status = db.Column(db.String(20), nullable=False, default="success", index=True)
    error_message = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "user_name": self.user_name,
            "action": self.action,
            "resource": self.resource,
            "resource_id": self.resource_id,
            "details": self.details,
            "old_values": self.old_values,
            "new_values": self.new_values,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "timestamp": to_utc_z(self.timestamp),
            "status": self.status,
            "error_message": self.error_message,
        }


class LoginLog(db.Model):
    """One row per login attempt; feeds lockout and brute-force detection."""
    __tablename__ = "login_logs"
    __table_args__ = (
        db.Index("ix_login_logs_email_status_time", "email", "status", "login_time"),
        db.Index("ix_login_logs_ip_status_time", "ip_address", "status", "login_time"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(100), nullable=True, index=True)
    email = db.Column(db.String(255), nullable=False)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.Text, nullable=True)
    # success, failed
    status = db.Column(db.String(20), nullable=False)
    login_time = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    location = db.Column(db.String(200), nullable=True)
    device_type = db.Column(db.String(50), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "email": self.email,
            "ip_address": self.ip_address,
            "status": self.status,
            "login_time": to_utc_z(self.login_time),
            "location": self.location,
            "device_type": self.device_type,
        }


def _reject_audit_update(mapper, connection, target):
    raise AuditImmutabilityError(f"audit log entry {target.id} is immutable and cannot be updated")


def _reject_audit_delete(mapper, connection, target):
    raise AuditImmutabilityError(f"audit log entry {target.id} is immutable and cannot be deleted")


def register_audit_immutability() -> None:
    """Install the append-only guard once per process."""
    if not event.contains(AuditLogEntry, "before_update", _reject_audit_update):
        event.listen(AuditLogEntry, "before_update", _reject_audit_update)
    if not event.contains(AuditLogEntry, "before_delete", _reject_audit_delete):
        event.listen(AuditLogEntry, "before_delete", _reject_audit_delete)
