"""
Login Tracking and Throttling Service

WHY: Every login and logout is attributable, and brute-force password
attempts are slowed down by a temporary lockout.

FEATURES:
- One LoginLog row per attempt plus a LOGIN/LOGOUT audit row
- Lockout after LOGIN_MAX_FAILED_ATTEMPTS failures within LOGIN_LOCKOUT_MINUTES
- Lockout lasts LOGIN_LOCKOUT_MINUTES from the most recent failure
- Failed attempts are counted per email (the identifier the user typed)

Password checking itself lives outside this backend; callers report the
outcome here.
"""

from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import LoginLog
from ..time_utils import utcnow
from . import audit_service
from .audit_service import Actor


def _max_failed_attempts() -> int:
    return int(current_app.config["LOGIN_MAX_FAILED_ATTEMPTS"])


def _lockout_window() -> timedelta:
    return timedelta(minutes=int(current_app.config["LOGIN_LOCKOUT_MINUTES"]))


def detect_device_type(user_agent: str | None) -> str:
    if user_agent and "Mobile" in user_agent:
        return "mobile"
    return "desktop"


def record_login(
    *,
    email: str,
    success: bool,
    user_id: str | None = None,
    user_name: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    location: str | None = None,
    error_message: str | None = None,
) -> LoginLog:
    """
    Record a login attempt (success or failure).

    The LoginLog row and its audit row are committed together.
    """
    now = utcnow()
    log = LoginLog(
        user_id=user_id,
        email=email,
        ip_address=ip_address,
        user_agent=user_agent,
        status="success" if success else "failed",
        login_time=now,
        location=location,
        device_type=detect_device_type(user_agent),
    )
    db.session.add(log)

    audit_service.record_action(
        action="LOGIN",
        resource="auth",
        actor=Actor(
            user_id=user_id or email,
            user_email=email,
            user_name=user_name,
            ip_address=ip_address,
            user_agent=user_agent,
        ),
        details={"location": location, "device_type": log.device_type},
        status="success" if success else "failed",
        error_message=error_message,
        commit=False,
    )
    db.session.commit()
    return log


def record_logout(
    *,
    user_id: str,
    email: str,
    user_name: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
):
    return audit_service.record_action(
        action="LOGOUT",
        resource="auth",
        actor=Actor(
            user_id=user_id,
            user_email=email,
            user_name=user_name,
            ip_address=ip_address,
            user_agent=user_agent,
        ),
    )


def get_recent_failed_attempts(identifier: str) -> int:
    """Count failed attempts for an email within the lockout window."""
    cutoff = utcnow() - _lockout_window()
    return db.session.query(LoginLog).filter(
        LoginLog.status == "failed",
        LoginLog.email == identifier,
        LoginLog.login_time >= cutoff,
    ).count()


def is_account_locked(identifier: str) -> tuple[bool, int | None]:
    """
    Check if an account is currently locked due to too many failed attempts.

    Returns:
    - (True, seconds_remaining) if locked
    - (False, None) if not locked
    """
    if get_recent_failed_attempts(identifier) < _max_failed_attempts():
        return False, None

    most_recent = db.session.query(LoginLog).filter(
        LoginLog.status == "failed",
        LoginLog.email == identifier,
    ).order_by(LoginLog.login_time.desc()).first()
    if most_recent is None:
        return False, None

    lockout_end = most_recent.login_time + _lockout_window()
    now = utcnow()
    if now < lockout_end:
        return True, int((lockout_end - now).total_seconds())
    return False, None


def get_lockout_status(identifier: str) -> dict:
    failed_count = get_recent_failed_attempts(identifier)
    is_locked, seconds_remaining = is_account_locked(identifier)

    return {
        "identifier": identifier,
        "locked": is_locked,
        "failed_attempts": failed_count,
        "max_attempts": _max_failed_attempts(),
        "seconds_until_unlock": seconds_remaining,
        "lockout_minutes": int(_lockout_window().total_seconds() / 60),
    }
