# backend/bakesewa/routes/audit.py
"""
Audit, compliance and login-tracking routes.

There is no update or delete route for audit rows: the log is append-only.
Login events are reported here by whatever front end checks passwords.
"""
from flask import Blueprint, g, request

from ..decorators import handle_service_errors, with_actor
from ..errors import ValidationError
from ..validation import optional_datetime, reject_unknown_fields, require_fields

audit_bp = Blueprint("audit", __name__, url_prefix="/api/audit")
auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

LOGIN_EVENT_FIELDS = {"event", "email", "success", "user_id", "user_name", "location", "error_message"}


@audit_bp.get("/logs")
@handle_service_errors
def list_audit_logs_route():
    """
    Query params (all optional):
    - user_id, action, resource
    - start, end: ISO-8601, inclusive
    - limit (default AUDIT_QUERY_DEFAULT_LIMIT), offset
    """
    from ..services.audit_service import query_logs

    args = request.args
    page = query_logs(
        user_id=args.get("user_id"),
        action=args.get("action"),
        resource=args.get("resource"),
        start=optional_datetime(args, "start"),
        end=optional_datetime(args, "end"),
        limit=args.get("limit", type=int),
        offset=args.get("offset", default=0, type=int),
    )
    return page.to_dict()


@audit_bp.get("/compliance")
@handle_service_errors
def compliance_report_route():
    from ..services.audit_service import compute_compliance_report

    return compute_compliance_report().to_dict()


@audit_bp.get("/security")
@handle_service_errors
def security_metrics_route():
    """
    Run the security detectors once and return metrics.

    Query params:
    - scan: "0" to return metrics without running the detectors
    """
    from ..services.security_monitor import get_security_monitor

    monitor = get_security_monitor()
    raised = []
    if request.args.get("scan", "1") != "0":
        raised = monitor.run_checks()
    metrics = monitor.get_security_metrics()
    metrics["new_alerts"] = [a.to_dict() for a in raised]
    return metrics


@auth_bp.post("/login-events")
@with_actor
@handle_service_errors
def login_event_route():
    """
    Record a login or logout.

    Body: {"event": "login"|"logout", "email": ..., "success": true|false,
           "user_id": ..., "user_name": ..., "location": ...}
    IP address and user agent come from the request.
    """
    payload = request.get_json(silent=True) or {}
    require_fields(payload, "email")
    reject_unknown_fields(payload, LOGIN_EVENT_FIELDS)

    from ..services import login_throttle_service

    event = payload.get("event", "login")
    if event == "logout":
        if not payload.get("user_id"):
            raise ValidationError("user_id is required for logout")
        entry = login_throttle_service.record_logout(
            user_id=str(payload["user_id"]),
            email=payload["email"],
            user_name=payload.get("user_name"),
            ip_address=g.actor.ip_address,
            user_agent=g.actor.user_agent,
        )
        return entry.to_dict(), 201

    if event != "login":
        raise ValidationError("event must be login or logout")
    if not isinstance(payload.get("success"), bool):
        raise ValidationError("success must be true or false")

    log = login_throttle_service.record_login(
        email=payload["email"],
        success=payload["success"],
        user_id=str(payload["user_id"]) if payload.get("user_id") is not None else None,
        user_name=payload.get("user_name"),
        ip_address=g.actor.ip_address,
        user_agent=g.actor.user_agent,
        location=payload.get("location"),
        error_message=payload.get("error_message"),
    )
    return {
        "login": log.to_dict(),
        "lockout": login_throttle_service.get_lockout_status(payload["email"]),
    }, 201


@auth_bp.get("/lockout/<path:identifier>")
def lockout_status_route(identifier: str):
    from ..services.login_throttle_service import get_lockout_status

    return get_lockout_status(identifier)
