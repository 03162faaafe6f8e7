# Overview: Request decorators for API routes: actor attribution and error mapping.

from functools import wraps

from flask import current_app, g, request

from .errors import ConversionNotFoundError, InsufficientStockError, ItemNotFoundError, ValidationError
from .services.audit_service import Actor


def actor_from_request() -> Actor:
    """
    Build the acting user from request headers.

    There is no authentication in this backend; the headers only attribute
    audit rows. Missing headers fall back to the system user downstream.
    """
    return Actor(
        user_id=request.headers.get("X-User-Id") or None,
        user_email=request.headers.get("X-User-Email") or None,
        user_name=request.headers.get("X-User-Name") or None,
        ip_address=request.headers.get("X-Forwarded-For", request.remote_addr or "").split(",")[0].strip() or None,
        user_agent=request.headers.get("User-Agent"),
    )


def with_actor(f):
    """Expose the request actor as g.actor."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        g.actor = actor_from_request()
        return f(*args, **kwargs)

    return decorated_function


def handle_service_errors(f):
    """
    Map business errors to HTTP status codes.

    ValidationError 400, ItemNotFoundError 404, InsufficientStockError 409,
    ConversionNotFoundError 422. Anything else is logged and returned as 500.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except ValidationError as e:
            return {"error": str(e)}, 400
        except ItemNotFoundError as e:
            return {"error": str(e)}, 404
        except InsufficientStockError as e:
            return {
                "error": str(e),
                "available": e.available,
                "requested": e.requested,
            }, 409
        except ConversionNotFoundError as e:
            return {
                "error": str(e),
                "from_unit_id": e.from_unit_id,
                "to_unit_id": e.to_unit_id,
            }, 422
        except Exception:
            current_app.logger.exception("Unhandled error in %s %s", request.method, request.path)
            return {"error": "Internal server error"}, 500

    return decorated_function
