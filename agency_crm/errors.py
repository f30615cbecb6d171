"""Service-level error taxonomy, rendered by the handlers in ``app.py``."""

from __future__ import annotations

from pydantic import ValidationError

REQUEST_SOURCES = ("body", "query", "path", "header", "cookie")


class ServiceError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationFailed(ServiceError):
    """Input failed schema constraints. ``errors`` holds ``{field, message}`` items."""

    status_code = 400
    default_message = "Validation failed"

    def __init__(self, errors: list[dict[str, str]], message: str | None = None):
        self.errors = errors
        super().__init__(message)


class NotAuthenticated(ServiceError):
    status_code = 401
    default_message = "Authentication required"


class AccessDenied(ServiceError):
    status_code = 403
    default_message = "Access denied"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found"


class PersistenceFailure(ServiceError):
    status_code = 500
    default_message = "Failed to process request"


def validate_input(model_cls, data):
    """Validate ``data`` against a pydantic model, raising ``ValidationFailed``."""
    try:
        return model_cls.model_validate(data)
    except ValidationError as exc:
        raise ValidationFailed(format_validation_errors(exc.errors(), request_locations=False)) from exc


def format_validation_errors(errors, *, request_locations: bool = True) -> list[dict[str, str]]:
    """Flatten pydantic error dicts into ``{field, message}`` pairs.

    FastAPI prefixes each location with its source (``body``, ``query``...);
    ``validate_input`` locations carry no prefix, so pass
    ``request_locations=False`` for those.
    """
    out: list[dict[str, str]] = []
    for err in errors:
        loc = list(err.get("loc", ()))
        if request_locations and loc and loc[0] in REQUEST_SOURCES:
            loc = loc[1:]
        loc = [str(part) for part in loc]
        msg = str(err.get("msg", "Invalid value"))
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        out.append({"field": ".".join(loc) or "request", "message": msg})
    return out
