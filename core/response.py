"""JSON envelopes shared by every route and exception handler."""
from core.errors import WeatherPushError

# Stable error codes for plain HTTP errors raised by routes
HTTP_ERROR_CODES = {
    400: "bad_request",
    404: "not_found",
    405: "method_not_allowed",
    422: "validation_error",
}


def ok(data=None):
    """Standard success envelope."""
    return {"ok": True, "data": data, "error": None}


def error(code: str = "internal_error", message: str = "An internal error occurred"):
    """Standard error envelope."""
    return {"ok": False, "data": None, "error": {"code": code, "message": message}}


def error_from(exc: WeatherPushError, message: str | None = None):
    return error(code=exc.code, message=message or str(exc))


def http_error_code(status_code: int) -> str:
    return HTTP_ERROR_CODES.get(status_code, str(status_code))
