class ApiError(Exception):
    """Base class for failures that map onto a JSON ``{"error": ...}`` response."""

    status_code = 500

    def __init__(self, message=None):
        super().__init__(message)
        self.message = message or self.default_message

    default_message = "Internal server error"


class BadInput(ApiError):
    status_code = 400
    default_message = "Invalid request"


class Unauthenticated(ApiError):
    status_code = 401
    default_message = "Unauthorized"


class Forbidden(ApiError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(ApiError):
    status_code = 404
    default_message = "Not found"


class NotFoundOrForbidden(NotFound):
    """Ownership mismatch, reported exactly like a missing row."""

    default_message = "Not found or not authorized"


class UpstreamServiceFailure(ApiError):
    status_code = 500
    default_message = "Upstream service failed"


class GradingServiceUnavailable(UpstreamServiceFailure):
    default_message = "Failed to grade submission with AI"
