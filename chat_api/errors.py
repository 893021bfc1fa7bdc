class ChatError(Exception):
    """Base class for errors surfaced by the stores to their callers."""

    status_code = 500
    default_detail = "Internal error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(ChatError):
    status_code = 422
    default_detail = "Invalid input"


class Conflict(ChatError):
    status_code = 409
    default_detail = "Already exists"


class NotFound(ChatError):
    status_code = 404
    default_detail = "Not found"


class Forbidden(ChatError):
    # ownership violations are answered with 401 Unauthorized
    status_code = 401
    default_detail = "Not allowed"


class StoreError(ChatError):
    status_code = 500
    default_detail = "Storage failure"
