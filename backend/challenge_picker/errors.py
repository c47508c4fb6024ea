"""Domain errors raised by services and rendered as structured responses.

Every error carries a stable ``code`` and an HTTP ``status_code``. Extra
keyword arguments end up next to ``code`` and ``message`` in the response body
so clients can act on them (e.g. ``rateLimitSeconds`` for auto-retry).
"""


class PickerError(Exception):
    code = "ERROR"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None, *, code: str | None = None, **extra):
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, **self.extra}


class Unauthorized(PickerError):
    code = "UNAUTHORIZED"
    status_code = 401
    default_message = "Authentication required"


class AuthRequired(Unauthorized):
    code = "AUTH_REQUIRED"
    default_message = "This session requires you to be logged in to view"


class Forbidden(PickerError):
    code = "FORBIDDEN"
    status_code = 403
    default_message = "You do not have access to this playthrough"


class NotFound(PickerError):
    code = "NOT_FOUND"
    status_code = 404
    default_message = "Not found"


class InvalidTransition(PickerError):
    code = "INVALID_TRANSITION"
    status_code = 409
    default_message = "This transition is not allowed in the current status"


class Conflict(PickerError):
    code = "CONFLICT"
    status_code = 409
    default_message = "Request conflicts with the current state"


class ConcurrencyLimitReached(Conflict):
    code = "CONCURRENCY_LIMIT_REACHED"
    default_message = "Maximum concurrent rules reached"


class ConcurrentModification(Conflict):
    code = "CONCURRENT_MODIFICATION"
    default_message = "The playthrough was modified concurrently, please retry"


class RateLimited(PickerError):
    code = "RATE_LIMITED"
    status_code = 429
    default_message = "Picking too fast"

    def __init__(self, seconds_remaining: float, message: str | None = None):
        super().__init__(
            message or f"Wait {seconds_remaining:.1f}s before picking again",
            rateLimitSeconds=seconds_remaining,
        )
        self.seconds_remaining = seconds_remaining


class RuleOnCooldown(PickerError):
    code = "RULE_ON_COOLDOWN"
    status_code = 429
    default_message = "This rule is on cooldown"

    def __init__(self, rule_id: int, seconds_remaining: float):
        super().__init__(
            f"Rule {rule_id} is on cooldown for another {seconds_remaining:.0f}s",
            ruleId=rule_id,
            cooldownSeconds=seconds_remaining,
        )
        self.seconds_remaining = seconds_remaining


class ValidationError(PickerError):
    code = "VALIDATION_ERROR"
    status_code = 422
    default_message = "Invalid request"


class InternalError(PickerError):
    code = "INTERNAL_ERROR"
    status_code = 500
    default_message = "An unexpected error occurred"
