"""Failure taxonomy shared by every service and route.

Each error carries the envelope ``code`` a client sees and the HTTP status the
transport maps it to. Services raise these; ``register_error_handlers`` turns
them into the unified JSON envelope.
"""


class ServiceError(Exception):
    code = "Error"
    status = 400
    message = "Request failed"

    def __init__(self, message: str | None = None, data: dict | None = None):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.data = data


# not-found
class NotFound(ServiceError):
    code = "NotFound"
    status = 404
    message = "Not found"


# policy-denied
class QuotaExceeded(ServiceError):
    code = "QuotaExceeded"
    status = 402
    message = "Usage limit reached for your plan"


class SubscriptionInvalid(ServiceError):
    code = "SubscriptionInvalid"
    status = 402
    message = "No active subscription"


# idempotency conflicts
class AlreadyExists(ServiceError):
    code = "AlreadyExists"
    status = 409
    message = "Already exists"


class Conflict(ServiceError):
    code = "Conflict"
    status = 409
    message = "Conflict"


class AlreadyConsumed(ServiceError):
    """Raised on a repeated payment-session resolution.

    ``owner_id`` and ``subscription`` hold the outcome of the first resolution
    so a caller that tolerates replay can use them.
    """

    code = "AlreadyConsumed"
    status = 409
    message = "Payment session already consumed"

    def __init__(self, message=None, data=None, owner_id=None, subscription=None):
        super().__init__(message, data)
        self.owner_id = owner_id
        self.subscription = subscription


# adapters
class ValidationError(ServiceError):
    code = "ValidationError"
    status = 400
    message = "Invalid request"


class Unauthorized(ServiceError):
    code = "Unauthorized"
    status = 401
    message = "Unauthorized"


# infrastructure faults
class InternalError(ServiceError):
    code = "InternalError"
    status = 500
    message = "Internal error"
