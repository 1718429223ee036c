"""Application error taxonomy.

Every error carries an HTTP status, a stable ``error_code`` and a
human-readable message so the caller can render feedback without
inspecting the exception type.  Validator blockers and warnings travel
verbatim in ``details``.
"""

from fastapi import status


class BottleworksException(Exception):
    """Base exception for back-office application errors."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "INTERNAL_ERROR",
        details: dict | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details
        super().__init__(self.message)


class BusinessLogicError(BottleworksException):
    """Exception for business logic violations."""

    def __init__(
        self,
        message: str,
        error_code: str = "BUSINESS_LOGIC_ERROR",
        details: dict | None = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            error_code=error_code,
            details=details,
        )


class ResourceNotFoundError(BottleworksException):
    """Exception for resources not found."""

    def __init__(self, resource: str, identifier: str):
        self.resource = resource
        self.identifier = identifier
        super().__init__(
            message=f"{resource} not found: {identifier}",
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="RESOURCE_NOT_FOUND",
        )


class StateConflictError(BottleworksException):
    """Base for requests that clash with the current state of a record."""

    def __init__(self, message: str, error_code: str = "STATE_CONFLICT"):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code=error_code,
        )


# ── Order transitions ────────────────────────────────────────

class BlockedTransition(BottleworksException):
    """Validator (or a local invariant) returned one or more blockers."""

    def __init__(self, current_status: str, new_status: str, blockers: list[str]):
        self.current_status = current_status
        self.new_status = new_status
        self.blockers = list(blockers)
        super().__init__(
            message=f"Cannot change status from {current_status} to {new_status}: "
                    + "; ".join(self.blockers),
            status_code=status.HTTP_409_CONFLICT,
            error_code="BLOCKED_TRANSITION",
            details={"blockers": self.blockers},
        )


class OverrideRequired(BusinessLogicError):
    """Transition is only allowed with a justification note."""

    def __init__(self, current_status: str, new_status: str, warnings: list[str]):
        self.current_status = current_status
        self.new_status = new_status
        self.warnings = list(warnings)
        super().__init__(
            message=f"Changing status from {current_status} to {new_status} "
                    "requires a justification note",
            error_code="OVERRIDE_REQUIRED",
            details={"warnings": self.warnings},
        )


class InvalidOrderState(StateConflictError):
    def __init__(self, message: str):
        super().__init__(message, error_code="INVALID_ORDER_STATE")


class QuoteExpired(BottleworksException):
    def __init__(self, order_uid: str):
        super().__init__(
            message=f"Quote {order_uid} has expired. Please contact us to request a new quote.",
            status_code=status.HTTP_410_GONE,
            error_code="QUOTE_EXPIRED",
        )


# ── Batches and workflow steps ───────────────────────────────

class InvalidStepState(StateConflictError):
    def __init__(self, message: str):
        super().__init__(message, error_code="INVALID_STEP_STATE")


class InvalidBatchState(StateConflictError):
    def __init__(self, message: str):
        super().__init__(message, error_code="INVALID_BATCH_STATE")


class ConflictingUpdate(StateConflictError):
    """A conditional write found the row changed since it was read."""

    def __init__(self, resource: str, identifier: str, expected: dict | None = None):
        self.expected = expected or {}
        super().__init__(
            f"{resource} {identifier} was changed by someone else; reload and retry",
            error_code="CONFLICTING_UPDATE",
        )


# ── Quantities ───────────────────────────────────────────────

class QuantityMismatch(BusinessLogicError):
    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message=f"Split quantities total {actual} but the batch plans {expected} bottles",
            error_code="QUANTITY_MISMATCH",
            details={"expected": expected, "actual": actual},
        )


class QuantityOverrun(BusinessLogicError):
    def __init__(self, planned: int, good: int, scrap: int):
        super().__init__(
            message=f"Good ({good}) + scrap ({scrap}) exceeds planned quantity ({planned})",
            error_code="QUANTITY_OVERRUN",
            details={"planned": planned, "good": good, "scrap": scrap},
        )


class InvalidQuantity(BusinessLogicError):
    def __init__(self, message: str):
        super().__init__(message=message, error_code="INVALID_QUANTITY")


# ── Payments ─────────────────────────────────────────────────

class PaymentNotCompleted(BottleworksException):
    def __init__(self, capture_status: str):
        super().__init__(
            message=f"Payment not completed (gateway status: {capture_status})",
            status_code=status.HTTP_402_PAYMENT_REQUIRED,
            error_code="PAYMENT_NOT_COMPLETED",
        )


# ── Infrastructure ───────────────────────────────────────────

class UpstreamUnavailable(BottleworksException):
    """Persistence store or validator could not be reached."""

    def __init__(self, message: str = "Database temporarily unavailable. Please try again."):
        super().__init__(
            message=message,
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            error_code="UPSTREAM_UNAVAILABLE",
        )
