"""
Custom exceptions for the bullion core module.

All bullion-specific exceptions inherit from BullionError for easy catching.
"""


class BullionError(Exception):
    """Base exception for all bullion errors."""

    def __init__(self, message: str, code: str = None):
        super().__init__(message)
        self.message = message
        self.code = code


class DatabaseError(BullionError):
    """Database operation errors."""

    def __init__(self, message: str, code: str = "DB_ERROR"):
        super().__init__(message, code)


class NotAuthenticated(BullionError):
    """Raised when a mutation is attempted without an active user context."""

    def __init__(self, message: str = "User not authenticated", code: str = "NOT_AUTHENTICATED"):
        super().__init__(message, code)


class ValidationFailure(BullionError):
    """Malformed field on a record, query or workflow input."""

    def __init__(
        self,
        message: str,
        field: str = None,
        record_id: str = None,
        code: str = "VALIDATION_FAILURE"
    ):
        super().__init__(message, code)
        self.field = field
        self.record_id = record_id


class ReferentialIntegrityViolation(BullionError):
    """
    Raised when a mutation would orphan or bypass a derived record.

    This includes:
    - Deleting or editing a derived raw gold ledger entry directly
    - Deleting a trade/jewellery transaction with dependents when cascade is off
    - Deleting a merchant or karigar that still has trades
    """

    def __init__(
        self,
        message: str,
        record_id: str = None,
        reference_id: str = None,
        code: str = "REFERENTIAL_INTEGRITY"
    ):
        super().__init__(message, code)
        self.record_id = record_id
        self.reference_id = reference_id


class InvalidRange(BullionError):
    """Raised when the end of a date/month range precedes its start."""

    def __init__(self, start, end, code: str = "INVALID_RANGE"):
        super().__init__(f"Range end {end} precedes start {start}", code)
        self.start = start
        self.end = end


class ConfigurationError(BullionError):
    """Invalid or unreadable configuration (categories, weight brackets)."""

    def __init__(self, message: str, code: str = "CONFIG_ERROR"):
        super().__init__(message, code)


class RecordNotFound(BullionError):
    """Raised when a record id does not exist in the store."""

    def __init__(self, kind: str, record_id: str, code: str = "RECORD_NOT_FOUND"):
        super().__init__(f"{kind} not found: {record_id}", code)
        self.kind = kind
        self.record_id = record_id


class WorkflowStateError(BullionError):
    """Raised when a pending sale transition is not allowed from the current state."""

    def __init__(self, message: str, group_id: str = None, code: str = "WORKFLOW_STATE"):
        super().__init__(message, code)
        self.group_id = group_id
