"""
Typed errors raised by the billing ledger.

Every error carries a machine-readable ``code`` and the HTTP status the API
maps it to, so callers catch by type and clients branch on ``code``:

    LedgerError
    +-- ValidationFailedError       VALIDATION_ERROR        422
    |   +-- FileValidationError     FILE_VALIDATION_ERROR   400
    +-- AuthorizationError          FORBIDDEN               403
    +-- NotFoundError               NOT_FOUND               404
    +-- InvalidStateError           INVALID_STATE           409
    |   +-- AlreadyProcessedError   ALREADY_PROCESSED       409
    +-- DuplicateGenerationError    DUPLICATE_GENERATION    409
    +-- EmptyBatchError             EMPTY_BATCH             422
"""


class LedgerError(Exception):
    code: str = "LEDGER_ERROR"
    status_code: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationFailedError(LedgerError):
    code = "VALIDATION_ERROR"
    status_code = 422

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class FileValidationError(ValidationFailedError):
    code = "FILE_VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message, field="proof_file")


class AuthorizationError(LedgerError):
    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(LedgerError):
    code = "NOT_FOUND"
    status_code = 404

    def __init__(self, entity: str, entity_id: object):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found")


class InvalidStateError(LedgerError):
    code = "INVALID_STATE"
    status_code = 409

    def __init__(self, message: str, current_status: str | None = None):
        self.current_status = current_status
        super().__init__(message)


class AlreadyProcessedError(InvalidStateError):
    """A terminal-state transition lost to an earlier (or concurrent) review."""

    code = "ALREADY_PROCESSED"

    def __init__(self, payment_id: object, current_status: str | None = None):
        self.payment_id = payment_id
        super().__init__("Payment has already been processed", current_status)


class DuplicateGenerationError(LedgerError):
    code = "DUPLICATE_GENERATION"
    status_code = 409


class EmptyBatchError(LedgerError):
    code = "EMPTY_BATCH"
    status_code = 422
