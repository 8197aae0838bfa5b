"""Error taxonomy: codes and HTTP statuses."""
import uuid

import pytest

from app.core.exceptions import (
    AlreadyProcessedError,
    AuthorizationError,
    DuplicateGenerationError,
    EmptyBatchError,
    FileValidationError,
    InvalidStateError,
    LedgerError,
    NotFoundError,
    ValidationFailedError,
)


class TestTaxonomy:
    @pytest.mark.parametrize("exc, code, status", [
        (ValidationFailedError("bad"), "VALIDATION_ERROR", 422),
        (FileValidationError("bad file"), "FILE_VALIDATION_ERROR", 400),
        (AuthorizationError("no"), "FORBIDDEN", 403),
        (NotFoundError("Invoice", 1), "NOT_FOUND", 404),
        (InvalidStateError("nope", "PAID"), "INVALID_STATE", 409),
        (AlreadyProcessedError(1, "APPROVED"), "ALREADY_PROCESSED", 409),
        (DuplicateGenerationError("dup"), "DUPLICATE_GENERATION", 409),
        (EmptyBatchError("none"), "EMPTY_BATCH", 422),
    ])
    def test_code_and_status(self, exc, code, status):
        assert isinstance(exc, LedgerError)
        assert exc.code == code
        assert exc.status_code == status

    def test_already_processed_is_invalid_state(self):
        payment_id = uuid.uuid4()
        exc = AlreadyProcessedError(payment_id, "REJECTED")
        assert isinstance(exc, InvalidStateError)
        assert exc.payment_id == payment_id
        assert exc.current_status == "REJECTED"
        assert str(exc) == "Payment has already been processed"

    def test_not_found_message(self):
        assert NotFoundError("Receipt", uuid.uuid4()).message == "Receipt not found"
