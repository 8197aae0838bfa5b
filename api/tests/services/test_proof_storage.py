"""Proof upload validation and on-disk storage; no database."""
import uuid

import pytest

from conftest import PDF_BYTES, PNG_BYTES
from app.core.config import settings
from app.core.exceptions import FileValidationError
from app.services.proof_storage import ProofStorage, ProofUpload, check_size, validate_proof


def _upload(name="proof.pdf", content_type="application/pdf", content=PDF_BYTES) -> ProofUpload:
    return ProofUpload(filename=name, content_type=content_type, content=content)


class TestValidateProof:
    def test_pdf(self):
        assert validate_proof(_upload()) == "application/pdf"

    def test_png(self):
        assert validate_proof(_upload("scan.PNG", "image/png", PNG_BYTES)) == "image/png"

    def test_jpeg(self):
        jpeg = b"\xff\xd8\xff\xe0" + b"\x00" * 16
        assert validate_proof(_upload("photo.jpeg", "image/jpeg", jpeg)) == "image/jpeg"

    def test_generic_content_type_accepted(self):
        assert validate_proof(_upload(content_type="application/octet-stream")) == "application/pdf"

    def test_missing_content_type_accepted(self):
        assert validate_proof(_upload(content_type=None)) == "application/pdf"

    def test_empty_file(self):
        with pytest.raises(FileValidationError, match="empty"):
            validate_proof(_upload(content=b""))

    def test_disallowed_extension(self):
        with pytest.raises(FileValidationError, match="not allowed"):
            validate_proof(_upload(name="proof.docx"))

    def test_no_extension(self):
        with pytest.raises(FileValidationError):
            validate_proof(_upload(name="proof"))

    def test_declared_type_mismatch(self):
        with pytest.raises(FileValidationError, match="does not match"):
            validate_proof(_upload(content_type="image/png"))

    def test_content_does_not_match_extension(self):
        with pytest.raises(FileValidationError, match="not a valid"):
            validate_proof(_upload(content=PNG_BYTES))

    def test_oversized(self, monkeypatch):
        monkeypatch.setattr(settings, "proof_max_bytes", 16)
        with pytest.raises(FileValidationError, match="too large"):
            validate_proof(_upload())

    def test_error_names_the_field(self):
        with pytest.raises(FileValidationError) as exc:
            validate_proof(_upload(content=b""))
        assert exc.value.field == "proof_file"
        assert exc.value.status_code == 400


class TestCheckSize:
    def test_at_limit(self):
        check_size(settings.proof_max_bytes)

    def test_over_limit(self):
        with pytest.raises(FileValidationError):
            check_size(settings.proof_max_bytes + 1)


class TestProofStorage:
    def test_save_and_locate(self, upload_dir):
        storage = ProofStorage()
        invoice_id, payment_id = uuid.uuid4(), uuid.uuid4()

        stored = storage.save(invoice_id, payment_id, _upload(name="bank transfer.pdf"))

        assert stored == f"{payment_id}_bank_transfer.pdf"
        path = storage.path_for(invoice_id, stored)
        assert path == upload_dir / "payments" / str(invoice_id) / stored
        assert path.read_bytes() == PDF_BYTES

    def test_path_components_stripped(self, tmp_path):
        storage = ProofStorage(tmp_path)
        stored = storage.save(uuid.uuid4(), uuid.uuid4(), _upload(name="../../etc/passwd.pdf"))
        assert "/" not in stored
        assert stored.endswith("passwd.pdf")

    def test_discard(self, tmp_path):
        storage = ProofStorage(tmp_path)
        invoice_id = uuid.uuid4()
        stored = storage.save(invoice_id, uuid.uuid4(), _upload())

        storage.discard(invoice_id, stored)
        storage.discard(invoice_id, stored)  # already gone

        assert not storage.path_for(invoice_id, stored).exists()
