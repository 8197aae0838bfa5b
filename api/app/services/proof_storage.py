"""
Payment-proof uploads: validation and on-disk storage.

Clients pre-check size and type, but nothing they send is trusted: every
upload is re-validated here (size cap, extension whitelist, declared content
type, and the file's leading signature bytes) before anything is written.

Files live under ``<upload_dir>/payments/<invoice_id>/<payment_id>_<name>``.
"""
import logging
import re
import uuid
from dataclasses import dataclass
from pathlib import Path

from app.core.config import settings
from app.core.exceptions import FileValidationError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1 MB streaming chunks

_ALLOWED: dict[str, str] = {
    "pdf":  "application/pdf",
    "png":  "image/png",
    "jpg":  "image/jpeg",
    "jpeg": "image/jpeg",
}

_SIGNATURES: dict[str, tuple[bytes, ...]] = {
    "application/pdf": (b"%PDF-",),
    "image/png": (b"\x89PNG\r\n\x1a\n",),
    "image/jpeg": (b"\xff\xd8\xff",),
}

# Browsers sometimes send these for perfectly valid files
_GENERIC_CONTENT_TYPES = {"", "application/octet-stream"}

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass(frozen=True)
class ProofUpload:
    filename: str
    content_type: str | None
    content: bytes


def max_size_label() -> str:
    return f"{settings.proof_max_bytes // (1024 * 1024)} MB"


def check_size(total_bytes: int) -> None:
    if total_bytes > settings.proof_max_bytes:
        raise FileValidationError(f"File too large (max {max_size_label()})")


def validate_proof(upload: ProofUpload) -> str:
    """Return the canonical MIME type for an acceptable proof, or raise."""
    if not upload.content:
        raise FileValidationError("Proof file is empty")
    check_size(len(upload.content))

    ext = Path(upload.filename or "").suffix.lstrip(".").lower()
    mime = _ALLOWED.get(ext)
    if mime is None:
        allowed = ", ".join(sorted(_ALLOWED))
        raise FileValidationError(
            f"File type '.{ext}' is not allowed. Allowed: {allowed}"
        )

    declared = (upload.content_type or "").split(";")[0].strip().lower()
    if declared not in _GENERIC_CONTENT_TYPES and declared != mime:
        raise FileValidationError(
            f"Content type '{declared}' does not match a .{ext} file"
        )

    if not upload.content.startswith(_SIGNATURES[mime]):
        raise FileValidationError(f"File content is not a valid .{ext} file")
    return mime


def _safe_name(filename: str) -> str:
    name = _UNSAFE_CHARS.sub("_", Path(filename).name).strip("._")
    return name or "proof"


class ProofStorage:
    def __init__(self, root: str | Path | None = None):
        self._root = Path(root) if root is not None else None

    @property
    def root(self) -> Path:
        # Resolved per call so tests (and reconfiguration) can move upload_dir
        return (self._root or Path(settings.upload_dir)) / "payments"

    def save(
        self,
        invoice_id: uuid.UUID,
        payment_id: uuid.UUID,
        upload: ProofUpload,
    ) -> str:
        """Write the proof and return the stored filename (relative to the invoice dir)."""
        stored_name = f"{payment_id}_{_safe_name(upload.filename)}"
        dir_path = self.root / str(invoice_id)
        dir_path.mkdir(parents=True, exist_ok=True)
        (dir_path / stored_name).write_bytes(upload.content)
        logger.info("Stored payment proof %s (%d bytes)", stored_name, len(upload.content))
        return stored_name

    def path_for(self, invoice_id: uuid.UUID, stored_name: str) -> Path:
        return self.root / str(invoice_id) / stored_name

    def discard(self, invoice_id: uuid.UUID, stored_name: str) -> None:
        """Remove a stored proof whose payment row never made it to the database."""
        try:
            self.path_for(invoice_id, stored_name).unlink(missing_ok=True)
        except OSError:
            logger.warning("Could not remove orphaned proof %s", stored_name, exc_info=True)


def get_proof_storage() -> ProofStorage:
    return ProofStorage()
