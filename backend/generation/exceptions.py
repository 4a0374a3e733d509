"""Errors raised by the generation pipeline.

Each error carries a stable ``code`` and the ``status_code`` the web layer
should answer with, in the style of the template moderation errors.
"""
from billing.services.credit_ledger import CreditLedgerError


class GenerationError(Exception):
    code = "GENERATION_ERROR"
    status_code = 400

    def __init__(self, message: str, code=None):
        self.message = message
        if code:
            self.code = code
        super().__init__(message)


class GenerationValidationError(GenerationError):
    """Malformed request, e.g. duplicate pose ids."""

    code = "VALIDATION_ERROR"


class CatalogReferenceNotFound(GenerationError):
    """A referenced catalog row is missing or soft-deleted."""

    code = "NOT_FOUND"
    status_code = 404


class ReferenceAssetMissing(GenerationError):
    """A catalog row has no retrievable reference image."""

    code = "REFERENCE_ASSET_MISSING"
    status_code = 404


class ExternalServiceFailure(GenerationError):
    """The image generator or the blob store failed."""

    code = "EXTERNAL_SERVICE_FAILURE"
    status_code = 502


class ImageGenerationError(ExternalServiceFailure):
    code = "IMAGE_GENERATION_FAILED"


class BlobStoreError(ExternalServiceFailure):
    code = "BLOB_STORE_ERROR"


class ArtifactStorageError(BlobStoreError):
    code = "ARTIFACT_STORAGE_FAILED"


class AllGenerationsFailed(GenerationError):
    code = "ALL_GENERATIONS_FAILED"


# Errors that already speak to the caller and are re-raised unchanged.
PASSTHROUGH_ERRORS = (
    GenerationValidationError,
    CatalogReferenceNotFound,
    ReferenceAssetMissing,
    ArtifactStorageError,
    AllGenerationsFailed,
    CreditLedgerError,
)


def as_public_error(exc: Exception, prefix: str) -> Exception:
    """Return the error to surface to the caller for a failed attempt."""
    if isinstance(exc, PASSTHROUGH_ERRORS):
        return exc
    return ExternalServiceFailure(f"{prefix}: {exc}")
