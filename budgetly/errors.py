# budgetly/errors.py
"""
Error types shared by services and routes.

Every BudgetlyError carries the HTTP status and a short machine-readable code;
main.py renders them as {"error": {"code": ..., "message": ...}}.
"""


class BudgetlyError(Exception):
    status_code = 500
    code = "internal_error"

    def __init__(self, message: str, *, status_code: int | None = None, code: str | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class NotFound(BudgetlyError):
    status_code = 404
    code = "not_found"


class UploadRejected(BudgetlyError):
    """Bad file type, size or content. Nothing is stored."""

    status_code = 400
    code = "upload_rejected"


class InvalidEdit(BudgetlyError):
    status_code = 422
    code = "invalid_edit"


class InvalidStatusTransition(BudgetlyError):
    status_code = 409
    code = "invalid_status"


class InvoiceConfirmed(BudgetlyError):
    status_code = 409
    code = "invoice_confirmed"


class MissingCredential(BudgetlyError):
    status_code = 400
    code = "missing_credential"


class StorageError(BudgetlyError):
    status_code = 500
    code = "storage_error"


class ExtractionFailed(BudgetlyError):
    """Raised after the invoice has been marked failed."""

    status_code = 502
    code = "upstream_error"


# -------------------------------------------------------------------
# Upstream (vision API) boundary
# -------------------------------------------------------------------

class UpstreamError(Exception):
    """Base for failures talking to the vision API."""


class TransientUpstreamError(UpstreamError):
    """5xx or connection failure; worth retrying."""


class UpstreamTimeoutError(TransientUpstreamError):
    pass


class PermanentUpstreamError(UpstreamError):
    """4xx (bad credential, bad request); never retried."""


class MalformedExtractionError(PermanentUpstreamError):
    """The model answered, but not with usable transactions."""
