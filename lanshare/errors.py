"""
Exception hierarchy for lanshare.

Every error knows the HTTP status it maps to and a short, client-facing
message. The FastAPI handler in ``lanshare.main`` turns them into the
``{"success": false, "message": ..., "error": ...}`` envelope.
"""


class FileShareError(Exception):
    status_code = 500
    message = "Request failed"
    # Per-item failures attached when a whole upload batch is rejected.
    failures: tuple = ()

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.message
        super().__init__(self.detail)

    def to_envelope(self) -> dict:
        body = {"success": False, "message": self.message, "error": self.detail}
        if self.failures:
            body["errors"] = [failure.to_json() for failure in self.failures]
        return body


class NotFound(FileShareError):
    status_code = 404
    message = "File not found"


class StorageWriteError(FileShareError):
    message = "Storage operation failed"


class PayloadTooLarge(FileShareError):
    status_code = 413
    message = "File too large"


class TooManyFiles(FileShareError):
    message = "Too many files"


class PathTraversalRejected(FileShareError):
    message = "Invalid filename"


class GenerationError(FileShareError):
    message = "QR code generation failed"
