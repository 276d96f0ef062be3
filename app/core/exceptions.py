"""
Domain errors for the submission and payment backend.

Every error carries a stable ``code`` and the HTTP status it maps to; the
application-level handler in ``app.main`` renders them as
``{"success": false, "error": ..., "code": ...}``.
"""
from __future__ import annotations

from typing import Any


class ConferenceError(Exception):
    """Base exception for all domain errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


# ============================================
# Input validation
# ============================================

class ValidationError(ConferenceError):
    """Malformed payload, missing author field, bad file"""

    status_code = 400

    def __init__(self, message: str, code: str = "VALIDATION_ERROR", details: dict[str, Any] | None = None):
        super().__init__(message, code=code, details=details)


class PayloadTooLarge(ValidationError):
    status_code = 413

    def __init__(self, limit_bytes: int, size_bytes: int):
        limit_mb = limit_bytes // (1024 * 1024)
        super().__init__(
            f"File size exceeds {limit_mb}MB limit.",
            code="PAYLOAD_TOO_LARGE",
            details={"limitBytes": limit_bytes, "sizeBytes": size_bytes},
        )


class UnsupportedFileType(ValidationError):
    def __init__(self, message: str):
        super().__init__(message, code="UNSUPPORTED_FILE_TYPE")


# ============================================
# Lifecycle / state machine
# ============================================

class PrecursorMissing(ConferenceError):
    """A required earlier step has not happened yet"""

    status_code = 403

    def __init__(self, message: str, code: str = "PRECURSOR_MISSING"):
        super().__init__(message, code=code)


class NotInRevisionState(PrecursorMissing):
    status_code = 400

    def __init__(self, current_status: str):
        super().__init__(
            f"Paper cannot be resubmitted. Current status is '{current_status}'. "
            "Only papers with status 'accepted_with_revision' can be revised.",
            code="NOT_IN_REVISION_STATE",
        )


class InvalidTransition(ConferenceError):
    status_code = 409

    def __init__(self, current_status: str, target_status: str):
        super().__init__(
            f"Cannot move submission from '{current_status}' to '{target_status}'.",
            code="INVALID_TRANSITION",
            details={"currentStatus": current_status, "targetStatus": target_status},
        )


class SubmissionConflict(ConferenceError):
    status_code = 409

    def __init__(self, message: str):
        super().__init__(message, code="SUBMISSION_CONFLICT")


# ============================================
# Authorization / lookup
# ============================================

class Unauthorized(ConferenceError):
    status_code = 403

    def __init__(self, message: str = "Unauthorized. Admin privileges required."):
        super().__init__(message, code="UNAUTHORIZED")


class NotFound(ConferenceError):
    status_code = 404

    def __init__(self, message: str):
        super().__init__(message, code="NOT_FOUND")


# ============================================
# Payments
# ============================================

class AlreadyPaid(ConferenceError):
    status_code = 409

    def __init__(self, message: str, txnid: str | None = None):
        details = {"paymentTxnId": txnid} if txnid else None
        super().__init__(message, code="ALREADY_PAID", details=details)


class IntegrityFailure(ConferenceError):
    """Callback whose hash or amount does not verify; never mutates state"""

    status_code = 400

    def __init__(self, txnid: str | None, reason: str = "hash_mismatch"):
        self.txnid = txnid
        self.reason = reason
        super().__init__(
            "Payment callback failed integrity verification.",
            code="INTEGRITY_FAILURE",
            details={"txnid": txnid, "reason": reason},
        )


class UpstreamGatewayError(ConferenceError):
    status_code = 502

    def __init__(self, detail: str):
        super().__init__(
            "Failed to initiate payment with gateway.",
            code="UPSTREAM_GATEWAY_ERROR",
            details={"details": detail},
        )


class NotAvailable(ConferenceError):
    status_code = 403

    def __init__(self, message: str = "No paid submission found. Receipt is only available after successful payment."):
        super().__init__(message, code="NOT_AVAILABLE")


# ============================================
# Verification workflow
# ============================================

class ReuploadNotAllowed(ConferenceError):
    status_code = 400

    def __init__(self):
        super().__init__(
            "Your documents are already verified. Re-upload is not allowed.",
            code="REUPLOAD_NOT_ALLOWED",
        )


# ============================================
# Storage
# ============================================

class StoreTransientError(ConferenceError):
    """Database unavailable or contended; the caller may retry"""

    status_code = 503

    def __init__(self, message: str = "Storage temporarily unavailable. Please retry."):
        super().__init__(message, code="STORE_UNAVAILABLE")
