# =============================================================================
# ⚠️ utils/errors.py
# Fehler-Taxonomie für Dynamic QR
# -----------------------------------------------------------------------------
# Jede Klasse trägt ihren HTTP-Status und eine öffentliche Meldung.
# Resource-/Store-Fehler zeigen nach außen nur eine generische Meldung.
# =============================================================================

from __future__ import annotations

from typing import Optional

GENERIC_ERROR_MESSAGE = "Internal server error"


class AppError(Exception):
    status_code: int = 500
    expose_message: bool = True

    def __init__(self, message: str = "", *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    @property
    def public_message(self) -> str:
        if self.expose_message and self.message:
            return self.message
        return GENERIC_ERROR_MESSAGE


# -----------------------------------------------------------------------------
# 📝 Validierung (4xx, vom Benutzer korrigierbar)
# -----------------------------------------------------------------------------
class ValidationError(AppError):
    status_code = 400


class InvalidContentType(ValidationError):
    def __init__(self, content_type: object) -> None:
        from utils.qr_content import CONTENT_TYPES

        super().__init__(
            f"Invalid content type: {content_type}. Allowed: {', '.join(CONTENT_TYPES)}"
        )
        self.content_type = content_type


class InvalidContentField(ValidationError):
    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


# -----------------------------------------------------------------------------
# 🔍 Nicht gefunden
# -----------------------------------------------------------------------------
class NotFoundError(AppError):
    status_code = 404

    def __init__(self, message: str = "QR not found") -> None:
        super().__init__(message)


# -----------------------------------------------------------------------------
# 🔐 Zugriff
# -----------------------------------------------------------------------------
class AccessDeniedError(AppError):
    status_code = 403


class AuthenticationRequired(AccessDeniedError):
    status_code = 401

    def __init__(self, message: str = "Authentication required") -> None:
        super().__init__(message)


class InvalidCredentials(AccessDeniedError):
    status_code = 401

    def __init__(self, message: str = "Invalid username or password") -> None:
        super().__init__(message)


class RateLimited(AccessDeniedError):
    status_code = 429

    def __init__(self, retry_after_seconds: int) -> None:
        minutes = max(1, -(-retry_after_seconds // 60))
        super().__init__(f"Too many failed attempts. Try again in {minutes} minute(s).")
        self.retry_after_seconds = retry_after_seconds


# -----------------------------------------------------------------------------
# 📦 Ressourcen (Blob-Store, Bilddateien)
# -----------------------------------------------------------------------------
class ResourceError(AppError):
    status_code = 500
    expose_message = False


class BlobMissing(ResourceError):
    status_code = 404
    expose_message = True

    def __init__(self, blob_ref: Optional[str]) -> None:
        super().__init__("File not found")
        self.blob_ref = blob_ref


class BlobWriteError(ResourceError):
    pass


class ImageBindingError(ResourceError):
    pass


# -----------------------------------------------------------------------------
# 💥 Systemfehler
# -----------------------------------------------------------------------------
class AllocationExhausted(AppError):
    status_code = 500

    def __init__(self, attempts: int) -> None:
        super().__init__("Could not allocate a unique QR id. Please try again.")
        self.attempts = attempts


class UpstreamStoreError(AppError):
    status_code = 500
    expose_message = False
