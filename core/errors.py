"""
core/errors.py -- Error taxonomy shared by the store, auth, and upload layers.

Every failure a caller can see is one of these. The API layer maps each class
to a status code and the {code, message, errors} envelope in api/main.py, so
route handlers raise instead of building error responses by hand.

  ValidationFailure -- field -> message map; always surfaced verbatim.
  Conflict          -- unique email violated at the store level. The identity
                       layer re-raises it as a ValidationFailure on "email".
  AuthFailure       -- login rejected. Message is deliberately generic.
  StoreError        -- unexpected backend failure. The backend detail is
                       logged where it happens and never carried in .message.
  NotFound          -- a referenced record no longer exists (stale session).
  ForgeryDetected   -- anti-forgery token missing or wrong.
  UploadError       -- TooLarge / BadType / BlobStoreError from the blob store.

Layer rule: core/ is the kernel. This module imports nothing from the project.
"""

from __future__ import annotations


class DoRegisterError(Exception):
    """Base class. ``code`` is the machine-readable tag used in API responses."""

    code = "error"
    default_message = "Request failed."

    def __init__(self, message: str | None = None, errors: dict[str, str] | None = None) -> None:
        self.message = message or self.default_message
        self.errors: dict[str, str] = dict(errors or {})
        super().__init__(self.message)


class ValidationFailure(DoRegisterError):
    code = "validation_error"
    default_message = "Please fix the errors below."


class Conflict(DoRegisterError):
    code = "conflict"
    default_message = "Email already exists."


class AuthFailure(DoRegisterError):
    code = "bad_credentials"
    default_message = "Invalid credentials."


class StoreError(DoRegisterError):
    code = "store_error"
    default_message = "Something went wrong. Please try again."


class NotFound(DoRegisterError):
    code = "not_found"
    default_message = "Record not found."


class ForgeryDetected(DoRegisterError):
    code = "forbidden"
    default_message = "Security check failed."


class UploadError(DoRegisterError):
    code = "upload_error"
    default_message = "Upload failed."


class TooLarge(UploadError):
    code = "file_too_large"
    default_message = "File size exceeds 5MB limit."


class BadType(UploadError):
    code = "bad_file_type"
    default_message = "Invalid file type. Only JPEG, PNG, and GIF are allowed."


class BlobStoreError(UploadError):
    code = "upload_failed"
    default_message = "Upload failed. Please try again."
