"""
auth/validation.py -- Server-side field validation for registration and login.

This gate is authoritative. Client-side checks in the browser are a UX
convenience and carry no trust: every registration and login attempt runs
through here no matter what the client already checked.

Order of work:
  1. Sanitize: strip markup and control whitespace from text fields,
     trim and lower-case the email, turn blank optional fields into None.
     Passwords are taken verbatim. Email characters are never dropped: an
     address that is not structurally valid is rejected, not rewritten.
  2. Evaluate every rule against the sanitized values. Violations are
     collected, not short-circuited, so the caller gets every error at once.
  3. Return the sanitized values (never the raw ones) or raise
     ValidationFailure with the field -> message map.

Login only checks presence. Format and existence are judged by the identity
lifecycle so that a bad email and a bad password produce the same message.

The gate depends on an EmailLookup, not on AccountStore directly, so tests
can hand it any object with exists_by_email().

Layer rule: no imports from api/ or uploads/.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date
from typing import Any, Protocol

from email_validator import EmailNotValidError, validate_email

from auth.models import LoginFields, RegistrationFields
from core.errors import ValidationFailure

# ---------------------------------------------------------------------------
# Patterns and limits
# ---------------------------------------------------------------------------

PHONE_PATTERN = r"^[0-9+\-()\s]+$"
DATE_PATTERN = r"^\d{4}-\d{2}-\d{2}$"
MIN_PASSWORD_LENGTH = 8

_SCRIPT_STYLE_RE = re.compile(r"<(script|style)[^>]*?>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"[\r\n\t ]+")
_CONTROL_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

# Column widths from accounts/store.py. Longer input would be rejected by
# strict backends, so it is rejected here with a field error instead.
_MAX_LENGTHS = {
    "full_name": 255,
    "email": 191,
    "phone_number": 50,
    "country": 100,
    "city": 100,
    "gender": 20,
    "profile_photo": 255,
}

# Human-readable field names for the length messages.
_LABELS = {
    "full_name": "Full name",
    "email": "Email",
    "phone_number": "Phone number",
    "country": "Country",
    "city": "City",
    "gender": "Gender",
    "profile_photo": "Profile photo reference",
}


# ---------------------------------------------------------------------------
# Sanitizers
# ---------------------------------------------------------------------------


def sanitize_text(value: Any) -> str:
    """Strip markup, control characters and redundant whitespace from text input."""
    if value is None:
        return ""
    text = str(value)
    text = _SCRIPT_STYLE_RE.sub("", text)
    text = _TAG_RE.sub("", text)
    text = _CONTROL_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_email(value: Any) -> str:
    """Trim and lower-case an email address."""
    if value is None:
        return ""
    return str(value).strip().lower()


def sanitize_tags(values: Any) -> list[str]:
    """Sanitize a tag list. A lone string counts as one tag; blanks and repeats are dropped."""
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    tags: list[str] = []
    for raw in values:
        tag = sanitize_text(raw)
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def parse_email(email: str) -> str:
    """Return the normalized form of a structurally valid address.

    Raises EmailNotValidError otherwise. Only ASCII addresses are accepted and
    no DNS lookups are made.
    """
    result = validate_email(email, check_deliverability=False, allow_smtputf8=False)
    return result.normalized.lower()


def _optional(value: Any) -> str | None:
    return sanitize_text(value) or None


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


class EmailLookup(Protocol):
    def exists_by_email(self, email: str) -> bool: ...


class ValidationGate:
    """Single source of truth for whether submitted fields are acceptable."""

    def __init__(self, lookup: EmailLookup) -> None:
        self._lookup = lookup

    def validate_registration(self, raw: Mapping[str, Any]) -> RegistrationFields:
        """Sanitize and check a registration submission.

        Raises ValidationFailure carrying every violated rule. Returns the
        sanitized fields when all rules pass.
        """
        full_name = sanitize_text(raw.get("full_name"))
        email = normalize_email(raw.get("email"))
        password = raw.get("password") or ""
        confirm_password = raw.get("confirm_password") or ""
        phone_number = sanitize_text(raw.get("phone_number"))
        country = sanitize_text(raw.get("country"))
        city = _optional(raw.get("city"))
        gender = _optional(raw.get("gender"))
        date_of_birth = _optional(raw.get("date_of_birth"))
        interests = sanitize_tags(raw.get("interests"))
        profile_photo = sanitize_text(raw.get("profile_photo"))

        errors: dict[str, str] = {}

        if not full_name:
            errors["full_name"] = "Full name is required."

        if email:
            try:
                email = parse_email(email)
            except EmailNotValidError:
                email = ""
        if not email:
            errors["email"] = "Valid email is required."
        elif len(email) > _MAX_LENGTHS["email"]:
            errors["email"] = "Email is too long."
        elif self._lookup.exists_by_email(email):
            errors["email"] = "Email already exists."

        if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
            errors["password"] = f"Password must be at least {MIN_PASSWORD_LENGTH} characters."

        if password != confirm_password:
            errors["confirm_password"] = "Passwords do not match."

        if not phone_number:
            errors["phone_number"] = "Phone number is required."
        elif not re.match(PHONE_PATTERN, phone_number):
            errors["phone_number"] = "Invalid phone number format."

        if not country:
            errors["country"] = "Country is required."

        if not interests:
            errors["interests"] = "Please select at least one interest."

        if not profile_photo:
            errors["profile_photo"] = "Profile photo is required."

        if date_of_birth is not None and not _is_iso_date(date_of_birth):
            errors["date_of_birth"] = "Date of birth must be a valid date (YYYY-MM-DD)."

        lengths = {
            "full_name": full_name,
            "phone_number": phone_number,
            "country": country,
            "city": city,
            "gender": gender,
            "profile_photo": profile_photo,
        }
        for name, value in lengths.items():
            if name not in errors and value and len(value) > _MAX_LENGTHS[name]:
                errors[name] = f"{_LABELS[name]} is too long."

        if errors:
            raise ValidationFailure(errors=errors)

        return RegistrationFields(
            full_name=full_name,
            email=email,
            password=password,
            phone_number=phone_number,
            country=country,
            interests=interests,
            profile_photo=profile_photo,
            city=city,
            gender=gender,
            date_of_birth=date_of_birth,
        )

    def validate_login(self, email: Any, password: Any) -> LoginFields:
        """Presence-only check for a login attempt."""
        clean_email = normalize_email(email)
        clean_password = password if isinstance(password, str) else ""
        errors: dict[str, str] = {}
        if not clean_email:
            errors["email"] = "Email is required."
        if not clean_password:
            errors["password"] = "Password is required."
        if errors:
            raise ValidationFailure("Please fill in all fields.", errors)
        return LoginFields(email=clean_email, password=clean_password)

    def check_email(self, email: Any) -> tuple[str, bool]:
        """Sanitize an email for the pre-submission availability check.

        Returns (sanitized_email, exists). Raises ValidationFailure if blank.
        """
        clean = normalize_email(email)
        if not clean:
            raise ValidationFailure("Email is required.", {"email": "Email is required."})
        return clean, self._lookup.exists_by_email(clean)


def _is_iso_date(value: str) -> bool:
    if not re.match(DATE_PATTERN, value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True
