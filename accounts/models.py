"""
accounts/models.py -- Domain dataclasses for registered accounts.

Pattern: Data class (pure data container, zero logic). The store owns the
conversion to and from rows; routes map these into API response models.

Optional profile fields are None when not provided, never "". The store is
the one place where blank input is turned into None (see
accounts/store._blank_to_none), so no call site has to guess whether ""
means "absent".

Layer rule: no imports from api/, auth/, or uploads/.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class UserRecord:
    """One self-registered identity.

    email is the login identifier and is unique at the store level.
    password_hash is the bcrypt output from auth.credentials; the raw password
    never reaches this class.

    interests is always a decoded list here. The JSON text form exists only
    inside accounts/store.py.

    id, created_at and updated_at are None before the record is written.
    """

    full_name: str
    email: str
    password_hash: str
    phone_number: str
    country: str
    city: str | None = None
    gender: str | None = None
    date_of_birth: str | None = None  # YYYY-MM-DD
    interests: list[str] = field(default_factory=list)
    profile_photo: str | None = None  # blob store reference (URL)
    id: int | None = None
    created_at: str | None = None  # ISO 8601 UTC, set once by the store
    updated_at: str | None = None  # ISO 8601 UTC, refreshed on every write


@dataclass(frozen=True)
class Page:
    """One page of an admin listing plus the numbers needed to render a pager."""

    records: list[UserRecord]
    page: int
    per_page: int
    total: int

    @property
    def total_pages(self) -> int:
        # ceil(total / per_page) without float rounding
        return -(-self.total // self.per_page) if self.per_page > 0 else 0
