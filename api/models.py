"""
API request and response models for DoRegister REST endpoints.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in accounts/models.py and
auth/models.py, which own the internal representation. Route handlers map
between the two.

Request models are deliberately permissive: every registration field is an
optional string so that a missing field reaches the validation gate and comes
back as a field error in the {errors, message} envelope, instead of being
rejected by Pydantic with a less useful 422. Only types and hard size caps
are enforced here.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from accounts.models import UserRecord

# Upper bound on raw password input before it ever reaches bcrypt.
_MAX_PASSWORD_INPUT = 1024


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(extra="ignore")

    full_name: str = ""
    email: str = ""
    password: str = Field(default="", max_length=_MAX_PASSWORD_INPUT)
    confirm_password: str = Field(default="", max_length=_MAX_PASSWORD_INPUT)
    phone_number: str = ""
    country: str = ""
    city: Optional[str] = None
    gender: Optional[str] = None
    date_of_birth: Optional[str] = None
    interests: list[str] = Field(default_factory=list, max_length=50)
    profile_photo: str = ""


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    model_config = ConfigDict(extra="ignore")

    email: str = ""
    password: str = Field(default="", max_length=_MAX_PASSWORD_INPUT)
    remember_me: bool = False


class BulkDeleteRequest(BaseModel):
    """Request body for POST /api/v1/admin/users/delete.

    ids is untyped on purpose: the store sanitizes it, and junk entries are
    dropped rather than failing the whole request.
    """

    ids: list[Any] = Field(default_factory=list, max_length=1000)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class CsrfTokenResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: str
    token: str


class RegisterResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    message: str
    redirect_url: str


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: int
    email: str
    remembered: bool
    message: str
    redirect_url: str


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    redirect_url: Optional[str] = None


class EmailCheckResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    email: str
    exists: bool


class PhotoUploadResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str


class SessionResponse(BaseModel):
    """Response for GET /api/v1/auth/session."""

    model_config = ConfigDict(frozen=True)

    authenticated: bool
    user_id: Optional[int] = None
    email: Optional[str] = None
    restored_from_token: bool = False


class ProfileResponse(BaseModel):
    """A registered account as shown to its owner or an admin. No password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    full_name: str
    email: str
    phone_number: str
    country: str
    city: Optional[str]
    gender: Optional[str]
    date_of_birth: Optional[str]
    interests: list[str]
    profile_photo: Optional[str]
    created_at: str
    updated_at: str

    @classmethod
    def from_record(cls, record: UserRecord) -> "ProfileResponse":
        """Factory Method: the record -> response mapping lives with the response model."""
        return cls(
            id=record.id,
            full_name=record.full_name,
            email=record.email,
            phone_number=record.phone_number,
            country=record.country,
            city=record.city,
            gender=record.gender,
            date_of_birth=record.date_of_birth,
            interests=list(record.interests),
            profile_photo=record.profile_photo,
            created_at=record.created_at or "",
            updated_at=record.updated_at or "",
        )


class UserListResponse(BaseModel):
    """Response for GET /api/v1/admin/users."""

    model_config = ConfigDict(frozen=True)

    users: list[ProfileResponse]
    page: int
    per_page: int
    total: int
    total_pages: int


class BulkDeleteResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    deleted: int
    message: str


class SchemaResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    table_exists: bool


class ErrorResponse(BaseModel):
    """Error envelope returned on every 4xx/5xx response.

    errors maps field names to messages for validation and login failures;
    it is empty for everything else.
    """

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    errors: dict[str, str] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str] = Field(default_factory=dict)
