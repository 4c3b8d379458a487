"""
API request and response models for Vaultroom REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in vaults/models.py and
auth/models.py, which own the internal domain representation. Route handlers
map between the two with the from_domain() constructors below.

Wire format:
  Every response is wrapped in ApiResponse: {"success", "data", "error"}.
  Field names are camelCase on the wire (alias_generator=to_camel). Request
  bodies accept either camelCase or snake_case (populate_by_name=True).

Separation of concerns: domain dataclasses = domain truth; api/ models = API contract.
"""

from __future__ import annotations

from typing import Generic, Optional, TypeVar

from fastapi import HTTPException
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import User
from auth.permissions import Role
from vaults.models import AuditEntry, Membership, Source, Vault, VaultSummary

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Error codes
# ---------------------------------------------------------------------------

ERROR_STATUS: dict[str, int] = {
    "UNAUTHORIZED": 401,
    "FORBIDDEN": 403,
    "INVALID_INPUT": 400,
    "ALREADY_MEMBER": 400,
    "NOT_FOUND": 404,
    "CONFLICT": 409,
    "EXPIRED": 410,
    "USED": 410,
    "RATE_LIMITED": 429,
    "SERVER_ERROR": 500,
}


def api_error(code: str, message: str) -> HTTPException:
    """Build an HTTPException whose detail is the structured error payload.

    The status comes from ERROR_STATUS so a code can never be sent with the
    wrong status. Usage: raise api_error("NOT_FOUND", "Vault not found")
    """
    return HTTPException(status_code=ERROR_STATUS[code], detail={"code": code, "message": message})


# ---------------------------------------------------------------------------
# Envelope
# ---------------------------------------------------------------------------


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ErrorDetail(CamelModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str


class ApiResponse(CamelModel, Generic[T]):
    """Top-level envelope for every response, success or failure."""

    success: bool = True
    data: Optional[T] = None
    error: Optional[ErrorDetail] = None


def error_body(code: str, message: str) -> dict:
    """Serialized failure envelope for exception handlers."""
    return ApiResponse[None](success=False, error=ErrorDetail(code=code, message=message)).model_dump(by_alias=True)


class MessageData(CamelModel):
    message: str


class HealthComponents(CamelModel):
    app: str = "ok"
    database: str = "ok"


class HealthResponse(CamelModel):
    """Payload for GET /api/v1/health."""

    status: str = "healthy"
    version: str
    components: HealthComponents


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class SignupRequest(CamelModel):
    """Request body for POST /api/v1/auth/signup.

    password max_length=72 stays under bcrypt's silent truncation limit.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(pattern=_EMAIL_PATTERN, max_length=255)
    password: str = Field(min_length=6, max_length=72)
    name: str = Field(min_length=2, max_length=100)


class LoginRequest(CamelModel):
    email: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=72)


class UserOut(CamelModel):
    id: str
    email: str
    name: str
    created_at: Optional[str] = None

    @classmethod
    def from_domain(cls, user: User) -> "UserOut":
        return cls(id=user.id, email=user.email, name=user.name, created_at=user.created_at)


class LoginData(CamelModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserOut


# ---------------------------------------------------------------------------
# Vaults
# ---------------------------------------------------------------------------


class VaultCreate(CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)


class VaultUpdate(CamelModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)


class VaultOut(CamelModel):
    id: str
    name: str
    owner_id: str
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, vault: Vault) -> "VaultOut":
        return cls(
            id=vault.id,
            name=vault.name,
            owner_id=vault.owner_id,
            created_at=vault.created_at,
            updated_at=vault.updated_at,
        )


class VaultListItem(VaultOut):
    """One entry in GET /vaults: the vault plus the caller's role and its size."""

    role: str
    source_count: int

    @classmethod
    def from_summary(cls, summary: VaultSummary) -> "VaultListItem":
        base = VaultOut.from_domain(summary.vault).model_dump()
        return cls(**base, role=summary.role, source_count=summary.source_count)


class MemberOut(CamelModel):
    user_id: str
    name: Optional[str] = None
    email: Optional[str] = None
    role: str
    joined_at: str

    @classmethod
    def from_domain(cls, m: Membership) -> "MemberOut":
        return cls(user_id=m.user_id, name=m.user_name, email=m.user_email, role=m.role, joined_at=m.joined_at)


class SourceOut(CamelModel):
    id: str
    vault_id: str
    title: str
    url: Optional[str] = None
    annotation: Optional[str] = None
    file_url: Optional[str] = None
    file_key: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    created_by: Optional[str] = None
    created_by_name: Optional[str] = None
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, s: Source) -> "SourceOut":
        return cls(
            id=s.id,
            vault_id=s.vault_id,
            title=s.title,
            url=s.url,
            annotation=s.annotation,
            file_url=s.file_url,
            file_key=s.file_key,
            file_size=s.file_size,
            mime_type=s.mime_type,
            created_by=s.created_by,
            created_by_name=s.created_by_name,
            created_at=s.created_at,
            updated_at=s.updated_at,
        )


class VaultDetailOut(VaultOut):
    """GET /vaults/{id}: the vault, the caller's role, its sources and members."""

    role: str
    sources: list[SourceOut]
    members: list[MemberOut]


# ---------------------------------------------------------------------------
# Sources and uploads
# ---------------------------------------------------------------------------


class SourceCreate(CamelModel):
    """Request body for POST /vaults/{id}/sources.

    fileUrl/fileKey/fileSize come from a prior POST /vaults/{id}/upload.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(min_length=1, max_length=255)
    url: Optional[str] = Field(default=None, pattern=r"^https?://\S+$", max_length=2048)
    annotation: Optional[str] = Field(default=None, max_length=10_000)
    file_url: Optional[str] = Field(default=None, max_length=2048)
    file_key: Optional[str] = Field(default=None, max_length=255)
    file_size: Optional[int] = Field(default=None, ge=0)


class UploadOut(CamelModel):
    url: str
    public_id: str
    file_size: int
    mime_type: str


class SourceDeleted(CamelModel):
    message: str = "Source deleted"
    source_id: str


# ---------------------------------------------------------------------------
# Invites, members, audit
# ---------------------------------------------------------------------------


class InviteCreated(CamelModel):
    invite_token: str
    expires_at: str


class InviteInfo(CamelModel):
    vault_id: str
    vault_name: Optional[str] = None
    inviter_name: Optional[str] = None
    expires_at: str
    valid: bool = True


class InviteAccepted(CamelModel):
    message: str = "Successfully joined vault"
    vault_id: str


class RoleUpdate(CamelModel):
    role: Role


class RoleUpdated(CamelModel):
    message: str = "Role updated successfully"
    member: MemberOut


class AuditEntryOut(CamelModel):
    id: str
    action: str
    details: str
    user_id: Optional[str] = None
    user_name: Optional[str] = None
    created_at: str

    @classmethod
    def from_domain(cls, e: AuditEntry) -> "AuditEntryOut":
        return cls(
            id=e.id,
            action=e.action,
            details=e.details,
            user_id=e.user_id,
            user_name=e.user_name,
            created_at=e.created_at,
        )
