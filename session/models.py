"""
Pydantic models for the Session Authority.
Covers the user aggregate, its embedded signing credentials and the
tagged results of two-phase token verification.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """Enum for user roles."""
    USER = "user"
    ADMIN = "admin"


class TokenKind(str, Enum):
    """Which of the two per-user secrets signs a token."""
    ACCESS = "access"
    REFRESH = "refresh"


class Credentials(BaseModel):
    """
    Per-user signing secrets. Replaced as a whole on every rotation.
    """
    access_secret: str = Field(..., min_length=1, description="Secret signing access tokens")
    refresh_secret: str = Field(..., min_length=1, description="Secret signing refresh tokens")

    def secret_for(self, kind: TokenKind) -> str:
        if kind == TokenKind.ACCESS:
            return self.access_secret
        return self.refresh_secret

    def __repr__(self) -> str:
        return "Credentials(access_secret=***, refresh_secret=***)"

    __str__ = __repr__


class UserProfile(BaseModel):
    """Sanitized identity projection returned to clients."""
    id: str = Field(..., description="User identifier")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Email address")
    photo: Optional[str] = Field(None, description="Profile photo URL")
    role: UserRole = Field(..., description="User role")


class UserRecord(BaseModel):
    """
    User aggregate as stored in the users collection.
    """
    id: Optional[str] = Field(None, description="MongoDB ObjectId as a string")
    name: str = Field(..., description="Display name")
    email: str = Field(..., description="Unique email address")
    password: str = Field(..., description="bcrypt password hash")
    role: UserRole = Field(default=UserRole.USER, description="User role")
    photo: Optional[str] = Field(None, description="Profile photo URL")
    created_at: datetime = Field(default_factory=datetime.utcnow, description="Registration time")
    credentials: Credentials = Field(..., description="Current signing secrets")

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def profile(self) -> UserProfile:
        return UserProfile(
            id=self.id,
            name=self.name,
            email=self.email,
            photo=self.photo,
            role=self.role,
        )

    def to_document(self) -> Dict[str, Any]:
        """Convert to a MongoDB document, without _id when unset."""
        document = {
            "name": self.name,
            "email": self.email,
            "password": self.password,
            "role": self.role.value,
            "photo": self.photo,
            "created_at": self.created_at,
            "credentials": self.credentials.dict(),
        }
        if self.id:
            document["_id"] = ObjectId(self.id)
        return document

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> "UserRecord":
        data = dict(document)
        data["id"] = str(data.pop("_id"))
        return cls(**data)


class TokenPair(BaseModel):
    """Freshly minted access and refresh tokens."""
    access_token: str
    refresh_token: str


class RejectionReason(str, Enum):
    """Why a token failed verification."""
    MISSING_TOKEN = "missing_token"
    MALFORMED_CLAIMS = "malformed_claims"
    UNKNOWN_USER = "unknown_user"
    BAD_SIGNATURE = "bad_signature"
    THROTTLED = "throttled"


class Unverified(BaseModel):
    """Claims read without checking the signature. Not an identity."""
    claimed_id: str


class Verified(BaseModel):
    """Signature and expiry checked against the user's current secret."""
    user: UserRecord


class Rejected(BaseModel):
    reason: RejectionReason


ClaimsOutcome = Union[Unverified, Rejected]
VerificationOutcome = Union[Verified, Rejected]


class AuthResult(BaseModel):
    """Outcome of login, registration and refresh."""
    user: UserRecord
    tokens: TokenPair
