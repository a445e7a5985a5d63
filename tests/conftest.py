"""
Pytest configuration and shared fixtures.
"""

from typing import Any, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId

from session.authority import SessionAuthority
from session.models import Credentials, UserRecord, UserRole
from session.passwords import PasswordHasher
from session.throttle import VerificationThrottle
from utilities.exceptions import Conflict

PHOTO_URL = "https://res.cloudinary.com/demo/image/upload/profile_photo/a.png"
COVER_URL = "https://res.cloudinary.com/demo/image/upload/book_photo/cover.png"
PDF_URL = "https://res.cloudinary.com/demo/raw/upload/book_pdf/book.pdf"


class InMemoryUserDirectory:
    """
    Test double for UserDirectory keeping records in a dict.
    Returned records are copies, like documents fetched from MongoDB.
    """

    def __init__(self):
        self.users: Dict[str, UserRecord] = {}
        self.lookups: List[str] = []

    async def create_indexes(self) -> None:
        return None

    async def find_by_id(self, user_id: str) -> Optional[UserRecord]:
        self.lookups.append(user_id)
        user = self.users.get(user_id)
        return user.copy(deep=True) if user else None

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.email == email:
                return user.copy(deep=True)
        return None

    async def insert(self, user: UserRecord) -> UserRecord:
        if any(existing.email == user.email for existing in self.users.values()):
            raise Conflict("User already exists", field="email")
        stored = user.copy(deep=True, update={"id": str(ObjectId())})
        self.users[stored.id] = stored
        return stored.copy(deep=True)

    async def update_credentials(self, user_id: str, credentials: Credentials) -> bool:
        if user_id not in self.users:
            return False
        self.users[user_id].credentials = credentials.copy()
        return True

    async def set_role(self, email: str, role: UserRole, credentials: Credentials) -> Optional[UserRecord]:
        for user in self.users.values():
            if user.email == email:
                user.role = role
                user.credentials = credentials.copy()
                return user.copy(deep=True)
        return None

    async def list_by_role(self, role: UserRole) -> List[Dict[str, Any]]:
        return [
            {"_id": ObjectId(user.id), "name": user.name, "email": user.email, "created_at": user.created_at}
            for user in self.users.values()
            if user.role == role
        ]

    def grant_role(self, email: str, role: UserRole) -> None:
        """Change a role without rotating, for arranging tests."""
        for user in self.users.values():
            if user.email == email:
                user.role = role

    def stored(self, email: str) -> UserRecord:
        return next(user for user in self.users.values() if user.email == email)


@pytest.fixture
def directory():
    """Create an empty in-memory user directory."""
    return InMemoryUserDirectory()


@pytest.fixture
def passwords():
    """bcrypt with the minimum cost factor to keep tests fast."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def media_store():
    """Create a mock media store returning fixed URLs."""
    store = MagicMock()
    store.upload_profile_photo = AsyncMock(return_value=PHOTO_URL)
    store.upload_book_cover = AsyncMock(return_value=COVER_URL)
    store.upload_book_pdf = AsyncMock(return_value=PDF_URL)
    store.upload_book_files = AsyncMock(return_value=(COVER_URL, PDF_URL))
    return store


@pytest.fixture
def throttle():
    return VerificationThrottle(limit=20, window_seconds=300)


@pytest.fixture
def authority(directory, passwords, media_store, throttle):
    """Session authority wired to test doubles."""
    return SessionAuthority(
        directory=directory,
        passwords=passwords,
        media_store=media_store,
        throttle=throttle
    )


@pytest.fixture
def photo():
    """Stand-in for an uploaded profile photo."""
    upload = MagicMock()
    upload.filename = "a.png"
    return upload


@pytest.fixture
def registration(photo):
    return {
        "name": "A",
        "email": "a@x.com",
        "password": "pw123456",
        "photo": photo,
    }
