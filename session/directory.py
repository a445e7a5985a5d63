"""
MongoDB-backed user directory.
Lookups by id or email, inserts, and single-document credential replacement.
"""

from typing import Any, Dict, List, Optional

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from session.models import Credentials, UserRecord, UserRole
from utilities.exceptions import Conflict

logger = structlog.get_logger(__name__)


class UserDirectory:
    """
    Async access to the users collection.
    Every write touches exactly one document, so no transactions are needed.
    """

    def __init__(self, database: AsyncIOMotorDatabase, collection_name: str = "users"):
        """
        Initialize the directory.

        Args:
            database: Motor database handle
            collection_name: Name of the users collection
        """
        self.database = database
        self.collection: AsyncIOMotorCollection = database[collection_name]

    async def create_indexes(self) -> None:
        """Create the unique email index backing registration conflicts."""
        try:
            await self.collection.create_index("email", unique=True)
            logger.info("Successfully created user directory indexes")
        except Exception as e:
            logger.error("Failed to create user directory indexes", error=str(e))
            raise

    async def find_by_id(self, user_id: str) -> Optional[UserRecord]:
        """
        Get a user by MongoDB _id.

        Args:
            user_id: ObjectId as a string

        Returns:
            UserRecord, or None if the id is malformed or unknown
        """
        if not ObjectId.is_valid(user_id):
            return None
        document = await self.collection.find_one({"_id": ObjectId(user_id)})
        if not document:
            return None
        return UserRecord.from_document(document)

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        document = await self.collection.find_one({"email": email})
        if not document:
            return None
        return UserRecord.from_document(document)

    async def insert(self, user: UserRecord) -> UserRecord:
        """
        Insert a new user record.

        Returns:
            The record with its assigned id

        Raises:
            Conflict: If the email is already registered
        """
        try:
            result = await self.collection.insert_one(user.to_document())
        except DuplicateKeyError:
            logger.warning("User already exists", email=user.email)
            raise Conflict("User already exists", field="email")

        logger.debug("Inserted user", user_id=str(result.inserted_id))
        return user.copy(update={"id": str(result.inserted_id)})

    async def update_credentials(self, user_id: str, credentials: Credentials) -> bool:
        """
        Replace the embedded credentials sub-document in one atomic update.

        Returns:
            bool: True if a user matched
        """
        result = await self.collection.update_one(
            {"_id": ObjectId(user_id)},
            {"$set": {"credentials": credentials.dict()}}
        )
        if result.matched_count == 0:
            logger.warning("User not found for credential rotation", user_id=user_id)
            return False
        return True

    async def set_role(self, email: str, role: UserRole, credentials: Credentials) -> Optional[UserRecord]:
        """
        Change a user's role and rotate credentials in the same update.

        Returns:
            The updated record, or None if no user has the email
        """
        document = await self.collection.find_one_and_update(
            {"email": email},
            {"$set": {"role": role.value, "credentials": credentials.dict()}},
            return_document=ReturnDocument.AFTER,
        )
        if not document:
            return None
        return UserRecord.from_document(document)

    async def list_by_role(self, role: UserRole) -> List[Dict[str, Any]]:
        """List users with a role, without secrets or password hashes."""
        cursor = self.collection.find(
            {"role": role.value},
            {"password": 0, "credentials": 0}
        ).sort("created_at", 1)
        return await cursor.to_list(length=None)
