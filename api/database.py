"""
Database service layer for the catalog endpoints.
"""

import math
from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from api.models import (
    BookCreatedResponse, BookListResponse, BookQueryParams, BookResponse,
    GenreCreatedResponse, GenreDeletedResponse, GenreListResponse,
    GenreRequest, GenreResponse, GenreUpdatedResponse
)
from utilities.exceptions import Conflict, NotFound, ValidationError

logger = structlog.get_logger(__name__)


def parse_object_id(value: str) -> ObjectId:
    """Convert a path id to an ObjectId, or raise ValidationError."""
    if not ObjectId.is_valid(value):
        raise ValidationError("Invalid id", field="id")
    return ObjectId(value)


def _serialize(document: Dict[str, Any]) -> Dict[str, Any]:
    """Turn _id into id and datetimes into ISO strings."""
    doc = dict(document)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    if isinstance(doc.get("created_at"), datetime):
        doc["created_at"] = doc["created_at"].isoformat()
    return doc


class CatalogDatabaseService:
    """Database service for genre and book operations."""

    def __init__(
        self,
        database: AsyncIOMotorDatabase,
        genres_collection: str = "genres",
        books_collection: str = "books"
    ):
        self.database = database
        self.genres_collection = database[genres_collection]
        self.books_collection = database[books_collection]

    async def create_indexes(self) -> None:
        """Create indexes for genre lookups and book listings."""
        try:
            await self.genres_collection.create_index("genre", unique=True)
            await self.books_collection.create_index("genre")
            await self.books_collection.create_index("created_at")
            logger.info("Successfully created catalog indexes")
        except Exception as e:
            logger.error("Failed to create catalog indexes", error=str(e))
            raise

    async def add_genre(self, request: GenreRequest) -> GenreCreatedResponse:
        """
        Add a genre unless one with the same name exists.

        Raises:
            Conflict: If the genre name is taken
        """
        existing = await self.genres_collection.find_one({"genre": request.genre})
        if existing:
            raise Conflict("Genre already exists", field="genre")

        genre_data = {"genre": request.genre, "icon": request.icon, "created_at": datetime.utcnow()}
        try:
            result = await self.genres_collection.insert_one(dict(genre_data))
        except DuplicateKeyError:
            raise Conflict("Genre already exists", field="genre")

        logger.info("Genre added", genre=request.genre, genre_id=str(result.inserted_id))
        return GenreCreatedResponse(
            inserted_id=str(result.inserted_id),
            genre=GenreResponse(id=str(result.inserted_id), **_serialize(genre_data)),
        )

    async def list_genres(self) -> GenreListResponse:
        cursor = self.genres_collection.find().sort("genre", 1)
        documents = await cursor.to_list(length=None)
        return GenreListResponse(genres=[GenreResponse(**_serialize(doc)) for doc in documents])

    async def update_genre(self, genre_id: str, request: GenreRequest) -> GenreUpdatedResponse:
        """
        Replace a genre's name and icon.

        Args:
            genre_id: Genre ObjectId as a string
            request: New genre fields

        Raises:
            ValidationError: If the id is malformed
            NotFound: If no genre has the id
            Conflict: If another genre already has the new name
        """
        object_id = parse_object_id(genre_id)
        genre_data = {"genre": request.genre, "icon": request.icon, "created_at": datetime.utcnow()}

        try:
            result = await self.genres_collection.update_one({"_id": object_id}, {"$set": genre_data})
        except DuplicateKeyError:
            raise Conflict("Genre already exists", field="genre")
        if result.matched_count == 0:
            raise NotFound("Genre not found")

        logger.info("Genre updated", genre_id=genre_id, modified=result.modified_count)
        return GenreUpdatedResponse(
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            genre=GenreResponse(id=genre_id, **_serialize(genre_data)),
        )

    async def delete_genre(self, genre_id: str) -> GenreDeletedResponse:
        object_id = parse_object_id(genre_id)
        result = await self.genres_collection.delete_one({"_id": object_id})
        if result.deleted_count == 0:
            raise NotFound("Genre not found")

        logger.info("Genre deleted", genre_id=genre_id)
        return GenreDeletedResponse(deleted_count=result.deleted_count)

    async def add_book(
        self,
        title: str,
        author: str,
        genre: str,
        description: str,
        cover: str,
        pdf: str
    ) -> BookCreatedResponse:
        """
        Insert a book. Rating statistics start at zero.

        Args:
            cover: Uploaded cover image URL
            pdf: Uploaded PDF URL
        """
        book_data = {
            "title": title,
            "author": author,
            "genre": genre,
            "description": description,
            "cover": cover,
            "pdf": pdf,
            "rating": 0,
            "rating_count": 0,
            "shelved_count": 0,
            "created_at": datetime.utcnow(),
        }
        result = await self.books_collection.insert_one(dict(book_data))

        logger.info("Book added", title=title, book_id=str(result.inserted_id))
        return BookCreatedResponse(
            inserted_id=str(result.inserted_id),
            book=BookResponse(id=str(result.inserted_id), **_serialize(book_data)),
        )

    async def get_books(self, query_params: BookQueryParams) -> BookListResponse:
        """
        Get books with optional genre filter and pagination, newest first.

        Args:
            query_params: Query parameters for filtering and pagination

        Returns:
            BookListResponse with paginated results
        """
        filter_query = {}
        if query_params.genre:
            filter_query["genre"] = query_params.genre

        skip = (query_params.page - 1) * query_params.per_page

        total = await self.books_collection.count_documents(filter_query)
        total_pages = math.ceil(total / query_params.per_page)

        cursor = (
            self.books_collection.find(filter_query)
            .sort("created_at", -1)
            .skip(skip)
            .limit(query_params.per_page)
        )
        documents = await cursor.to_list(length=query_params.per_page)

        return BookListResponse(
            books=[BookResponse(**_serialize(doc)) for doc in documents],
            total=total,
            page=query_params.page,
            per_page=query_params.per_page,
            total_pages=total_pages,
            has_next=query_params.page < total_pages,
            has_prev=query_params.page > 1
        )

    async def get_book_by_id(self, book_id: str) -> Optional[BookResponse]:
        """
        Get a single book by ID.

        Returns:
            BookResponse if found, None otherwise
        """
        document = await self.books_collection.find_one({"_id": parse_object_id(book_id)})
        if not document:
            return None
        return BookResponse(**_serialize(document))

    async def health_check(self) -> Dict:
        """
        Perform database health check.

        Returns:
            Dictionary with health status
        """
        try:
            await self.database.command("ping")

            genres_count = await self.genres_collection.count_documents({})
            books_count = await self.books_collection.count_documents({})

            return {
                "status": "healthy",
                "genres_count": genres_count,
                "books_count": books_count
            }
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return {
                "status": "unhealthy",
                "error": str(e)
            }
