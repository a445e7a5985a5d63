"""Cloudinary media store for profile photos, book covers and book PDFs."""

import asyncio
import os
import time
from typing import Any, Dict, Optional, Tuple

import cloudinary
import cloudinary.exceptions
import cloudinary.uploader
import structlog
from fastapi import UploadFile

from utilities.exceptions import MediaUploadError, ValidationError

logger = structlog.get_logger(__name__)

IMAGE_FORMATS = ["jpg", "jpeg", "png", "gif", "webp", "avif", "svg", "heic"]

IMAGE_TRANSFORMATION = [
    {"fetch_format": "auto"},
    {"quality": "auto"},
    {"crop": "fill", "gravity": "auto"},
]

PROFILE_PHOTO_FOLDER = "profile_photo"
BOOK_PHOTO_FOLDER = "book_photo"
BOOK_PDF_FOLDER = "book_pdf"


class CloudinaryMediaStore:
    """Uploads files to Cloudinary and returns durable HTTPS URLs."""

    def __init__(self, cloud_name: Optional[str], api_key: Optional[str], api_secret: Optional[str]):
        self.configured = bool(cloud_name and api_key and api_secret)
        if self.configured:
            cloudinary.config(
                cloud_name=cloud_name,
                api_key=api_key,
                api_secret=api_secret,
                secure=True  # Always use HTTPS
            )
        else:
            logger.warning("Cloudinary credentials missing, uploads will fail")

    async def _upload(self, upload: UploadFile, **options: Any) -> str:
        if not self.configured:
            raise MediaUploadError("Media store is not configured")

        content = await upload.read()
        if not content:
            raise ValidationError(f"{upload.filename or 'file'} is empty")

        try:
            result: Dict[str, Any] = await asyncio.to_thread(
                cloudinary.uploader.upload, content, **options
            )
        except cloudinary.exceptions.Error as e:
            logger.error("Cloudinary upload failed", filename=upload.filename, error=str(e))
            raise MediaUploadError()

        url = result.get("secure_url") or result.get("url")
        if not url:
            raise MediaUploadError("Media store returned no URL")

        logger.info("Uploaded media", folder=options.get("folder"), url=url)
        return url

    def _check_image(self, upload: UploadFile, field: str) -> None:
        extension = os.path.splitext(upload.filename or "")[1].lstrip(".").lower()
        if extension not in IMAGE_FORMATS:
            raise ValidationError(f"Unsupported image format: {extension or 'none'}", field=field)

    def _check_pdf(self, upload: UploadFile) -> None:
        if upload.content_type != "application/pdf":
            raise ValidationError("Book file must be a PDF", field="pdf")

    async def upload_profile_photo(self, upload: UploadFile) -> str:
        self._check_image(upload, "photo")
        return await self._upload(
            upload,
            folder=PROFILE_PHOTO_FOLDER,
            allowed_formats=IMAGE_FORMATS,
            transformation=IMAGE_TRANSFORMATION,
        )

    async def upload_book_cover(self, upload: UploadFile) -> str:
        self._check_image(upload, "cover")
        return await self._upload(
            upload,
            folder=BOOK_PHOTO_FOLDER,
            type="upload",
            allowed_formats=IMAGE_FORMATS,
            transformation=IMAGE_TRANSFORMATION,
            public_id=f"{int(time.time() * 1000)}-{upload.filename}",
        )

    async def upload_book_pdf(self, upload: UploadFile) -> str:
        """PDFs are stored as raw resources so Cloudinary serves them untouched."""
        self._check_pdf(upload)

        clean_name = (upload.filename or "book").replace(".pdf", "")
        return await self._upload(
            upload,
            folder=BOOK_PDF_FOLDER,
            resource_type="raw",
            format="pdf",
            type="upload",
            public_id=f"{int(time.time() * 1000)}-{clean_name}",
        )

    async def upload_book_files(self, cover: UploadFile, pdf: UploadFile) -> Tuple[str, str]:
        """
        Upload a book's cover and PDF.

        Both files are checked before either is uploaded.

        Returns:
            (cover_url, pdf_url)
        """
        self._check_image(cover, "cover")
        self._check_pdf(pdf)
        cover_url = await self.upload_book_cover(cover)
        pdf_url = await self.upload_book_pdf(pdf)
        return cover_url, pdf_url
