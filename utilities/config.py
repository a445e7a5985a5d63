"""
Configuration management using environment variables.
Handles database, media store, session and logging settings with validation and defaults.
"""

from datetime import timedelta
from typing import Optional
from pydantic import Field, validator
from pydantic_settings import BaseSettings
from pathlib import Path


class AppConfig(BaseSettings):
    """
    Configuration class for the Bookworm backend.
    Uses pydantic BaseSettings for environment variable management.
    """

    # MongoDB Configuration
    mongodb_url: str = Field(default="mongodb://localhost:27017")
    mongodb_database: str = Field(default="BookWormDb")
    users_collection: str = Field(default="users")
    genres_collection: str = Field(default="genres")
    books_collection: str = Field(default="books")

    # Media Store Configuration
    cloudinary_cloud_name: Optional[str] = Field(default=None)
    cloudinary_api_key: Optional[str] = Field(default=None)
    cloudinary_api_secret: Optional[str] = Field(default=None)

    # Session Configuration
    access_token_expire_minutes: int = Field(default=50)
    refresh_token_expire_days: int = Field(default=20)
    token_algorithm: str = Field(default="HS256")
    bcrypt_rounds: int = Field(default=10)

    # Verification failure throttle
    failed_verification_limit: int = Field(default=20)
    failed_verification_window: int = Field(default=300)  # seconds

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default=None)

    # Development/Testing
    debug: bool = Field(default=False)

    @validator('access_token_expire_minutes', 'refresh_token_expire_days')
    def validate_token_lifetime(cls, v):
        """Ensure token lifetimes are positive."""
        if v < 1:
            raise ValueError('token lifetimes must be at least 1')
        return v

    @validator('token_algorithm')
    def validate_algorithm(cls, v):
        """Only HMAC algorithms make sense with per-user shared secrets."""
        valid_algorithms = ['HS256', 'HS384', 'HS512']
        if v.upper() not in valid_algorithms:
            raise ValueError(f'token_algorithm must be one of: {valid_algorithms}')
        return v.upper()

    @validator('bcrypt_rounds')
    def validate_bcrypt_rounds(cls, v):
        """bcrypt accepts cost factors between 4 and 31."""
        if v < 4 or v > 31:
            raise ValueError('bcrypt_rounds must be between 4 and 31')
        return v

    @validator('failed_verification_limit', 'failed_verification_window')
    def validate_throttle(cls, v):
        """Ensure throttle settings are positive."""
        if v < 1:
            raise ValueError('throttle settings must be at least 1')
        return v

    @validator('log_level')
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f'log_level must be one of: {valid_levels}')
        return v.upper()

    @validator('log_format')
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ['json', 'console']
        if v.lower() not in valid_formats:
            raise ValueError(f'log_format must be one of: {valid_formats}')
        return v.lower()

    class Config:
        """Pydantic configuration."""
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields from .env

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None

    def access_token_lifetime(self) -> timedelta:
        return timedelta(minutes=self.access_token_expire_minutes)

    def refresh_token_lifetime(self) -> timedelta:
        return timedelta(days=self.refresh_token_expire_days)


# Global configuration instance
config = AppConfig()
