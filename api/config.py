"""
API configuration settings.
"""

from pydantic_settings import BaseSettings


class APIConfig(BaseSettings):
    """API configuration settings."""

    # API Settings
    api_title: str = "Bookworm API"
    api_version: str = "1.0.0"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 5000
    debug: bool = False

    # Proxy Settings
    forwarded_allow_ips: str = "127.0.0.1"  # peers whose X-Forwarded-For is trusted

    # Cookie Settings
    access_cookie_name: str = "accessToken"
    refresh_cookie_name: str = "refreshToken"
    cookie_max_age: int = 7 * 24 * 60 * 60  # seconds
    production: bool = False  # SameSite=none for cross-site frontends

    # CORS Settings
    cors_origins: list = [
        "http://localhost:5173",
        "https://your-frontend-domain.vercel.app",
    ]
    cors_allow_credentials: bool = True
    cors_allow_methods: list = ["*"]
    cors_allow_headers: list = ["*"]

    model_config = {
        "env_file": ".env",
        "extra": "ignore"  # Ignore extra fields from .env
    }

    @property
    def cookie_samesite(self) -> str:
        return "none" if self.production else "lax"


# Global config instance
config = APIConfig()
