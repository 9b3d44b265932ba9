"""
Configuration management for the gallery back office.
Uses Pydantic Settings for environment variable management.
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    API_TITLE: str = "Arcemusa Gallery API"
    API_VERSION: str = "0.1.0"
    API_DESCRIPTION: str = "Gallery and upload-session API for the construction site back office"

    # CORS Configuration
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5000",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5000",
    ]

    # Database Configuration
    DATABASE_URL: str = ""

    # Cloudinary Configuration
    CLOUDINARY_CLOUD_NAME: str = ""
    CLOUDINARY_API_KEY: str = ""
    CLOUDINARY_API_SECRET: str = ""
    UPLOAD_FOLDER: str = "gallery"
    UPLOAD_RATE_LIMIT: str = "60/hour"

    # Admin Password (bcrypt hash checked against the X-CMS-Password header)
    ADMIN_PASSWORD_HASH: str = ""

    # Gallery rules shared by the API and the admin client
    GALLERY_MAX_IMAGES: int = 10
    RECENT_EDIT_WINDOW_SECONDS: float = 3.0

    # Admin client: where the gallery API lives and how to authenticate
    GALLERY_API_URL: str = "http://localhost:8000/api"
    GALLERY_API_TIMEOUT: float = 30.0
    CMS_PASSWORD: str = ""

    # Durable mirror for pending (not yet saved) gallery images
    REDIS_URL: str = "redis://localhost:6379/0"
    PENDING_MIRROR_PREFIX: str = "pendingImages"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields in .env that aren't defined in Settings


# Global settings instance
settings = Settings()
