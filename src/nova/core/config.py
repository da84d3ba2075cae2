"""
Configuration management for NOVA application

Loads settings from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from typing import Optional


class Config:
    """Application configuration"""

    # Project paths
    PROJECT_ROOT = Path(__file__).parent.parent.parent.parent
    DATA_DIR = Path(os.getenv("NOVA_DATA_DIR", str(PROJECT_ROOT / "data")))
    UPLOAD_DIR = Path(os.getenv("NOVA_UPLOAD_DIR", str(DATA_DIR / "uploads")))
    STATIC_DIR = Path(__file__).parent.parent / "static"

    # Database
    DATABASE_PATH = Path(os.getenv("NOVA_DATABASE_PATH", str(DATA_DIR / "nova.db")))

    # Server settings
    HOST: str = os.getenv("NOVA_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("NOVA_PORT", "8000"))
    ENV: str = os.getenv("NOVA_ENV", "development")

    # CORS settings
    CORS_ORIGINS: list[str] = os.getenv(
        "NOVA_CORS_ORIGINS",
        "http://localhost:5173,http://localhost:8000"
    ).split(",")

    # ============================================================
    # Service Provider Configuration
    # ============================================================

    # Supported LLM providers: gemini
    LLM_PROVIDER: str = os.getenv("NOVA_LLM_PROVIDER", "gemini")

    # Supported image hosts: local, cloudinary
    IMAGE_PROVIDER: str = os.getenv("NOVA_IMAGE_PROVIDER", "local")

    # -------------------- LLM API Configuration --------------------
    # Unprefixed names match the keys issued by Google AI Studio
    GEMINI_API_KEY: Optional[str] = os.getenv("GEMINI_API_KEY")
    GEMINI_MODEL: Optional[str] = os.getenv("GEMINI_MODEL")
    LLM_API_BASE_URL: str = os.getenv(
        "NOVA_LLM_API_BASE_URL",
        "https://generativelanguage.googleapis.com/v1beta"
    )
    LLM_TIMEOUT_SEC: float = float(os.getenv("NOVA_LLM_TIMEOUT", "30"))
    LLM_MAX_RETRIES: int = int(os.getenv("NOVA_LLM_MAX_RETRIES", "2"))
    LLM_RETRY_DELAY_SEC: float = float(os.getenv("NOVA_LLM_RETRY_DELAY", "0.8"))

    # -------------------- Image Host Configuration --------------------
    CLOUDINARY_CLOUD_NAME: Optional[str] = os.getenv("CLOUDINARY_CLOUD_NAME")
    CLOUDINARY_API_KEY: Optional[str] = os.getenv("CLOUDINARY_API_KEY")
    CLOUDINARY_API_SECRET: Optional[str] = os.getenv("CLOUDINARY_API_SECRET")
    MAX_IMAGE_SIZE: int = int(os.getenv("NOVA_MAX_IMAGE_SIZE", str(5 * 1024 * 1024)))

    # -------------------- Session Configuration --------------------
    SESSION_COOKIE_NAME: str = "token"
    SESSION_MAX_AGE_SEC: int = int(os.getenv("NOVA_SESSION_MAX_AGE", str(7 * 24 * 60 * 60)))
    SESSION_COOKIE_SECURE: bool = os.getenv("NOVA_COOKIE_SECURE", "false").lower() == "true"

    RATE_LIMIT_ENABLED: bool = os.getenv("NOVA_RATE_LIMIT", "true").lower() == "true"

    # Assistant defaults
    DEFAULT_ASSISTANT_NAME: str = os.getenv("NOVA_DEFAULT_ASSISTANT", "Nova")

    # Logging
    LOG_LEVEL: str = os.getenv("NOVA_LOG_LEVEL", "INFO")

    @classmethod
    def llm_configured(cls) -> bool:
        """True when both the API key and the model name are set"""
        return bool(cls.GEMINI_API_KEY and cls.GEMINI_MODEL)

    @classmethod
    def validate(cls) -> bool:
        """Validate configuration and create necessary directories"""
        try:
            cls.DATA_DIR.mkdir(parents=True, exist_ok=True)
            cls.UPLOAD_DIR.mkdir(parents=True, exist_ok=True)
            cls.DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)

            if cls.IMAGE_PROVIDER == "cloudinary" and not (
                cls.CLOUDINARY_CLOUD_NAME and cls.CLOUDINARY_API_KEY and cls.CLOUDINARY_API_SECRET
            ):
                raise ValueError(
                    "Cloudinary image provider selected but CLOUDINARY_CLOUD_NAME, "
                    "CLOUDINARY_API_KEY or CLOUDINARY_API_SECRET is missing"
                )

            return True
        except Exception as e:
            print(f"[FAIL] Configuration validation failed: {e}")
            return False


# Global config instance
config = Config()
