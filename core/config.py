"""Configuration management for the passport MRZ reader."""

from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Tesseract engine
    TESSERACT_CMD: Optional[str] = None  # Path to tesseract binary (None = use PATH)
    TESSDATA_DIR: Optional[str] = None  # Directory holding ocrb/eng traineddata files

    # OCR Settings
    OCR_PRIMARY_MODEL: str = "ocrb"  # Monospaced model tuned for machine-readable zones
    OCR_FALLBACK_MODEL: str = "eng"  # General-purpose text model, tried once
    OCR_CHAR_WHITELIST: str = "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789<"  # Full MRZ alphabet
    OCR_PAGE_SEG_MODE: int = 6  # Single uniform block of text
    OCR_MIN_CONFIDENCE: float = 60.0  # Below this the image is treated as too blurry
    OCR_MIN_TEXT_LENGTH: int = 20  # Shorter output counts as a failed attempt

    # Timeouts (seconds)
    OCR_TIMEOUT_SECONDS: float = 30.0  # Full pipeline
    OCR_QUICK_TIMEOUT_SECONDS: float = 15.0  # extract_mrz_quick entry point

    # Preprocessing Settings
    MRZ_CROP_RATIO: float = 0.25  # Bottom share of the page holding the MRZ band

    # Processing cache
    CACHE_MAX_SIZE: int = 50

    # Image sources
    DOWNLOAD_TIMEOUT_SECONDS: float = 30.0
    MAX_IMAGE_BYTES: int = 10 * 1024 * 1024  # 10MB

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: Optional[str] = "./logs/mrz_reader.log"
    LOG_ROTATION: str = "10 MB"
    LOG_RETENTION: str = "7 days"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


# Global settings instance
settings = Settings()
