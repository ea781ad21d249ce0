"""
Configuration settings for the upload server
"""
import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings"""

    # Storage
    UPLOAD_TEMP_DIR: str = os.getenv("UPLOAD_TEMP_DIR", "/tmp/chunkflow/parts")
    UPLOAD_COMPLETED_DIR: str = os.getenv("UPLOAD_COMPLETED_DIR", "/tmp/chunkflow/completed")

    # Stale session cleanup, in seconds
    CLEANUP_INTERVAL: float = float(os.getenv("CLEANUP_INTERVAL", "3600"))
    STALE_TIMEOUT: float = float(os.getenv("STALE_TIMEOUT", "3600"))

    # flow.js lets the last chunk grow up to 2x chunkSize unless forceChunkSize is set
    FINAL_CHUNK_TOLERANCE: float = float(os.getenv("FINAL_CHUNK_TOLERANCE", "2.0"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Application
    APP_TITLE: str = "Chunked Upload API"
    APP_VERSION: str = "1.0.0"

    def __init__(self, **overrides):
        for key, value in overrides.items():
            if not hasattr(type(self), key):
                raise AttributeError(f"Unknown setting {key}")
            setattr(self, key, value)


settings = Settings()
