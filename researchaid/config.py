"""
Configuration settings for the ResearchAid backend.
Loads environment variables and provides application-wide settings.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Completion API Configuration (any OpenAI-compatible endpoint)
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_DEFAULT_MODEL: str = "gpt-3.5-turbo"
    OPENAI_REPORT_MODEL: str = "gpt-4-turbo-preview"
    OPENAI_TIMEOUT: int = 300  # 5 minutes; multi-part reports are slow

    # Application Settings
    UPLOAD_DIR: str = "./uploads"

    # Server Configuration
    HOST: str = "0.0.0.0"
    PORT: int = 5000
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # OCR Configuration
    TESSERACT_CMD: str = "/usr/bin/tesseract"

    # Processing Configuration
    MAX_FILE_SIZE: int = 10 * 1024 * 1024  # 10 MB
    SUPPORTED_FILE_TYPES: List[str] = [".pdf", ".docx", ".doc"]

    # Classifier Configuration
    # Regex a standalone title line must match (searched, case-insensitive)
    TITLE_PATTERN: str = r"ResearchAid\s+AI"
    # Length thresholds used when guessing the document kind.  Tuned by eye,
    # not derived from anything; adjust freely.
    SUMMARY_MAX_CHARS: int = 5000
    RESEARCH_QUESTIONS_MAX_CHARS: int = 10000

    # PDF Rendering Configuration
    # Browser channel tried when the bundled Chromium cannot start
    PDF_SECONDARY_CHANNEL: str = "chrome"
    # Explicit browser executable for the secondary engine (overrides the channel)
    PDF_BROWSER_EXECUTABLE: str = ""
    PDF_RENDER_TIMEOUT: int = 30000  # milliseconds

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"
    )

    def get_allowed_origins(self) -> List[str]:
        """Parse ALLOWED_ORIGINS string into a list."""
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    @property
    def oracle_configured(self) -> bool:
        """True when an API key for the completion endpoint is present."""
        return bool(self.OPENAI_API_KEY.strip())


# Global settings instance
settings = Settings()
