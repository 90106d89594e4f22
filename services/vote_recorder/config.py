"""Configuration management for the Vote Recorder service."""
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Service configuration
    SERVICE_NAME: str = "vote-recorder"
    API_VERSION: str = "v1"
    DEBUG: bool = False

    # Server configuration
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Firebase service account
    FIREBASE_PROJECT_ID: Optional[str] = None
    FIREBASE_PRIVATE_KEY: Optional[str] = None
    FIREBASE_CLIENT_EMAIL: Optional[str] = None

    # Firestore layout
    TALLY_COLLECTION: str = "destinationVotes"
    RECEIPT_COLLECTION: str = "userVotes"
    MAX_TRANSACTION_ATTEMPTS: int = 5

    # Rate limiting
    RATE_LIMIT: str = "1000/second"

    # CORS settings
    CORS_ORIGINS: list = ["*"]
    CORS_ALLOW_CREDENTIALS: bool = True
    CORS_ALLOW_METHODS: list = ["*"]
    CORS_ALLOW_HEADERS: list = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def firebase_private_key(self) -> str:
        """Private key with escaped newlines restored."""
        return (self.FIREBASE_PRIVATE_KEY or "").replace("\\n", "\n")

    @property
    def service_account_info(self) -> dict:
        """Service account mapping accepted by google-auth."""
        return {
            "type": "service_account",
            "project_id": self.FIREBASE_PROJECT_ID,
            "private_key": self.firebase_private_key,
            "client_email": self.FIREBASE_CLIENT_EMAIL,
            "token_uri": "https://oauth2.googleapis.com/token",
        }


settings = Settings()
