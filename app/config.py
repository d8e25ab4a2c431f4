from pydantic_settings import BaseSettings
from pydantic import field_validator
from functools import lru_cache
from typing import Optional, List


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Badge Issuance Backend"
    DEBUG: bool = False
    API_V1_PREFIX: str = "/api/v1"
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://localhost:5432/badges"
    DATABASE_POOL_SIZE: int = 5
    DATABASE_MAX_OVERFLOW: int = 10

    # Firebase
    FIREBASE_SERVICE_ACCOUNT: Optional[str] = None  # JSON string
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None  # File path

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    # Badge lifecycle
    BADGE_VALIDITY_DAYS: int = 365

    # Apple Wallet Pass signing
    WALLET_PASS_TYPE_ID: str = "pass.com.company.employee"
    WALLET_TEAM_ID: str = ""
    WALLET_ORGANIZATION_NAME: str = "Company"
    WALLET_CERT_BASE64: Optional[str] = None  # Base64-encoded .p12 certificate
    WALLET_CERT_PASSWORD: str = ""
    WALLET_WWDR_CERT_BASE64: Optional[str] = None  # Base64-encoded WWDR .pem certificate
    WALLET_DEFAULT_LATITUDE: float = 37.5
    WALLET_DEFAULT_LONGITUDE: float = 127.0
    WALLET_LOCALE: str = "en-US"

    # Google Wallet signing
    GOOGLE_WALLET_ISSUER_ID: str = ""
    GOOGLE_WALLET_SERVICE_ACCOUNT: Optional[str] = None  # JSON string
    GOOGLE_WALLET_SERVICE_ACCOUNT_PATH: Optional[str] = None  # File path
    GOOGLE_WALLET_JWT_TTL_SECONDS: int = 3600

    # Scannable codes / download references
    PASS_DOWNLOAD_SECRET: str = "change-me"
    PASS_DOWNLOAD_TTL_SECONDS: int = 900
    QR_INLINE_MAX_BYTES: int = 300

    @field_validator("DATABASE_URL", mode="before")
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Convert postgresql:// to postgresql+asyncpg:// for async support."""
        if v and v.startswith("postgresql://"):
            return v.replace("postgresql://", "postgresql+asyncpg://", 1)
        return v

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"  # Allow extra env variables to be ignored


@lru_cache()
def get_settings() -> Settings:
    return Settings()
