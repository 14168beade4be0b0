"""
Environment configuration for the HostelOps API.

Values come from environment variables or a local .env file.
"""

import json
import secrets
from functools import lru_cache
from typing import Annotated, List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    APP_NAME: str = "HostelOps API"
    ENVIRONMENT: str = "development"
    DEBUG: bool = False
    PORT: int = 8000
    CORS_ORIGINS: Annotated[List[str], NoDecode] = Field(default=["*"])

    # Mongo
    DATABASE_URL: Optional[str] = None
    DATABASE_NAME: Optional[str] = None

    # Security
    JWT_SECRET_KEY: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 7
    PASSWORD_BCRYPT_ROUNDS: int = Field(default=12, ge=4, le=31)

    # Rate limiting
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "200/15 minutes"
    RATE_LIMIT_AUTH: str = "20/15 minutes"

    LOG_LEVEL: str = "INFO"
    SEED_DEFAULT_USERS: bool = True
    ANNOUNCEMENTS_LIMIT: int = 10

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Accept a JSON list or a comma separated string"""
        if isinstance(v, str):
            if v.startswith("[") and v.endswith("]"):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    pass
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v

    def database_configured(self) -> bool:
        return bool(self.DATABASE_URL and self.DATABASE_NAME)

    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
