"""
Base settings class for environment configuration.

Uses Pydantic Settings for automatic environment variable loading.
Extend this class for application-specific settings.

Example:
    from common.config import BaseAppSettings

    class Settings(BaseAppSettings):
        # App-specific settings
        GOOGLE_CLIENT_ID: str = ""

    settings = Settings()
    print(settings.MONGODB_URI)
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseAppSettings(BaseSettings):
    """
    Base settings class with common configuration options.

    Automatically loads values from environment variables.
    Extend this class for application-specific settings.
    """

    # ==========================================================================
    # Database Settings
    # ==========================================================================
    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "aang"

    # ==========================================================================
    # Token Settings
    # ==========================================================================
    # Access and refresh tokens are signed with separate secrets so a leaked
    # refresh secret cannot mint access tokens and vice versa.
    JWT_ACCESS_SECRET: Optional[str] = None
    JWT_REFRESH_SECRET: Optional[str] = None
    JWT_OPERATION_SECRET: Optional[str] = None  # Falls back to JWT_ACCESS_SECRET
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    JWT_REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    OPERATION_TOKEN_EXPIRE_MINUTES: int = 10

    # ==========================================================================
    # Server Settings
    # ==========================================================================
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    DEBUG: bool = False
    ENVIRONMENT: str = "development"  # development, staging, production

    # CORS Settings
    CORS_ORIGINS: str = "*"  # Comma-separated origins or "*"
    CORS_ALLOW_CREDENTIALS: bool = True

    # ==========================================================================
    # Pydantic Settings Configuration
    # ==========================================================================
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",  # Allow app-specific settings
        case_sensitive=True,
    )

    def get_cors_origins(self) -> list:
        """Parse CORS_ORIGINS into a list."""
        if self.CORS_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    def get_operation_secret(self) -> Optional[str]:
        """Secret for operation-verification tokens."""
        return self.JWT_OPERATION_SECRET or self.JWT_ACCESS_SECRET

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT.lower() == "production"

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.ENVIRONMENT.lower() == "development"

    def validate_required(self) -> None:
        """
        Validate that required settings are configured.

        Raises:
            ValueError: If required settings are missing
        """
        errors = []

        if not self.JWT_ACCESS_SECRET:
            errors.append("JWT_ACCESS_SECRET is required")

        if not self.JWT_REFRESH_SECRET:
            errors.append("JWT_REFRESH_SECRET is required")

        if (
            self.JWT_ACCESS_SECRET
            and self.JWT_ACCESS_SECRET == self.JWT_REFRESH_SECRET
        ):
            errors.append("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ")

        if errors:
            raise ValueError("Configuration errors:\n- " + "\n- ".join(errors))
