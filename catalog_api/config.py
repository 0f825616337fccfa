"""
API configuration settings.
Reads the service options from environment variables and an optional .env file.
"""

from typing import Dict, List, Optional
from urllib.parse import quote_plus

from pydantic import field_validator
from pydantic_settings import BaseSettings


class APIConfig(BaseSettings):
    """API configuration settings."""

    # API Settings
    api_title: str = "Library Management API"
    api_version: str = "1.0.0"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 5000
    debug: bool = False

    # Database Settings
    db_user: str = ""
    db_pass: str = ""
    db_cluster: str = "cluster0.8yiviav.mongodb.net"
    mongodb_url: Optional[str] = None
    mongodb_database: str = "booksDB"

    # Security Settings
    access_token_secret: str = "your-secret-key-change-in-production"
    token_algorithm: str = "HS256"
    token_expire_minutes: int = 60
    node_env: str = "development"

    # CORS Settings
    cors_origins: List[str] = ["http://localhost:5173"]
    cors_allow_methods: List[str] = ["GET", "POST", "PUT", "DELETE"]

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"
    log_file: Optional[str] = None

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore"  # Ignore extra fields from .env
    }

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()

    @field_validator("token_expire_minutes")
    @classmethod
    def validate_token_lifetime(cls, v):
        if v <= 0:
            raise ValueError("token_expire_minutes must be positive")
        return v

    def get_mongodb_url(self) -> str:
        """
        Get the MongoDB connection URI.

        An explicit MONGODB_URL wins; otherwise the Atlas URI is built
        from DB_USER, DB_PASS and DB_CLUSTER.
        """
        if self.mongodb_url:
            return self.mongodb_url
        return (
            f"mongodb+srv://{quote_plus(self.db_user)}:{quote_plus(self.db_pass)}"
            f"@{self.db_cluster}/?retryWrites=true&w=majority&appName=Cluster0"
        )

    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.node_env.lower() == "production"

    def cookie_options(self) -> Dict:
        """
        Get the security attributes for the session cookie.

        Production deployments are served cross-site over HTTPS; local
        development runs over plain HTTP on the same site.
        """
        if self.is_production():
            return {"secure": True, "samesite": "none"}
        return {"secure": False, "samesite": "strict"}


# Global config instance
config = APIConfig()
