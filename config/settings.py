"""Centralized configuration using Pydantic BaseSettings.

All environment variables are loaded here once. Services receive
config via constructor injection or import the singleton.
"""

from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Calculate project root once - used for absolute .env path
# This ensures .env is found regardless of the current working directory
_PROJECT_ROOT = Path(__file__).parent.parent
_ENV_FILE_PATH = str(_PROJECT_ROOT / ".env")


class Neo4jSettings(BaseSettings):
    """Neo4j database configuration (used when EDGE_STORE_BACKEND=neo4j)."""

    model_config = SettingsConfigDict(
        env_prefix="NEO4J_",
        env_file=_ENV_FILE_PATH,
        env_file_encoding="utf-8",
        extra="ignore"
    )

    uri: str = Field(default="bolt://localhost:7687")
    user: str = Field(default="neo4j")
    password: str = Field(default="")
    database: str = Field(default="neo4j")
    max_pool_size: int = Field(default=10, ge=1, le=100)
    max_connection_lifetime: int = Field(default=3600, ge=60)
    connection_timeout: int = Field(default=30, ge=1)
    max_transaction_retry_time: int = Field(default=30, ge=1)


class RelationshipSettings(BaseSettings):
    """Paired-write retry budget and repair worker parameters."""

    model_config = SettingsConfigDict(
        env_prefix="RELATIONSHIP_",
        env_file=_ENV_FILE_PATH,
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Reciprocal write/delete retry (second write of a mutual pair only)
    reciprocal_max_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Total attempts for the reciprocal write before deferring to repair"
    )
    reciprocal_retry_delay_seconds: float = Field(
        default=0.05,
        ge=0,
        le=5,
        description="Base delay between reciprocal attempts, doubled per attempt"
    )

    # Repair
    repair_policy: str = Field(default="recreate")
    repair_batch_size: int = Field(default=200, ge=1, le=5000)
    repair_interval_seconds: float = Field(default=300.0, gt=0)
    repair_queue_limit: int = Field(default=100, ge=1, le=1000)
    enable_repair_worker: bool = Field(default=True)

    # Edge type validation
    max_type_length: int = Field(default=64, ge=1, le=255)

    @field_validator("repair_policy")
    @classmethod
    def validate_policy(cls, v: str) -> str:
        allowed = ["recreate", "downgrade"]
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"Must be one of {allowed}")
        return v


class AppSettings(BaseSettings):
    """Main application configuration with nested settings."""

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE_PATH,
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Server settings
    server_name: str = Field(default="contact-graph", validation_alias="MCP_SERVER_NAME")
    environment: str = Field(default="development", validation_alias="ENV")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Storage
    edge_store_backend: str = Field(default="sqlite", validation_alias="EDGE_STORE_BACKEND")
    database_path: str = Field(default="./data/contacts.db", validation_alias="DATABASE_PATH")
    max_concurrent_operations: int = Field(
        default=10, ge=1, le=100, validation_alias="MAX_CONCURRENT_OPERATIONS"
    )

    # Nested settings - instantiated via default_factory
    neo4j: Neo4jSettings = Field(default_factory=Neo4jSettings)
    relationships: RelationshipSettings = Field(default_factory=RelationshipSettings)

    @field_validator("edge_store_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        allowed = ["sqlite", "neo4j", "memory"]
        v = v.lower()
        if v not in allowed:
            raise ValueError(f"Must be one of {allowed}")
        return v

    @model_validator(mode="after")
    def resolve_paths(self) -> "AppSettings":
        """Convert relative paths to absolute based on project root."""
        project_root = Path(__file__).parent.parent

        if self.database_path != ":memory:" and not Path(self.database_path).is_absolute():
            object.__setattr__(self, "database_path", str(project_root / self.database_path))

        return self

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    def validate_production(self) -> None:
        """Validate settings for production. Raises ValueError if insecure."""
        if not self.is_production():
            return

        errors = []

        if self.edge_store_backend == "neo4j" and (
            not self.neo4j.password or self.neo4j.password == "password"
        ):
            errors.append("NEO4J_PASSWORD: Must be set to a secure value in production")

        if self.edge_store_backend == "memory":
            errors.append("EDGE_STORE_BACKEND: 'memory' is not durable and not allowed in production")

        if self.database_path == ":memory:":
            errors.append("DATABASE_PATH: Must point to a file in production")

        if errors:
            raise ValueError("Production validation failed:\n- " + "\n- ".join(errors))


# Module-level singleton - instantiated once on first import
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get the settings singleton. Creates on first call."""
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def reset_settings() -> None:
    """Reset settings singleton (for testing only)."""
    global _settings
    _settings = None
