"""Application configuration using pydantic-settings."""

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ftp_s3_gateway import __version__

HEALTH_PATH = "/health"
METRICS_PATH = "/metrics"


class Settings(BaseSettings):
    """
    Gateway settings loaded from environment variables.

    All settings can be configured via:
    1. Environment variables (e.g., FTP_HOST=ftp.internal)
    2. .env file in the working directory
    3. CLI flags (see ftp_s3_gateway.cli), which override both

    Values are read once at startup and treated as immutable afterwards.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # API settings
    api_title: str = "FTP S3 Gateway"
    api_version: str = __version__

    # FTP backend
    ftp_host: str = "localhost"
    ftp_port: int = 21
    ftp_user: str = ""
    ftp_password: str = ""
    ftp_timeout: float = 30.0  # Socket timeout for control and data connections

    # HTTP listener
    host: str = "0.0.0.0"
    port: int = 8080

    # The single virtual bucket exposing the FTP root
    bucket_name: str = "default"

    # AWS Signature V4 - zero or one static credential pair.
    # Authentication is disabled when either half is missing.
    s3_access_key_id: str | None = None
    s3_secret_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("s3_secret_key", "s3_secret_access_key"),
    )
    s3_region: str = "us-east-1"  # Region used when recomputing signatures
    s3_sig_v4_max_age_seconds: int = 900  # Max clock skew of signed request (15 minutes)

    # Logging
    log_level: str = "INFO"
    log_format: str = "json"  # "json" or "console"

    # Object bodies are buffered in memory up to this size, then spill to disk
    spool_max_memory_bytes: int = 8 * 1024 * 1024

    # Prometheus endpoint at METRICS_PATH
    metrics_enabled: bool = True

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        """Upper-case the level; WARN is accepted as an alias of WARNING."""
        value = value.strip().upper()
        if value == "WARN":
            return "WARNING"
        return value

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value

    def credential_pairs(self) -> list[tuple[str, str]]:
        """Return the configured static credential pairs (zero or one)."""
        if self.s3_access_key_id and self.s3_secret_key:
            return [(self.s3_access_key_id, self.s3_secret_key)]
        return []

    @property
    def public_paths(self) -> set[str]:
        """Paths served without signature verification."""
        paths = {HEALTH_PATH}
        if self.metrics_enabled:
            paths.add(METRICS_PATH)
        return paths

    @property
    def ftp_address(self) -> str:
        return f"{self.ftp_host}:{self.ftp_port}"


# Global settings instance
settings = Settings()
