"""Configuration for the remote signing service."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RemoteSigningSettings(BaseSettings):
    """Remote signing configuration from environment variables.

    All values can be overridden via environment variables. Prefix: ``REMOTE_SIGNING_``.
    """

    # Service configuration
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"
    log_json_output: bool = True
    environment: str = "development"

    # Signing agent (passed through to the browser unchanged)
    nexu_url: str = Field(default="http://localhost:9795", description="URL of the external signing agent")
    nexu_download_url: str = Field(
        default="http://localhost:8080/nexu-info",
        description="Where users can download the signing agent",
    )

    # Crypto engine
    mock_engine: bool = Field(
        default=True, description="If True, use the in-process mock engine. If False, call the DSS REST service."
    )
    mock_tsp: bool = Field(default=True, description="Content timestamps come from a mock timestamp source")
    dss_service_url: str = "http://dss:8080/services/rest"
    engine_timeout: float = 30.0

    # Sessions
    session_ttl_seconds: int = 1800
    session_cookie_name: str = "SIGNING_SESSION"

    model_config = SettingsConfigDict(
        env_prefix="REMOTE_SIGNING_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


@lru_cache
def get_settings() -> RemoteSigningSettings:
    """Get remote signing settings."""
    return RemoteSigningSettings()
