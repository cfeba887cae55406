import logging
from typing import List, Literal, Optional

from pydantic import Field, RedisDsn, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Configuration settings for the Design Generator service.
    Settings are loaded from environment variables and/or a .env file.
    """

    # --- General Service Settings ---
    SERVICE_NAME: str = Field(default="design_generator", description="Name of the service.")
    LOG_LEVEL: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level for the service."
    )
    API_PREFIX: str = Field(default="/api", description="Prefix for the REST endpoints.")
    WEBSOCKET_PATH: str = Field(default="/ws", description="Path of the real-time design channel.")

    # --- OpenAI Settings ---
    OPENAI_API_KEY: Optional[SecretStr] = Field(
        default=None, description="API key for the OpenAI chat completions API."
    )
    OPENAI_MODEL: str = Field(default="gpt-4", description="Chat model used to draft designs.")
    OPENAI_TEMPERATURE: float = Field(
        default=0.7, description="Sampling temperature for design generation."
    )
    OPENAI_MAX_TOKENS: int = Field(
        default=2000, description="Upper bound on the size of a generated design."
    )
    OPENAI_TIMEOUT_S: float = Field(
        default=60.0, description="Timeout in seconds for a single model call."
    )

    # --- History Settings ---
    RECENT_DESIGNS_LIMIT: int = Field(
        default=20, description="Number of designs returned by GET /designs."
    )

    # --- WebSocket Settings ---
    WEBSOCKET_MAX_QUEUE_SIZE: int = Field(
        default=100, description="Maximum number of messages queued for a WebSocket client before messages are dropped."
    )

    # --- Redis Settings (optional fan-out of design events to other processes) ---
    REDIS_ENABLED: bool = Field(
        default=False, description="Publish design events to Redis in addition to the WebSocket broadcast."
    )
    REDIS_URL: RedisDsn = Field(
        default="redis://localhost:6379/0",
        description="URL for the Redis server instance used for pub/sub.",
    )
    REDIS_DESIGN_EVENTS_CHANNEL: str = Field(
        default="design_events", description="Redis channel for generated/modified designs."
    )

    # --- CORS Settings ---
    CORS_ALLOWED_ORIGINS: List[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"],
        description="List of allowed origins for CORS.",
    )

    # --- API Server Settings ---
    API_HOST: str = Field(default="0.0.0.0", description="Host to bind the API server to.")
    API_PORT: int = Field(default=3001, description="Port to bind the API server to.")

    model_config = SettingsConfigDict(
        env_file=".env",  # Load .env file if present
        env_file_encoding="utf-8",
        extra="ignore",  # Ignore extra environment variables
        case_sensitive=False,
    )


# Initialize settings globally for easy access
settings = Settings()

# Configure logging based on settings
logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(settings.SERVICE_NAME)

# Log loaded settings (excluding secrets) for verification during startup
startup_log_settings = {
    k: (v.get_secret_value()[:4] + "****" if isinstance(v, SecretStr) else v)
    for k, v in settings.model_dump().items()
}
logger.debug(f"Design Generator settings loaded: {startup_log_settings}")

if __name__ == "__main__":
    print("Loaded Design Generator Settings:")
    for field_name, value in settings.model_dump().items():
        if isinstance(value, SecretStr):
            print(f"  {field_name}: {value.get_secret_value()[:4]}****")
        else:
            print(f"  {field_name}: {value}")
