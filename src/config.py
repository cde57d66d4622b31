from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=8000)

    # Host advertised to Twilio in the TwiML <Stream> URL.
    # Falls back to the webhook request's Host header when empty.
    public_host: str = Field(default="")

    # Routing
    stream_path: str = Field(default="/stream")
    voice_webhook_path: str = Field(default="/callback/calls/voice")

    # TwiML
    greeting: str = Field(default="")

    # Audio hook, as "module:attribute"
    audio_processor: str = Field(default="src.audio.processing:passthrough")

    # Production
    max_concurrent_streams: int = Field(default=50)
    shutdown_grace_seconds: int = Field(default=30)
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",  # Allow extra fields in .env without raising errors
    )


settings = Settings()
