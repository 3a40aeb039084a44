"""Application configuration."""
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # OpenAI (any OpenAI-compatible endpoint, e.g. OpenRouter)
    openai_api_key: str
    openai_base_url: Optional[str] = None
    generator_model: str = "gpt-4o-mini"
    generator_temperature: float = 0.7
    generator_max_tokens: int = 1000
    generator_timeout_seconds: float = 15.0

    # Twilio
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_phone_number: str
    verify_twilio_signature: bool = False

    # Database
    database_url: str

    # Public URL Twilio reaches us on (used for redirects and signature checks)
    base_url: Optional[str] = None

    # Call flow
    company_name: str = "AgentsFlowAI"
    welcome_message: Optional[str] = None
    reprompt_message: str = "I didn't catch that. Please repeat your request."
    closing_message: str = "Thank you for calling. Goodbye!"
    tts_voice: Optional[str] = None

    # Business hours (HH:MM, local to business_timezone)
    business_hours_enabled: bool = False
    business_hours_start: str = "09:00"
    business_hours_end: str = "17:00"
    business_timezone: str = "America/New_York"

    # Voicemail
    voicemail_enabled: bool = True
    voicemail_max_length: int = 120

    # Ignore provider status updates that would move a call backwards
    enforce_monotonic_status: bool = True

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
