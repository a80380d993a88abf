from typing import List, Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    DATABASE_URL: str
    REDIS_URL: str = "redis://localhost:6379/0"
    APP_BASE_URL: str = "http://localhost:8000"
    ENV: str = "dev"
    SQL_ECHO: bool = False
    DB_POOL_SIZE: int = 5

    # Voice + SMS provider
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[SecretStr] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None
    TWILIO_SMS_FROM: Optional[str] = None
    TWILIO_VALIDATE_SIGNATURES: bool = False

    # Chat gateway (personal WhatsApp bridge)
    CHAT_GATEWAY_URL: Optional[str] = None
    CHAT_GATEWAY_SECRET: Optional[SecretStr] = None

    # Carrier tracking API
    TRACKING_API_URL: str = "https://api.17track.net/track/v2.2"
    TRACKING_API_KEY: Optional[SecretStr] = None

    # Call-center spreadsheet
    GSHEETS_SPREADSHEET_ID: Optional[str] = None
    GSHEETS_WORKSHEET: str = "Call Center"
    GSHEETS_CREDENTIALS_JSON: Optional[SecretStr] = None

    # Confirmation policy
    CALL_RETRY_DELAYS_MINUTES: List[int] = [0, 30, 240]
    CALL_MAX_ATTEMPTS: int = 3
    LOW_CONFIDENCE_THRESHOLD: float = 0.6

    IN_TRANSIT_FOLLOWUP_DELAY_SECONDS: int = 3600
    DEFAULT_STORE_NAME: str = "our store"

    # Scheduled tasks
    SCHEDULED_TASK_MAX_ATTEMPTS: int = 5
    SCHEDULED_TASK_RETRY_SECONDS: List[int] = [60, 300, 900, 3600]
    SCHEDULED_TASK_CLAIM_TIMEOUT_SECONDS: int = 900

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def twilio_configured(self) -> bool:
        return bool(self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN)

settings = Settings()
