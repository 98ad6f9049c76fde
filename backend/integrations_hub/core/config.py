from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    DATABASE_URL: str
    SECRET_KEY: str

    # Fernet key (urlsafe base64, 32 bytes). When unset the key is derived from SECRET_KEY.
    CREDENTIALS_ENCRYPTION_KEY: Optional[str] = None
    # Comma-separated keys that are still accepted for decryption during a key rotation
    CREDENTIALS_PREVIOUS_KEYS: str = ""

    REDIS_URL: str = "redis://localhost:6379/0"

    WEBHOOK_TIMEOUT_SECONDS: float = 30.0
    WEBHOOK_RESPONSE_BODY_LIMIT: int = 1000
    WEBHOOK_RETRY_BATCH_SIZE: int = 100
    CONNECTION_TEST_TIMEOUT_SECONDS: float = 15.0

    API_KEY_PREFIX: str = "ps_"

    # Global per-IP limit applied by slowapi
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_DEFAULT: str = "200/minute"

    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

    @property
    def previous_encryption_keys(self) -> List[str]:
        return [k.strip() for k in self.CREDENTIALS_PREVIOUS_KEYS.split(",") if k.strip()]


settings = Settings()
