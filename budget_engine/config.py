from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///budget.db"
    TZ: str = "UTC"
    GENERATION_HOUR: int = Field(default=0, ge=0, le=23)
    GENERATION_MINUTE: int = Field(default=5, ge=0, le=59)
    PRO_RATE_FIXED_ITEMS: bool = False
    STORE_RETRY_ATTEMPTS: int = Field(default=3, ge=1)
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env")

settings = Settings()
