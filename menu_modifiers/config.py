from typing import Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file="./.env", extra="ignore")

    ENV: str = "local"
    VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    STORE_URL: str = "http://localhost:3000/api/menu/"
    DEFAULT_TIMEOUT: int = 20

    PRICING_DEBOUNCE_SECONDS: float = 0.3
    REORDER_BATCH_SIZE: int = 50
    TEMP_ID_PREFIX: str = "tmp-"

    OPENTELEMETRY_SERVICE_NAME: str = "menu-modifiers"
    OPENTELEMETRY_COLLECTOR_ENDPOINT: str = ""

    @field_validator("STORE_URL", mode="before")
    @classmethod
    def check_store_url(cls, v: Any) -> Any:
        if isinstance(v, str) and v and not v.endswith("/"):
            return f"{v}/"
        return v

    @field_validator("REORDER_BATCH_SIZE", mode="before")
    @classmethod
    def check_reorder_batch_size(cls, v: Any) -> Any:
        if isinstance(v, int) and v > 0:
            return v
        if isinstance(v, str) and v.isdigit() and int(v) > 0:
            return int(v)

        return 50


settings = Settings()
