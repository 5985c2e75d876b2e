# reengine/core/config.py
from __future__ import annotations

from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore"
    )

    # Environment
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    debug: bool = Field(default=False, validation_alias="DEBUG")

    # Server
    api_host: str = Field(default="0.0.0.0", validation_alias="API_HOST")
    api_port: int = Field(default=8000, validation_alias="API_PORT")
    api_prefix: str = Field(default="/api", validation_alias="API_PREFIX")

    # Storage
    data_dir: str = Field(default="./data", validation_alias="REENGINE_DATA_DIR")

    # Logging
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_format: str = Field(default="json", validation_alias="LOG_FORMAT")

    # CORS
    allowed_origins: str = Field(default="http://localhost:3000,http://127.0.0.1:3000", validation_alias="ALLOWED_ORIGINS")

    # Router
    router_max_per_run: int = Field(default=20, ge=0, validation_alias="ROUTER_MAX_PER_RUN")
    router_persist_each_record: bool = Field(default=True, validation_alias="ROUTER_PERSIST_EACH_RECORD")
    router_enforce_dnc: bool = Field(default=False, validation_alias="ROUTER_ENFORCE_DNC")
    default_campaign: str = Field(default="reengine", validation_alias="DEFAULT_CAMPAIGN")
    approver_name: str = Field(default="operator", validation_alias="APPROVER_NAME")

    # Channel adapters
    adapter_mode: str = Field(default="console", validation_alias="ADAPTER_MODE")
    adapter_timeout_seconds: int = Field(default=10, validation_alias="ADAPTER_TIMEOUT_SECONDS")

    smtp_host: Optional[str] = Field(default=None, validation_alias="SMTP_HOST")
    smtp_port: int = Field(default=587, validation_alias="SMTP_PORT")
    smtp_username: Optional[str] = Field(default=None, validation_alias="SMTP_USERNAME")
    smtp_password: Optional[str] = Field(default=None, validation_alias="SMTP_PASSWORD")
    smtp_from: Optional[str] = Field(default=None, validation_alias="SMTP_FROM")

    whatsapp_api_url: str = Field(default="https://gate.whapi.cloud", validation_alias="WHATSAPP_API_URL")
    whatsapp_api_key: Optional[str] = Field(default=None, validation_alias="WHATSAPP_API_KEY")

    telegram_api_url: str = Field(default="https://api.telegram.org", validation_alias="TELEGRAM_API_URL")
    telegram_bot_token: Optional[str] = Field(default=None, validation_alias="TELEGRAM_BOT_TOKEN")

    linkedin_compose_url: str = Field(
        default="https://www.linkedin.com/messaging/compose/?recipient={to}",
        validation_alias="LINKEDIN_COMPOSE_URL",
    )
    facebook_compose_url: str = Field(
        default="https://www.facebook.com/messages/t/{to}",
        validation_alias="FACEBOOK_COMPOSE_URL",
    )

    @field_validator("environment")
    def validate_environment(cls, v):
        valid_envs = ["development", "testing", "staging", "production"]
        if v not in valid_envs:
            raise ValueError(f"environment must be one of {valid_envs}")
        return v

    @field_validator("log_level")
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    def validate_log_format(cls, v):
        valid_formats = ["json", "console"]
        if v not in valid_formats:
            raise ValueError(f"log_format must be one of {valid_formats}")
        return v

    @field_validator("adapter_mode")
    def validate_adapter_mode(cls, v):
        valid_modes = ["console", "live"]
        if v not in valid_modes:
            raise ValueError(f"adapter_mode must be one of {valid_modes}")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_testing(self) -> bool:
        return self.environment == "testing"

    def origins(self) -> List[str]:
        if self.allowed_origins.strip() == "*":
            return ["*"]
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]


settings = Settings()
