from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_name: str = Field(default="http-handlers", alias="APP_NAME")
    app_env: str = Field(default="local", alias="APP_ENV")
    app_version: str = Field(default="0.0.0", alias="APP_VERSION")
    runbook_url: str = Field(default="", alias="RUNBOOK_URL")

    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    # "json" for the structured sink, "text" for local development
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    # extra header names kept out of access logs, on top of the built-in deny-list
    denied_headers: list[str] = Field(default_factory=list, alias="LOG_DENIED_HEADERS")


settings = Settings()
