"""Application settings loaded from the environment."""
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Runtime configuration.

    Every field can be overridden with the environment variable named in
    its alias, or through a local ``.env`` file.
    """

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = Field(default="sqlite:///./solarflow.db", validation_alias="DATABASE_URL")
    sql_echo: bool = Field(default=False, validation_alias="SQL_ECHO")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    # Minimum hours between ordering material and the scheduled install
    material_lead_time_hours: int = Field(default=48, validation_alias="MATERIAL_LEAD_TIME_HOURS")

    # PostgreSQL only; 0 disables the server-side statement timeout
    statement_timeout_ms: int = Field(default=0, validation_alias="STATEMENT_TIMEOUT_MS")


settings = Settings()
