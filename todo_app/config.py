from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    database_url: str = Field(min_length=1)
    jwt_secret: str = Field(min_length=16, repr=False)
    jwt_ttl_minutes: int = Field(default=60, gt=0)
    jwt_algorithm: Literal["HS256", "HS384", "HS512"] = "HS256"

    app_name: str = "Todo List"
    environment: Literal["development", "production"] = "development"
    cookie_name: str = "token"
    timezone_cookie_name: str = "timezone"
    cookie_secure: bool = False

    db_pool_size: int = Field(default=10, gt=0)
    db_max_overflow: int = Field(default=0, ge=0)

    # Argon2 cost parameters; memory is expressed in KiB.
    password_time_cost: int = Field(default=3, ge=1)
    password_memory_cost: int = Field(default=65536, ge=8)
    password_parallelism: int = Field(default=4, ge=1)

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @field_validator("database_url", "jwt_secret")
    @classmethod
    def not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("log_level")
    @classmethod
    def known_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(f"unknown log level {value!r}")
        return level

    @property
    def secure_cookies(self) -> bool:
        return self.cookie_secure or self.environment == "production"

    @property
    def token_ttl_seconds(self) -> int:
        return self.jwt_ttl_minutes * 60
