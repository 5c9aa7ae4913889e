import os
import logging
from typing import Any, List, Optional

from pydantic import Field, PostgresDsn, field_validator, ValidationInfo
from pydantic_settings import BaseSettings, SettingsConfigDict

from dotenv import load_dotenv

load_dotenv()

# Затем проверяем, запущено ли приложение в Docker
is_docker = os.path.exists("/.dockerenv") or os.path.exists("/run/.containerenv")

# Если запущено в Docker, перезагружаем переменные из .env.docker
if is_docker:
    load_dotenv(".env.docker", override=True)


class Settings(BaseSettings):
    API_V1_STR: str = "/api"
    PROJECT_NAME: str = "stock_push"

    # development / staging / production, см. core/push_config.py
    ENVIRONMENT: str = "production"

    # Список origin'ов для CORS в формате JSON, например '["http://localhost:3000"]'
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "postgres"
    POSTGRES_DB: str = "stock_push"
    SQLALCHEMY_DATABASE_URI: Optional[str] = Field(default=None, validate_default=True)

    # Брокер Celery (Redis)
    CELERY_BROKER_URL: str = "redis://redis:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://redis:6379/1"

    @field_validator("SQLALCHEMY_DATABASE_URI", mode='before')
    def assemble_db_connection(cls, v: Optional[str], values: ValidationInfo) -> Any:
        if isinstance(v, str) and v:
            return v
        return str(PostgresDsn.build(
            scheme="postgresql",
            username=values.data.get("POSTGRES_USER"),
            password=values.data.get("POSTGRES_PASSWORD"),
            host=values.data.get("POSTGRES_SERVER"),
            path=f"{values.data.get('POSTGRES_DB') or ''}",
        ))

    model_config = SettingsConfigDict(case_sensitive=True, extra="ignore")


settings = Settings()
logging.getLogger("stock.push").debug(f"settings loaded for {settings.PROJECT_NAME} ({settings.ENVIRONMENT})")
