from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    APP_NAME: str = "Kakeibo Backend"
    ENV: str = "dev"

    # SQLite file next to the backend package so the path does not depend on CWD
    _default_db_path = Path(__file__).resolve().parents[2] / "db.sqlite3"
    DATABASE_URL: str = f"sqlite:///{_default_db_path}"

    CORS_ORIGINS: list[str] = ["*"]
    # "today" for withdrawal due checks is evaluated in this zone
    TIMEZONE: str = "Asia/Tokyo"
    DEFAULT_CURRENCY: str = "JPY"

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="KAKEIBO_", case_sensitive=False)


settings = Settings()
