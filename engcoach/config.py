from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///engcoach.db"
    LOG_LEVEL: str = "INFO"
    ALLOW_ORIGINS: str = "*"

    # Fallback rest when an exercise instance declares none
    DEFAULT_REST_SECONDS: int = 90
    EXERCISE_PAGE_SIZE: int = 20

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def allowed_origins(self) -> list[str]:
        return [origin.strip() for origin in self.ALLOW_ORIGINS.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
