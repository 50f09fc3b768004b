from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=True,
        extra='forbid',
    )

    DATABASE_URL: str
    JWT_SECRET_KEY: str
    APP_ENV: str = 'development'
    CORS_ORIGINS: str = 'http://localhost:3001'
    LOG_LEVEL: str = 'INFO'

    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    JWT_ALGORITHM: str = 'HS256'

    DEFAULT_PASSING_SCORE_PERCENT: int = 60
    DEFAULT_QUESTION_POINTS: int = 1

    @field_validator('DATABASE_URL')
    @classmethod
    def validate_database_url(cls, value: str) -> str:
        if not value.startswith(('postgresql', 'sqlite')):
            raise ValueError('DATABASE_URL must point to PostgreSQL (or SQLite for local testing)')
        return value

    @field_validator('JWT_SECRET_KEY')
    @classmethod
    def validate_jwt_secret_strength(cls, value: str) -> str:
        if len(value) < 32:
            raise ValueError('JWT secrets must be at least 32 characters')
        return value

    @field_validator('DEFAULT_PASSING_SCORE_PERCENT')
    @classmethod
    def validate_passing_score(cls, value: int) -> int:
        if not 0 <= value <= 100:
            raise ValueError('DEFAULT_PASSING_SCORE_PERCENT must be between 0 and 100')
        return value

    @field_validator('DEFAULT_QUESTION_POINTS')
    @classmethod
    def validate_question_points(cls, value: int) -> int:
        if value < 1:
            raise ValueError('DEFAULT_QUESTION_POINTS must be a positive integer')
        return value

    @property
    def cors_origins(self) -> list[str]:
        return [item.strip() for item in self.CORS_ORIGINS.split(',') if item.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
