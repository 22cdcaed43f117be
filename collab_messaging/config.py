from functools import lru_cache

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class MongoConfig(BaseModel):
    url: str = "mongodb://localhost:27017"
    database: str = "collab_sphere"


class AuthConfig(BaseModel):
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    # claims checked in order for the identity id
    user_id_claims: list[str] = ["sub", "userId"]


class LogConfig(BaseModel):
    file_path: str = "logs/collab_messaging.log"
    max_size_mb: int = 10
    backup_count: int = 5
    level: str = "INFO"
    # third-party loggers held at library_level
    quiet_loggers: list[str] = ["pymongo", "motor", "websockets"]
    library_level: str = "WARNING"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_nested_delimiter="__", env_file=".env", extra="ignore")

    mongo: MongoConfig = MongoConfig()
    auth: AuthConfig = AuthConfig()
    logging: LogConfig = LogConfig()
    uploads_base_url: str = "http://localhost:5000"
    cors_origins: list[str] = ["http://localhost:3000"]


@lru_cache
def get_settings() -> Settings:
    return Settings()
