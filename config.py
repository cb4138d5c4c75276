from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):

    #db settings
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASS: str = ""
    DB_NAME: str = "todo"
    DB_AUTO_INIT: bool = True
    DB_POOL_MIN: int = 1
    DB_POOL_MAX: int = 10

    #llm settings
    LLM_API_KEY: Optional[str] = None
    LLM_BASE_URL: str = "https://api.deepseek.com"
    LLM_MODEL: str = "deepseek-chat"
    LLM_TIMEOUT_SECONDS: float = 30.0

    #app settings
    # reparenting walks the whole ancestor chain; a chain longer than this,
    # or a loop already present in the data, is rejected as a conflict
    HIERARCHY_MAX_DEPTH: int = 64
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
