# layerproxy/core/config.py
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    # 토큰 교환 시 사용할 기본 계정 (없으면 익명 토큰 요청)
    REGISTRY_USERNAME: Optional[str] = None
    REGISTRY_PASSWORD: Optional[str] = None

    API_TIMEOUT_SECONDS: int = 300
    USER_AGENT: str = "LayerProxy/0.1.0"
    DEFAULT_LAYER: int = 0

    LOG_LEVEL: str = "INFO"
    API_VERSION: str = "0.1.0"

    class Config:
        env_file = ".env"
        env_file_encoding = 'utf-8'

@lru_cache()
def get_settings():
    return Settings()

settings = get_settings()
