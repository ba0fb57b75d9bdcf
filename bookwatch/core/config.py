from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import Optional
import os
import json
from dotenv import load_dotenv


class Settings(BaseSettings):
    """应用配置"""

    # API 配置
    API_TITLE: str = "Book Change Monitor API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = "Tracks textual changes between imported versions of published books"

    # 数据库配置（默认本地 SQLite，线上通过环境变量覆盖）
    DATABASE_URL: str = "sqlite:///./bookwatch.db"

    LOG_LEVEL: str = "INFO"

    # 内容提供方（GraphQL 接口）
    PROVIDER_API_URL: str = "https://org-api.egwwritings.org/graphql"
    PROVIDER_LANGUAGE: str = "es"
    # 远端抓取没有天然的超时，这里显式限制
    PROVIDER_TIMEOUT_SECONDS: float = 60.0

    # 书籍代码 -> 提供方 ID 的缓存有效期（秒）
    BOOK_CACHE_TTL_SECONDS: int = 300

    # 测试种子书默认注入的错误数量
    TEST_SEED_ERROR_COUNT: int = 100

    # 超过多少天未检查视为“待复查”
    STALE_REVIEW_DAYS: int = 30

    # CORS 配置
    # 支持通过环境变量 CORS_ORIGINS 覆盖：
    # - JSON 数组：["https://a.com","https://b.com"]
    # - 逗号分隔：https://a.com,https://b.com
    CORS_ORIGINS: list[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
    ]

    CORS_ALLOW_ORIGIN_REGEX: Optional[str] = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _parse_cors_origins(cls, v):
        if v is None:
            return v
        if isinstance(v, str):
            raw = v.strip()
            if not raw:
                return []
            if raw.startswith("["):
                try:
                    parsed = json.loads(raw)
                except json.JSONDecodeError:
                    parsed = None
                if isinstance(parsed, list):
                    return [str(item).strip() for item in parsed if str(item).strip()]
            return [item.strip() for item in raw.split(",") if item.strip()]
        return v

    @field_validator("CORS_ALLOW_ORIGIN_REGEX", mode="before")
    @classmethod
    def _normalize_cors_regex(cls, v):
        if v is None:
            return None
        if isinstance(v, str):
            raw = v.strip()
            return raw or None
        return v

    @staticmethod
    def _default_env_file() -> str:
        env_file = os.getenv("ENV_FILE")
        if env_file:
            return env_file
        for candidate in (".env.sqlite", ".env"):
            if os.path.exists(candidate):
                return candidate
        return ".env"

    model_config = SettingsConfigDict(env_file=_default_env_file.__func__(), extra="ignore")


# main.py 里的 AUTO_CREATE_TABLES / DEBUG_DB_ERRORS 等开关直接读 os.environ
load_dotenv(Settings.model_config["env_file"])

settings = Settings()
