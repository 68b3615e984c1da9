"""YAML 설정 로딩 + Pydantic 모델."""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

_DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[2] / "config.yaml"


class MongoConfig(BaseModel):
    uri: str = Field(min_length=1)
    db_name: str = "tracker_db"        # 트래커 봇이 쓰는 DB
    collection: str = "users"
    timeout_ms: int = Field(default=5000, ge=100)


class DiscordApiConfig(BaseModel):
    api_base: str = "https://discord.com/api/v10"
    bot_token: str = ""                # 비어 있으면 live 조회 비활성화
    timeout_sec: float = 30.0
    max_retries: int = 3
    backoff_factor: float = 2.0
    user_agent: str = "DiscordTracker/0.1.0"


class AuthConfig(BaseModel):
    jwt_secret: str = Field(min_length=1)
    token_ttl_sec: int = Field(default=60 * 60 * 24 * 7, ge=60)  # 7일
    issuer: str = "discord-tracker"
    audience: str = "discord-tracker-dashboard"
    admin_user_ids: list[str] = Field(default_factory=list)

    @field_validator("admin_user_ids", mode="before")
    @classmethod
    def split_admin_ids(cls, v: object) -> object:
        if isinstance(v, str):
            return [part.strip() for part in v.split(",") if part.strip()]
        if isinstance(v, list):
            return [str(part) for part in v]
        return v


class AppConfig(BaseModel):
    mongo: MongoConfig
    discord: DiscordApiConfig = Field(default_factory=DiscordApiConfig)
    auth: AuthConfig


_ENV_OVERRIDES: list[tuple[str, str, str]] = [
    ("MONGO_URI", "mongo", "uri"),
    ("MONGO_DB_NAME", "mongo", "db_name"),
    ("DISCORD_BOT_TOKEN", "discord", "bot_token"),
    ("TRACKER_JWT_SECRET", "auth", "jwt_secret"),
    ("TRACKER_ADMIN_IDS", "auth", "admin_user_ids"),
]


def load_config(path: Path | None = None) -> AppConfig:
    """YAML 설정 파일 + 환경변수를 로딩하고 Pydantic 모델로 검증한다.

    경로를 지정하지 않았고 기본 config.yaml도 없으면 환경변수만으로 구성한다.
    """
    config_path = path or _DEFAULT_CONFIG_PATH
    dotenv_path = config_path.parent / ".env"
    load_dotenv(dotenv_path=dotenv_path, override=False)

    if path is None and not config_path.exists():
        raw: dict = {}
    else:
        with open(config_path) as f:
            raw = yaml.safe_load(f)
        if raw is None:
            raise ValueError(f"Empty config file: {config_path}")

    # 환경변수 오버라이드
    for env_name, section, key in _ENV_OVERRIDES:
        if value := os.environ.get(env_name):
            raw.setdefault(section, {})
            raw[section][key] = value

    raw.setdefault("mongo", {})
    raw.setdefault("auth", {})
    return AppConfig.model_validate(raw)
