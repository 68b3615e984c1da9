"""공통 fixture."""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any

import pytest
import yaml
from bson import Int64, ObjectId

from discord_tracker.config import AppConfig, AuthConfig, DiscordApiConfig, MongoConfig

TEST_JWT_SECRET = "test-secret-key-0123456789abcdef-0123456789"
ADMIN_USER_ID = "111222333444555666"


@pytest.fixture(autouse=True)
def _reset_tracker_logger():
    """CLI 테스트가 붙인 핸들러(캡처 스트림)를 테스트마다 제거한다."""
    yield
    logging.getLogger("discord_tracker").handlers.clear()


@pytest.fixture()
def sample_user_document() -> dict[str, Any]:
    """트래커 봇이 저장한 MongoDB 문서 샘플 (스키마 버전 혼재)."""
    return {
        "_id": ObjectId("64b7f0c2a1b2c3d4e5f60718"),
        "user_id": Int64(826678506925801482),
        "username_global": "celestial#0001",
        "avatar_urls": [
            "https://cdn.discordapp.com/avatars/826678506925801482/abc.png?size=1024",
        ],
        "banner_urls": [],
        "nicknames": ["celes"],
        "servers": [
            {
                "guild_id": Int64(944039671707607060),
                "guild_name": "PseudoLab",
                "first_seen": datetime(2023, 5, 1, 12, 0, 0),  # pymongo naive UTC
            },
            {
                "guild_id": {"$numberLong": "1100000000000000001"},
                "guild_name": "Study",
                "first_seen": {"$date": "2023-06-01T00:00:00Z"},
                "last_message_at": {"$date": {"$numberLong": "1690000000000"}},
            },
        ],
        "history": [
            {
                "changed_at": datetime(2023, 5, 1, 12, 0, 0),
                "changes": {"username_global": "celestial#0001"},
            },
            {
                "changed_at": {"$date": {"$numberLong": "1685577600000"}},
                "changes": {
                    "server_joined": {
                        "guild_id": Int64(1100000000000000001),
                        "guild_name": "Study",
                        "first_seen": {"$date": {"$numberLong": "1685577600000"}},
                    },
                },
            },
        ],
        "recent_messages": [
            {
                "guild_id": Int64(944039671707607060),
                "channel_id": Int64(944039671707607061),
                "message_id": Int64(1234567890123456789),
                "timestamp": datetime(2023, 7, 22, 4, 26, 40),
                "snippet": "hi",
            },
        ],
        "message_image_history": [
            {
                "guild_id": "944039671707607060",
                "message_id": {"$numberLong": "1234567890123456790"},
                "timestamp": {"$date": "2023-07-22T04:26:40Z"},
                "url": "https://cdn.discordapp.com/attachments/1/2/x.png",
            },
        ],
        "first_seen_overall": datetime(2023, 5, 1, 12, 0, 0),
        "last_seen_overall": {"$date": {"$numberLong": "1690000000000"}},
        "createdAt": datetime(2023, 5, 1, 12, 0, 0),
        "updatedAt": datetime(2023, 7, 22, 4, 26, 40),
    }


@pytest.fixture()
def sample_discord_user() -> dict[str, Any]:
    """Discord /users/{id} 응답 샘플."""
    return {
        "id": "826678506925801482",
        "username": "celestial",
        "discriminator": "0",
        "global_name": "Celestial",
        "avatar": "a_1269e74af4df7417b13759eae50c83dc",
        "banner": "b7c9f3e2d1",
    }


@pytest.fixture()
def sample_relationships() -> list[dict[str, Any]]:
    """/users/@me/relationships 응답 샘플."""
    return [
        {
            "id": "200000000000000001",
            "type": 1,
            "user": {
                "id": "200000000000000001",
                "username": "friend1",
                "discriminator": "0",
                "avatar": None,
                "global_name": "Friend One",
            },
        },
        {
            "id": "200000000000000002",
            "type": 2,  # blocked
            "user": {"id": "200000000000000002", "username": "blocked", "discriminator": "0"},
        },
        {
            "id": "200000000000000003",
            "type": 1,
            "user": {
                "id": "200000000000000003",
                "username": "oldtimer",
                "discriminator": "4242",
                "avatar": "abc123",
            },
        },
    ]


@pytest.fixture()
def app_config() -> AppConfig:
    return AppConfig(
        mongo=MongoConfig(uri="mongodb://localhost:27017"),
        discord=DiscordApiConfig(
            bot_token="test-bot-token",
            max_retries=1,
            backoff_factor=0.01,
        ),
        auth=AuthConfig(jwt_secret=TEST_JWT_SECRET, admin_user_ids=[ADMIN_USER_ID]),
    )


@pytest.fixture()
def sample_config_data() -> dict[str, Any]:
    """테스트용 config dict."""
    return {
        "mongo": {"uri": "mongodb://localhost:27017", "db_name": "tracker_db"},
        "discord": {
            "api_base": "https://discord.com/api/v10",
            "max_retries": 1,
            "backoff_factor": 0.01,
        },
        "auth": {
            "jwt_secret": TEST_JWT_SECRET,
            "admin_user_ids": [ADMIN_USER_ID],
        },
    }


@pytest.fixture()
def tmp_config_file(tmp_path: Path, sample_config_data: dict[str, Any]) -> Path:
    """임시 config.yaml 파일."""
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.dump(sample_config_data), encoding="utf-8")
    return config_path
