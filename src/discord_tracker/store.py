"""MongoDB 트래커 컬렉션 읽기 전용 접근.

문서는 트래커 봇만 쓴다. 여기서는 조회만 한다.
user_id는 스키마 버전에 따라 문자열 또는 Int64로 저장되어 있으므로 둘 다 매칭한다.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from typing import Any

from bson import Int64
from pymongo import ASCENDING, MongoClient
from pymongo.collection import Collection

from discord_tracker.config import MongoConfig

logger = logging.getLogger(__name__)


def _user_id_candidates(user_id: str) -> list[Any]:
    """user_id 조회 조건 후보 (문자열 + Int64)."""
    candidates: list[Any] = [user_id]
    if user_id.isdigit() and int(user_id) < 1 << 63:
        candidates.append(Int64(int(user_id)))
    return candidates


class UserStore:
    """트래커 users 컬렉션 조회기."""

    def __init__(self, collection: Collection):
        self._collection = collection

    def find_user(self, user_id: str) -> dict[str, Any] | None:
        """user_id로 문서 1건을 조회한다. 없으면 None."""
        doc = self._collection.find_one({"user_id": {"$in": _user_id_candidates(user_id)}})
        if doc is None:
            logger.info(
                "User not found in store: %s", user_id,
                extra={"event_code": "STORE_MISS", "user_id": user_id},
            )
        return doc

    def iter_users(self, *, limit: int = 0) -> Iterator[dict[str, Any]]:
        """전체 문서를 _id 순으로 순회한다. limit=0이면 제한 없음."""
        cursor = self._collection.find({}).sort("_id", ASCENDING)
        if limit:
            cursor = cursor.limit(limit)
        yield from cursor


def connect_store(config: MongoConfig) -> UserStore:
    """MongoClient를 생성하고 UserStore를 반환한다.

    pymongo는 첫 쿼리 시점에 연결하므로 여기서는 네트워크를 타지 않는다.
    """
    client: MongoClient = MongoClient(
        config.uri,
        serverSelectionTimeoutMS=config.timeout_ms,
    )
    logger.info(
        "MongoDB client created (db=%s, collection=%s)",
        config.db_name, config.collection,
        extra={"event_code": "STORE_CONNECT"},
    )
    return UserStore(client[config.db_name][config.collection])
