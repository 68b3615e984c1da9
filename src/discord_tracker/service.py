"""트래커 조회 서비스.

흐름:
1. user_id 형식 검증 (snowflake 17~20자리)
2. 저장소 조회
3. 없으면 Bot 토큰으로 Discord live 조회 → 임시 레코드 (저장하지 않음)
4. 정규화 + 목록 필드 기본값
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any, Literal

from discord_tracker.client import DiscordApiError, DiscordClient
from discord_tracker.models import DiscordUser, Friend, friends_from_relationships
from discord_tracker.normalizer import normalize_user_document
from discord_tracker.store import UserStore

logger = logging.getLogger(__name__)

USER_ID_PATTERN = re.compile(r"[0-9]{17,20}")  # ASCII 숫자만
LIST_FIELDS = ("avatar_urls", "banner_urls", "nicknames", "servers", "history")


class TrackerError(Exception):
    """조회 실패. status_code는 HTTP 상태 코드 의미를 따른다."""

    status_code = 500

    def __init__(self, message: str, *, status_code: int | None = None):
        if status_code is not None:
            self.status_code = status_code
        super().__init__(message)


class InvalidUserIdError(TrackerError):
    status_code = 400


class UserNotFoundError(TrackerError):
    status_code = 404


@dataclass
class LookupResult:
    """조회 결과."""

    record: dict[str, Any]
    source: Literal["store", "discord_api"]


def build_user_response(doc: dict[str, Any]) -> dict[str, Any]:
    """정규화 + 목록 필드가 없으면 빈 리스트로 채운다."""
    record = normalize_user_document(doc) or {}
    for name in LIST_FIELDS:
        if record.get(name) is None:
            record[name] = []
    return record


class TrackerService:
    """저장소 + Discord 클라이언트 조합. 둘 다 생성자에서 주입받는다."""

    def __init__(self, store: UserStore, client: DiscordClient | None = None):
        self._store = store
        self._client = client

    def get_user(self, user_id: str) -> LookupResult:
        """유저 1명을 조회한다.

        Raises:
            InvalidUserIdError: snowflake 형식이 아님
            UserNotFoundError: 저장소/Discord 어디에도 없음
            TrackerError: Discord API 에러 (upstream status 전달)
        """
        if not USER_ID_PATTERN.fullmatch(user_id):
            raise InvalidUserIdError("Invalid user ID format.")

        doc = self._store.find_user(user_id)
        if doc is not None:
            return LookupResult(record=build_user_response(doc), source="store")

        if self._client is None or not self._client.has_bot_token:
            raise UserNotFoundError(
                "User not found in the database. "
                "Live Discord lookup is disabled (bot token not configured)."
            )

        logger.info(
            "Falling back to Discord API for %s", user_id,
            extra={"event_code": "LIVE_FALLBACK", "user_id": user_id},
        )
        try:
            raw = self._client.fetch_user(user_id)
        except DiscordApiError as e:
            logger.error(
                "Discord user lookup failed for %s: %s", user_id, e,
                extra={"event_code": "LIVE_FALLBACK_FAILED",
                       "user_id": user_id, "status_code": e.status_code},
            )
            raise TrackerError(
                f"Error querying the Discord API: {e}",
                status_code=e.status_code or 502,
            ) from e

        if raw is None:
            raise UserNotFoundError("User not found in the database nor via the Discord API.")

        user = DiscordUser.from_api_response(raw)
        doc = user.to_tracker_record(observed_at=datetime.now(tz=UTC))
        return LookupResult(record=build_user_response(doc), source="discord_api")

    def iter_users(self, *, limit: int = 0) -> Iterator[dict[str, Any]]:
        """전체 레코드를 정규화해서 순회한다."""
        for doc in self._store.iter_users(limit=limit):
            yield build_user_response(doc)

    def get_friends(self, access_token: str) -> list[Friend]:
        """OAuth access token 소유자의 친구 목록."""
        if self._client is None:
            raise TrackerError("Discord client is not configured.")
        if not access_token:
            raise TrackerError(
                "Access token not found. Please log in again.", status_code=401,
            )
        try:
            relationships = self._client.fetch_relationships(access_token)
        except DiscordApiError as e:
            raise TrackerError(
                f"Error fetching Discord friends: {e}",
                status_code=e.status_code or 502,
            ) from e
        friends = friends_from_relationships(relationships)
        logger.info(
            "Fetched %d friends", len(friends),
            extra={"event_code": "FRIENDS_FETCHED", "count": len(friends)},
        )
        return friends
