"""Discord 유저 / 친구 데이터 모델."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel

CDN_BASE = "https://cdn.discordapp.com"
RELATIONSHIP_FRIEND = 1     # Discord relationship type: 1=friend, 2=blocked, ...


def _asset_url(kind: str, user_id: str, asset_hash: str) -> str:
    # a_ 접두사는 애니메이션 에셋
    ext = "gif" if asset_hash.startswith("a_") else "png"
    return f"{CDN_BASE}/{kind}/{user_id}/{asset_hash}.{ext}?size=1024"


class DiscordUser(BaseModel):
    """Discord User 객체.

    /users/{id}, /users/@me 응답과 relationship의 user 필드를 공통으로 표현한다.
    """

    id: str                                  # snowflake ID
    username: str = ""
    discriminator: str = "0"                 # 신규 username 체계는 "0"
    global_name: str | None = None
    avatar: str | None = None                # avatar hash
    banner: str | None = None                # banner hash

    @classmethod
    def from_api_response(cls, raw: dict[str, Any]) -> DiscordUser:
        """Discord API 응답 dict -> DiscordUser 변환."""
        return cls(
            id=str(raw["id"]),
            username=raw.get("username") or "",
            discriminator=str(raw.get("discriminator") or "0"),
            global_name=raw.get("global_name"),
            avatar=raw.get("avatar"),
            banner=raw.get("banner"),
        )

    @property
    def display_tag(self) -> str:
        """트래커 봇이 저장하는 형식의 유저명 (str(member)와 동일)."""
        if self.discriminator and self.discriminator != "0":
            return f"{self.username}#{self.discriminator}"
        return self.global_name or self.username

    @property
    def avatar_url(self) -> str | None:
        return _asset_url("avatars", self.id, self.avatar) if self.avatar else None

    @property
    def banner_url(self) -> str | None:
        return _asset_url("banners", self.id, self.banner) if self.banner else None

    def to_profile(self) -> dict[str, Any]:
        """/me 응답 형태."""
        return {
            "id": self.id,
            "username": self.username,
            "avatar": self.avatar,
            "discriminator": self.discriminator,
            "global_name": self.global_name,
        }

    def to_tracker_record(self, *, observed_at: datetime) -> dict[str, Any]:
        """DB에 없는 유저를 위한 임시 트래커 레코드.

        저장소에는 쓰지 않는다. 서버/상세 이력은 봇만 채울 수 있으므로 비워 둔다.
        """
        changes: dict[str, Any] = {"username_global": self.display_tag}
        if self.avatar_url:
            changes["avatar_url"] = self.avatar_url

        return {
            "user_id": self.id,
            "username_global": self.display_tag,
            "avatar_urls": [self.avatar_url] if self.avatar_url else [],
            "banner_urls": [self.banner_url] if self.banner_url else [],
            "nicknames": [],
            "servers": [],
            "history": [{"changed_at": observed_at, "changes": changes}],
        }


class Friend(BaseModel):
    """친구 목록 항목."""

    id: str
    username: str = ""
    discriminator: str = "0"
    avatar: str | None = None
    global_name: str | None = None

    @classmethod
    def from_relationship(cls, raw: dict[str, Any]) -> Friend:
        """relationship 객체 -> Friend 변환. user 필드를 평탄화한다."""
        user = DiscordUser.from_api_response({"id": raw["id"], **(raw.get("user") or {})})
        return cls(
            id=str(raw["id"]),
            username=user.username,
            discriminator=user.discriminator,
            avatar=user.avatar,
            global_name=user.global_name,
        )


def friends_from_relationships(relationships: list[dict[str, Any]]) -> list[Friend]:
    """relationship 목록에서 친구(type=1)만 추린다."""
    return [
        Friend.from_relationship(rel)
        for rel in relationships
        if rel.get("type") == RELATIONSHIP_FRIEND
    ]
