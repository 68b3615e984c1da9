"""DiscordUser / Friend 모델 테스트."""

from __future__ import annotations

from datetime import UTC, datetime

from discord_tracker.models import DiscordUser, Friend, friends_from_relationships


class TestDiscordUser:
    """from_api_response + 파생 속성 테스트."""

    def test_from_api_response(self, sample_discord_user: dict) -> None:
        user = DiscordUser.from_api_response(sample_discord_user)

        assert user.id == "826678506925801482"
        assert user.username == "celestial"
        assert user.discriminator == "0"
        assert user.global_name == "Celestial"

    def test_display_tag_new_username(self, sample_discord_user: dict) -> None:
        user = DiscordUser.from_api_response(sample_discord_user)
        assert user.display_tag == "Celestial"

    def test_display_tag_without_global_name(self, sample_discord_user: dict) -> None:
        sample_discord_user["global_name"] = None
        user = DiscordUser.from_api_response(sample_discord_user)
        assert user.display_tag == "celestial"

    def test_display_tag_legacy_discriminator(self, sample_discord_user: dict) -> None:
        sample_discord_user["discriminator"] = "0001"
        user = DiscordUser.from_api_response(sample_discord_user)
        assert user.display_tag == "celestial#0001"

    def test_animated_avatar_url(self, sample_discord_user: dict) -> None:
        user = DiscordUser.from_api_response(sample_discord_user)
        assert user.avatar_url == (
            "https://cdn.discordapp.com/avatars/826678506925801482/"
            "a_1269e74af4df7417b13759eae50c83dc.gif?size=1024"
        )

    def test_static_banner_url(self, sample_discord_user: dict) -> None:
        user = DiscordUser.from_api_response(sample_discord_user)
        assert user.banner_url == (
            "https://cdn.discordapp.com/banners/826678506925801482/b7c9f3e2d1.png?size=1024"
        )

    def test_missing_assets(self) -> None:
        user = DiscordUser.from_api_response({"id": "1", "username": "x"})
        assert user.avatar_url is None
        assert user.banner_url is None

    def test_to_profile(self, sample_discord_user: dict) -> None:
        profile = DiscordUser.from_api_response(sample_discord_user).to_profile()

        assert profile == {
            "id": "826678506925801482",
            "username": "celestial",
            "avatar": "a_1269e74af4df7417b13759eae50c83dc",
            "discriminator": "0",
            "global_name": "Celestial",
        }


class TestToTrackerRecord:
    """임시 트래커 레코드 생성 테스트."""

    def test_record_shape(self, sample_discord_user: dict) -> None:
        user = DiscordUser.from_api_response(sample_discord_user)
        observed = datetime(2024, 6, 15, tzinfo=UTC)
        record = user.to_tracker_record(observed_at=observed)

        assert record["user_id"] == "826678506925801482"
        assert record["username_global"] == "Celestial"
        assert record["avatar_urls"] == [user.avatar_url]
        assert record["banner_urls"] == [user.banner_url]
        assert record["nicknames"] == []
        assert record["servers"] == []
        assert record["history"] == [
            {
                "changed_at": observed,
                "changes": {"username_global": "Celestial", "avatar_url": user.avatar_url},
            },
        ]

    def test_record_without_avatar(self) -> None:
        user = DiscordUser.from_api_response({"id": "1", "username": "x"})
        record = user.to_tracker_record(observed_at=datetime(2024, 6, 15, tzinfo=UTC))

        assert record["avatar_urls"] == []
        assert record["history"][0]["changes"] == {"username_global": "x"}


class TestFriends:
    """relationship → Friend 변환 테스트."""

    def test_from_relationship(self, sample_relationships: list[dict]) -> None:
        friend = Friend.from_relationship(sample_relationships[0])

        assert friend.id == "200000000000000001"
        assert friend.username == "friend1"
        assert friend.global_name == "Friend One"
        assert friend.avatar is None

    def test_only_type_1_kept(self, sample_relationships: list[dict]) -> None:
        friends = friends_from_relationships(sample_relationships)

        assert [f.id for f in friends] == ["200000000000000001", "200000000000000003"]
        assert friends[1].discriminator == "4242"

    def test_empty(self) -> None:
        assert friends_from_relationships([]) == []

    def test_null_user_field(self) -> None:
        friends = friends_from_relationships([{"id": "200000000000000009", "type": 1, "user": None}])

        assert len(friends) == 1
        assert friends[0].id == "200000000000000009"
        assert friends[0].username == ""
        assert friends[0].discriminator == "0"
