"""액세스 토큰(JWT) 발급/검증 + 역할 판정.

Discord OAuth 교환은 외부에서 끝난 상태로 가정한다.
access token으로 받은 프로필로 claims를 만들고 HS256으로 서명한다.
"""

from __future__ import annotations

import time
from typing import Any

import jwt
from jwt import InvalidTokenError

from discord_tracker.config import AuthConfig
from discord_tracker.models import DiscordUser

ROLE_ADMIN = "admin"
ROLE_USER = "user"

_PROFILE_CLAIMS = ("username", "global_name", "avatar", "discriminator")


class AuthError(Exception):
    """인증 실패 (401)."""

    status_code = 401


class ForbiddenError(AuthError):
    """권한 부족 (403)."""

    status_code = 403


def resolve_role(user_id: str, config: AuthConfig) -> str:
    return ROLE_ADMIN if user_id in config.admin_user_ids else ROLE_USER


def build_claims(user: DiscordUser, config: AuthConfig) -> dict[str, Any]:
    """Discord 프로필 → 토큰 claims."""
    return {
        "sub": user.id,
        "username": user.username,
        "global_name": user.global_name,
        "avatar": user.avatar,
        "discriminator": user.discriminator,
        "name": user.display_tag,
        "role": resolve_role(user.id, config),
    }


def encode_access(claims: dict[str, Any], config: AuthConfig) -> str:
    """iss/aud/iat/exp를 채워 토큰을 서명한다."""
    now = int(time.time())
    body: dict[str, Any] = {
        "iss": config.issuer,
        "aud": config.audience,
        "iat": now,
        "exp": now + config.token_ttl_sec,
    }
    body.update(claims)
    return jwt.encode(body, config.jwt_secret, algorithm="HS256")


def decode_access(token: str, config: AuthConfig) -> dict[str, Any]:
    """토큰을 검증하고 claims를 반환한다.

    Raises:
        AuthError: 서명/만료/issuer/audience 불일치 또는 필수 claim 누락
    """
    if not token:
        raise AuthError("Not authenticated. Please log in.")
    try:
        payload = jwt.decode(
            token,
            config.jwt_secret,
            algorithms=["HS256"],
            audience=config.audience,
            issuer=config.issuer,
            leeway=5,
            options={"require": ["exp", "iat", "iss", "aud", "sub"]},
        )
    except InvalidTokenError as e:
        raise AuthError(f"Invalid token: {e}") from e
    if payload.get("role") not in (ROLE_ADMIN, ROLE_USER):
        raise AuthError("Invalid token: missing_claim:role")
    return payload


def require_role(claims: dict[str, Any], role: str) -> None:
    """claims의 역할이 role을 만족하지 않으면 ForbiddenError. admin은 모든 역할을 만족한다."""
    actual = claims.get("role")
    if actual == ROLE_ADMIN or actual == role:
        return
    raise ForbiddenError(f"Role '{role}' required")


def profile_from_claims(claims: dict[str, Any]) -> dict[str, Any]:
    """/me 응답 형태의 프로필."""
    profile: dict[str, Any] = {"id": claims["sub"]}
    for key in _PROFILE_CLAIMS:
        profile[key] = claims.get(key)
    return profile
