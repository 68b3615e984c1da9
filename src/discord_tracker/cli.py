"""Discord Tracker CLI.

discord-tracker check-config
discord-tracker issue-token --access-token <OAUTH_TOKEN>
discord-tracker lookup 826678506925801482 --token <JWT>
discord-tracker friends --access-token <OAUTH_TOKEN> --token <JWT>
discord-tracker export --output users.jsonl --token <ADMIN_JWT>
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, NoReturn

import click
import orjson
from bson import ObjectId
from pymongo.errors import PyMongoError

from discord_tracker.auth import (
    ROLE_ADMIN,
    ROLE_USER,
    AuthError,
    build_claims,
    decode_access,
    encode_access,
    profile_from_claims,
    require_role,
)
from discord_tracker.client import DiscordApiError, DiscordClient
from discord_tracker.config import AppConfig, load_config
from discord_tracker.logging_config import setup_logging
from discord_tracker.models import DiscordUser
from discord_tracker.service import TrackerError, TrackerService
from discord_tracker.store import connect_store

logger = logging.getLogger(__name__)

_config_option = click.option(
    "--config", "config_path", type=click.Path(exists=True, path_type=Path),
    default=None, help="설정 파일 경로 (기본: config.yaml, 없으면 환경변수)",
)
_json_log_option = click.option("--json-log", is_flag=True, help="JSON 형태 로그 출력")
_token_option = click.option(
    "--token", envvar="TRACKER_TOKEN", required=True, help="issue-token으로 발급한 액세스 토큰",
)
_access_token_option = click.option(
    "--access-token", envvar="DISCORD_ACCESS_TOKEN", required=True,
    help="Discord OAuth2 access token",
)


@click.group()
@click.version_option(version="0.1.0")
def main() -> None:
    """Discord 유저 트래커 조회 도구."""


@main.command("check-config")
@_config_option
def check_config(config_path: Path | None) -> None:
    """필수 설정/환경변수를 점검한다."""
    config = _load_config(config_path)

    click.echo(f"[OK] MongoDB: db={config.mongo.db_name}, collection={config.mongo.collection}")
    click.echo("[OK] Token secret configured")
    if config.discord.bot_token:
        click.echo("[OK] Discord bot token configured")
    else:
        click.echo(
            "[WARN] DISCORD_BOT_TOKEN not set: live Discord lookup is disabled", err=True,
        )
    click.echo(f"[OK] Admin users: {len(config.auth.admin_user_ids)}")


@main.command("issue-token")
@_access_token_option
@_config_option
@_json_log_option
def issue_token(access_token: str, config_path: Path | None, json_log: bool) -> None:
    """Discord OAuth access token으로 트래커 액세스 토큰을 발급한다."""
    setup_logging(json_format=json_log)
    config = _load_config(config_path)
    client = DiscordClient(config.discord)

    try:
        raw = client.fetch_current_user(access_token)
    except DiscordApiError as e:
        _fail(e.status_code or 502, str(e))

    user = DiscordUser.from_api_response(raw)
    claims = build_claims(user, config.auth)
    logger.info(
        "Token issued for %s (role=%s)", user.id, claims["role"],
        extra={"event_code": "TOKEN_ISSUED", "user_id": user.id},
    )
    click.echo(encode_access(claims, config.auth))


@main.command()
@_token_option
@_config_option
def me(token: str, config_path: Path | None) -> None:
    """토큰 소유자의 프로필을 출력한다."""
    config = _load_config(config_path)
    claims = _authenticate(token, config, ROLE_USER)
    click.echo(_dumps(profile_from_claims(claims)))


@main.command()
@click.argument("user_id")
@_token_option
@_config_option
@_json_log_option
def lookup(user_id: str, token: str, config_path: Path | None, json_log: bool) -> None:
    """트래커 레코드를 조회해 정규화된 JSON으로 출력한다."""
    setup_logging(json_format=json_log)
    config = _load_config(config_path)
    _authenticate(token, config, ROLE_USER)

    service = _build_service(config)
    try:
        result = service.get_user(user_id)
    except TrackerError as e:
        _fail(e.status_code, str(e))
    except PyMongoError as e:
        _store_unavailable(e)

    logger.info(
        "Lookup done: %s (source=%s)", user_id, result.source,
        extra={"event_code": "LOOKUP_DONE", "user_id": user_id},
    )
    click.echo(_dumps(result.record))


@main.command()
@_access_token_option
@_token_option
@_config_option
@_json_log_option
def friends(access_token: str, token: str, config_path: Path | None, json_log: bool) -> None:
    """Discord 친구 목록을 출력한다."""
    setup_logging(json_format=json_log)
    config = _load_config(config_path)
    _authenticate(token, config, ROLE_USER)

    service = TrackerService(connect_store(config.mongo), DiscordClient(config.discord))
    try:
        result = service.get_friends(access_token)
    except TrackerError as e:
        _fail(e.status_code, str(e))

    click.echo(_dumps([f.model_dump() for f in result]))


@main.command()
@click.option("--output", required=True, type=click.Path(dir_okay=False, path_type=Path),
              help="JSONL 출력 파일")
@click.option("--limit", type=int, default=0, show_default=True, help="최대 건수 (0=전체)")
@_token_option
@_config_option
@_json_log_option
def export(
    output: Path,
    limit: int,
    token: str,
    config_path: Path | None,
    json_log: bool,
) -> None:
    """정규화된 전체 레코드를 JSONL로 내보낸다 (admin 전용)."""
    setup_logging(json_format=json_log)
    config = _load_config(config_path)
    _authenticate(token, config, ROLE_ADMIN)

    service = _build_service(config)
    output.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with open(output, "wb") as f:
        try:
            for record in service.iter_users(limit=limit):
                f.write(orjson.dumps(record, default=_json_default, option=orjson.OPT_APPEND_NEWLINE))
                count += 1
        except PyMongoError as e:
            _store_unavailable(e)

    logger.info(
        "Export done: %d records → %s", count, output,
        extra={"event_code": "EXPORT_DONE", "count": count},
    )
    click.echo(f"Exported {count} records to {output}")


def _load_config(config_path: Path | None) -> AppConfig:
    """설정 로드. 필수 값 누락/검증 실패 시 종료."""
    try:
        return load_config(config_path)
    except ValueError as e:
        click.echo(f"[FAIL] {e}", err=True)
        sys.exit(1)


def _store_unavailable(e: PyMongoError) -> NoReturn:
    logger.error(
        "User store unavailable: %s", e,
        extra={"event_code": "STORE_UNAVAILABLE", "status_code": 503},
    )
    _fail(503, f"User store unavailable: {e}")


def _build_service(config: AppConfig) -> TrackerService:
    client = DiscordClient(config.discord)
    if not client.has_bot_token:
        logger.warning(
            "DISCORD_BOT_TOKEN not set: live Discord lookup disabled",
            extra={"event_code": "LIVE_LOOKUP_DISABLED"},
        )
    return TrackerService(connect_store(config.mongo), client)


def _authenticate(token: str, config: AppConfig, role: str) -> dict[str, Any]:
    """토큰 검증 + 역할 확인. 실패 시 종료."""
    try:
        claims = decode_access(token, config.auth)
        require_role(claims, role)
    except AuthError as e:
        _fail(e.status_code, str(e))
    return claims


def _fail(status_code: int, message: str) -> NoReturn:
    click.echo(f"[ERROR] {status_code}: {message}", err=True)
    sys.exit(1)


def _json_default(obj: Any) -> Any:
    """정규화 대상이 아닌 필드에 남은 BSON 값 처리."""
    if isinstance(obj, ObjectId):
        return str(obj)
    raise TypeError(f"Type is not JSON serializable: {type(obj).__name__}")


def _dumps(obj: Any) -> str:
    return orjson.dumps(obj, default=_json_default, option=orjson.OPT_INDENT_2).decode()
