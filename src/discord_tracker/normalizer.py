"""추적 유저 문서 정규화기.

MongoDB(BSON / extended JSON) 문서 → JSON 직렬화 가능한 canonical 형태.
- snowflake: 10진 문자열 (float 경유 금지)
- timestamp: epoch milliseconds 정수
- 필드 역할은 엔티티별 테이블로 선언하고, 하나의 재귀 walker가 적용한다.

스키마가 여러 번 바뀌었기 때문에 알 수 없는 형태는 에러 없이 그대로 통과시킨다.
"""

from __future__ import annotations

import enum
import re
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime, timedelta
from typing import Any, Union

from bson import Int64, ObjectId

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)
_ONE_MS = timedelta(milliseconds=1)
_DECIMAL_RE = re.compile(r"^-?\d+$")
_UINT64_MASK = 0xFFFFFFFF


class ValueKind(enum.Enum):
    """저장소가 값을 인코딩한 방식."""

    MISSING = "missing"
    PLAIN_STRING = "plain_string"
    PLAIN_NUMBER = "plain_number"
    WIRE_INTEGER = "wire_integer"     # Int64, {"$numberLong"}, {"low","high"}
    WIRE_DATE = "wire_date"           # {"$date": ...}
    NATIVE_DATE = "native_date"       # datetime
    OBJECT_ID = "object_id"           # ObjectId, {"$oid"}
    UNKNOWN = "unknown"


class FieldRole(enum.Enum):
    """문서 필드의 의미상 타입."""

    SNOWFLAKE = "snowflake"
    TIMESTAMP = "timestamp"


# 중첩 스키마: 필드명 → 역할 또는 하위 문서 스키마.
# 하위 스키마는 dict 값에는 그대로, list 값에는 원소별로 적용된다.
Schema = Mapping[str, Union[FieldRole, "Schema"]]


def classify_value(value: Any) -> ValueKind:
    """값의 인코딩 종류를 판별한다."""
    if value is None:
        return ValueKind.MISSING
    # bool은 int의 서브클래스이므로 먼저 걸러낸다
    if isinstance(value, bool):
        return ValueKind.UNKNOWN
    # Int64도 int의 서브클래스
    if isinstance(value, Int64):
        return ValueKind.WIRE_INTEGER
    if isinstance(value, (int, float)):
        return ValueKind.PLAIN_NUMBER
    if isinstance(value, str):
        return ValueKind.PLAIN_STRING
    if isinstance(value, datetime):
        return ValueKind.NATIVE_DATE
    if isinstance(value, ObjectId):
        return ValueKind.OBJECT_ID
    if isinstance(value, Mapping):
        if set(value) == {"$numberLong"}:
            return ValueKind.WIRE_INTEGER
        if set(value) == {"$date"}:
            return ValueKind.WIRE_DATE
        if set(value) == {"$oid"}:
            return ValueKind.OBJECT_ID
        if {"low", "high"} <= set(value) <= {"low", "high", "unsigned"}:
            return ValueKind.WIRE_INTEGER
    return ValueKind.UNKNOWN


def convert_snowflake(value: Any) -> Any:
    """snowflake / 64bit 정수 값을 10진 문자열로 변환한다.

    0은 유효한 값이다. 인식하지 못한 형태는 그대로 반환한다.
    """
    kind = classify_value(value)

    if kind is ValueKind.PLAIN_STRING:
        return value
    if kind is ValueKind.PLAIN_NUMBER:
        if isinstance(value, int):
            return str(value)
        # 이미 float로 들어온 값은 정밀도를 되살릴 수 없다
        if value.is_integer():
            return str(int(value))
        return value
    if kind is ValueKind.WIRE_INTEGER:
        as_int = _wire_integer_to_int(value)
        return str(as_int) if as_int is not None else value
    if kind is ValueKind.OBJECT_ID:
        return str(value["$oid"]) if isinstance(value, Mapping) else str(value)
    return value


def convert_timestamp(value: Any) -> Any:
    """timestamp 값을 epoch milliseconds 정수로 변환한다.

    파싱할 수 없는 날짜 문자열은 원본 문자열 그대로 반환한다.
    """
    kind = classify_value(value)

    if kind is ValueKind.NATIVE_DATE:
        return _datetime_to_ms(value)
    if kind is ValueKind.WIRE_DATE:
        return _unwrap_date(value["$date"], original=value)
    if kind is ValueKind.PLAIN_NUMBER:
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value
    if kind is ValueKind.WIRE_INTEGER:
        as_int = _wire_integer_to_int(value)
        return as_int if as_int is not None else value
    if kind is ValueKind.PLAIN_STRING:
        return _parse_date_string(value)
    return value


def _wire_integer_to_int(value: Any) -> int | None:
    """64bit wire 정수를 int로 변환한다. 형태가 맞지 않으면 None."""
    if isinstance(value, Int64):
        return int(value)
    if "$numberLong" in value:
        raw = value["$numberLong"]
        if isinstance(raw, str) and _DECIMAL_RE.match(raw):
            return int(raw)
        return None

    low, high = value.get("low"), value.get("high")
    if not isinstance(low, int) or not isinstance(high, int):
        return None
    # JS Long의 상위/하위 32bit 분할 표현
    combined = ((high & _UINT64_MASK) << 32) | (low & _UINT64_MASK)
    if not value.get("unsigned", False) and combined >= 1 << 63:
        combined -= 1 << 64
    return combined


def _unwrap_date(inner: Any, *, original: Any) -> Any:
    """{"$date": inner} 의 inner를 epoch ms로 변환한다."""
    kind = classify_value(inner)
    if kind is ValueKind.WIRE_INTEGER:
        as_int = _wire_integer_to_int(inner)
        return as_int if as_int is not None else original
    if kind is ValueKind.PLAIN_NUMBER:
        if isinstance(inner, int):
            return inner
        if inner.is_integer():
            return int(inner)
        return original
    if kind is ValueKind.PLAIN_STRING:
        return _parse_date_string(inner)
    if kind is ValueKind.NATIVE_DATE:
        return _datetime_to_ms(inner)
    return original


def _parse_date_string(raw: str) -> int | str:
    """10진 ms 문자열 또는 ISO 8601 문자열 → epoch ms. 실패 시 원본."""
    text = raw.strip()
    if _DECIMAL_RE.match(text):
        return int(text)
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return raw
    return _datetime_to_ms(dt)


def _datetime_to_ms(dt: datetime) -> int:
    # pymongo는 기본적으로 naive UTC datetime을 돌려준다
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return (dt - _EPOCH) // _ONE_MS


# ─── 필드 역할 테이블 ───────────────────────────────────

SERVER_INFO_SCHEMA: Schema = {
    "guild_id": FieldRole.SNOWFLAKE,
    "guildId": FieldRole.SNOWFLAKE,
    "first_seen": FieldRole.TIMESTAMP,
    "firstSeen": FieldRole.TIMESTAMP,
    "last_message_at": FieldRole.TIMESTAMP,
    "lastMessageAt": FieldRole.TIMESTAMP,
}

CHANGE_SET_SCHEMA: Schema = {
    "server_joined": SERVER_INFO_SCHEMA,
    "serverJoined": SERVER_INFO_SCHEMA,
    "server": SERVER_INFO_SCHEMA,
    "guild_id": FieldRole.SNOWFLAKE,
    "guildId": FieldRole.SNOWFLAKE,
}

HISTORY_ENTRY_SCHEMA: Schema = {
    "changed_at": FieldRole.TIMESTAMP,
    "changedAt": FieldRole.TIMESTAMP,
    "changes": CHANGE_SET_SCHEMA,
    "changeSet": CHANGE_SET_SCHEMA,
}

ACTIVITY_SCHEMA: Schema = {
    "guild_id": FieldRole.SNOWFLAKE,
    "guildId": FieldRole.SNOWFLAKE,
    "channel_id": FieldRole.SNOWFLAKE,
    "channelId": FieldRole.SNOWFLAKE,
    "message_id": FieldRole.SNOWFLAKE,
    "messageId": FieldRole.SNOWFLAKE,
    "timestamp": FieldRole.TIMESTAMP,
}

USER_DOCUMENT_SCHEMA: Schema = {
    "_id": FieldRole.SNOWFLAKE,
    "id": FieldRole.SNOWFLAKE,
    "user_id": FieldRole.SNOWFLAKE,
    "userId": FieldRole.SNOWFLAKE,
    "first_seen_overall": FieldRole.TIMESTAMP,
    "firstSeenOverall": FieldRole.TIMESTAMP,
    "last_seen_overall": FieldRole.TIMESTAMP,
    "lastSeenOverall": FieldRole.TIMESTAMP,
    "createdAt": FieldRole.TIMESTAMP,
    "created_at": FieldRole.TIMESTAMP,
    "updatedAt": FieldRole.TIMESTAMP,
    "updated_at": FieldRole.TIMESTAMP,
    "servers": SERVER_INFO_SCHEMA,
    "guilds": SERVER_INFO_SCHEMA,
    "history": HISTORY_ENTRY_SCHEMA,
    "changeHistory": HISTORY_ENTRY_SCHEMA,
    "recent_messages": ACTIVITY_SCHEMA,
    "recentMessages": ACTIVITY_SCHEMA,
    "message_image_history": ACTIVITY_SCHEMA,
    "imageHistory": ACTIVITY_SCHEMA,
}

_CONVERTERS = {
    FieldRole.SNOWFLAKE: convert_snowflake,
    FieldRole.TIMESTAMP: convert_timestamp,
}


def apply_schema(value: Any, schema: Schema) -> Any:
    """스키마를 값에 재귀 적용한다. 입력은 변경하지 않는다.

    - dict: 스키마에 있는 필드만 변환, 나머지는 그대로 복사
    - list: 원소마다 같은 스키마 적용
    - 그 외: 그대로 반환
    """
    if isinstance(value, list):
        return [apply_schema(item, schema) for item in value]
    if not isinstance(value, Mapping) or classify_value(value) is not ValueKind.UNKNOWN:
        return value

    result: dict[str, Any] = {}
    for key, item in value.items():
        role = schema.get(key)
        if role is None:
            result[key] = item
        elif isinstance(role, FieldRole):
            result[key] = _apply_role(item, role)
        else:
            result[key] = apply_schema(item, role)
    return result


def _apply_role(value: Any, role: FieldRole) -> Any:
    if isinstance(value, list):
        return [_apply_role(item, role) for item in value]
    return _CONVERTERS[role](value)


def normalize_user_document(doc: Mapping[str, Any] | None) -> dict[str, Any] | None:
    """추적 유저 문서 1건을 canonical JSON 형태로 변환한다."""
    if doc is None:
        return None
    return apply_schema(doc, USER_DOCUMENT_SCHEMA)


def normalize_user_documents(docs: Iterable[Mapping[str, Any] | None]) -> list[dict[str, Any] | None]:
    """여러 문서를 정규화한다."""
    return [normalize_user_document(doc) for doc in docs]
