"""Discord REST API 클라이언트.

- Bot 토큰: DB에 없는 유저의 live 조회 (/users/{id})
- OAuth access token: 로그인 유저 프로필 (/users/@me), 친구 목록 (/users/@me/relationships)
- Rate limit (429) 자동 대기, 5xx/전송 오류(timeout, 연결 실패) 지수 백오프 재시도
"""

from __future__ import annotations

import logging
import os
import random
import time
from typing import Any

import httpx

from discord_tracker.config import DiscordApiConfig

logger = logging.getLogger(__name__)


class DiscordApiError(Exception):
    """Discord API 호출 실패."""

    def __init__(self, status_code: int, message: str):
        self.status_code = status_code
        super().__init__(f"Discord API error {status_code}: {message}")


class DiscordClient:
    """Discord REST API 클라이언트."""

    def __init__(self, config: DiscordApiConfig, bot_token: str | None = None):
        self._config = config
        self._bot_token = bot_token or config.bot_token or os.environ.get("DISCORD_BOT_TOKEN", "")
        self._base_url = config.api_base.rstrip("/")

    @property
    def has_bot_token(self) -> bool:
        return bool(self._bot_token)

    def fetch_user(self, user_id: str) -> dict[str, Any] | None:
        """Bot 토큰으로 유저를 조회한다. 존재하지 않으면 None.

        Raises:
            RuntimeError: Bot 토큰이 설정되지 않음
            DiscordApiError: 404 이외의 API 에러 (재시도 실패 후)
        """
        if not self._bot_token:
            raise RuntimeError("DISCORD_BOT_TOKEN 환경변수가 설정되지 않았습니다.")
        try:
            return self._get(f"/users/{user_id}", auth=f"Bot {self._bot_token}")
        except DiscordApiError as e:
            if e.status_code == 404:
                return None
            raise

    def fetch_current_user(self, access_token: str) -> dict[str, Any]:
        """OAuth access token 소유자의 프로필을 조회한다."""
        return self._get("/users/@me", auth=f"Bearer {access_token}")

    def fetch_relationships(self, access_token: str) -> list[dict[str, Any]]:
        """OAuth access token 소유자의 relationship 목록을 조회한다."""
        return self._get("/users/@me/relationships", auth=f"Bearer {access_token}")

    def _get(self, path: str, *, auth: str) -> Any:
        url = f"{self._base_url}{path}"
        headers = {
            "Authorization": auth,
            "User-Agent": self._config.user_agent,
        }

        last_exc: Exception | None = None
        for attempt in range(self._config.max_retries + 1):
            try:
                with httpx.Client(timeout=self._config.timeout_sec) as client:
                    resp = client.get(url, headers=headers)

                # Rate limit 처리
                if resp.status_code == 429:
                    retry_after = _parse_retry_after(resp)
                    logger.warning(
                        "Rate limited (429). Waiting %.1fs",
                        retry_after,
                        extra={"event_code": "RATE_LIMITED",
                               "retry_after": retry_after},
                    )
                    time.sleep(retry_after)
                    continue  # 429는 백오프 없이 retry_after만큼 대기 후 재시도

                resp.raise_for_status()
                return resp.json()

            except httpx.HTTPStatusError as e:
                last_exc = e
                status = e.response.status_code
                # 5xx만 재시도
                if status >= 500 and attempt < self._config.max_retries:
                    wait = _backoff_wait(attempt, self._config.backoff_factor)
                    logger.warning(
                        "Retry %d/%d after %.1fs: %s",
                        attempt + 1, self._config.max_retries, wait, e,
                    )
                    time.sleep(wait)
                    continue
                raise DiscordApiError(status, _error_message(e.response)) from e

            # TimeoutException, ConnectError, RemoteProtocolError 등
            except httpx.TransportError as e:
                last_exc = e
                kind = "Timeout" if isinstance(e, httpx.TimeoutException) else "Transport error"
                if attempt < self._config.max_retries:
                    wait = _backoff_wait(attempt, self._config.backoff_factor)
                    logger.warning(
                        "%s retry %d/%d after %.1fs: %s",
                        kind, attempt + 1, self._config.max_retries, wait, e,
                    )
                    time.sleep(wait)
                    continue
                raise DiscordApiError(0, f"{kind}: {e}") from e

        raise DiscordApiError(0, f"Max retries exceeded: {last_exc}")


def _error_message(resp: httpx.Response) -> str:
    """에러 응답 본문의 message, 없으면 reason phrase."""
    try:
        body = resp.json()
    except ValueError:
        return resp.reason_phrase
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return resp.reason_phrase


def _parse_retry_after(resp: httpx.Response) -> float:
    """429 응답에서 대기 시간을 파싱한다."""
    try:
        body = resp.json()
        return float(body.get("retry_after", 5.0))
    except Exception:
        return 5.0  # 파싱 실패 시 보수적 5초


def _backoff_wait(attempt: int, backoff_factor: float) -> float:
    """지수 백오프 + 지터 대기 시간을 계산한다."""
    base = backoff_factor * (2 ** attempt)
    jitter = random.uniform(0, base * 0.5)
    return base + jitter
