from __future__ import annotations
import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from httpx import Timeout

from gigsync.config import (
    API_URL, REQUEST_TIMEOUT_SEC, NETWORK_RETRY_DELAY_SEC,
    RATE_LIMIT_DEFAULT_DELAY_SEC, RATE_LIMIT_MAX_RETRIES,
)
from gigsync.errors import (
    API_ERROR_MESSAGES, ApiError, AuthenticationFailedError, NetworkError, NotFoundError,
    PermissionDeniedError, RateLimitedError, ServerError, SessionExpiredError, ValidationError,
)
from gigsync.navigation import LOGIN_PATH, Navigator
from gigsync.storage import ClientStorage, TOKEN_KEY, USER_KEY

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
UnauthorizedListener = Callable[[], Any]


def parse_retry_after(value: Optional[str], default: float) -> float:
    """Retry-After(초) 헤더 해석. 없거나 숫자가 아니면 기본값."""
    if not value:
        return default
    try:
        seconds = float(value.strip())
    except ValueError:
        return default
    return max(seconds, 0.0)


def _json_or_none(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def error_message_from(response: httpx.Response) -> str:
    body = _json_or_none(response)
    if isinstance(body, dict):
        for key in ("error", "message", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
    return response.text or response.reason_phrase or f"HTTP {response.status_code}"


def collect_validation_errors(body: Any) -> Dict[str, List[str]]:
    """
    422 응답 본문에서 필드별 오류를 모읍니다.
    - {"errors": {"field": ["msg", ...]}}         (Express 백엔드)
    - {"errors": [{"param"|"path": ..., "msg": ...}]}
    - {"detail": [{"loc": [...], "msg": ...}]}    (FastAPI)
    """
    errors: Dict[str, List[str]] = {}
    if not isinstance(body, dict):
        return errors

    raw = body.get("errors")
    if isinstance(raw, dict):
        for field, messages in raw.items():
            if isinstance(messages, str):
                messages = [messages]
            errors[str(field)] = [str(m) for m in messages]
    elif isinstance(raw, list):
        for item in raw:
            if isinstance(item, dict):
                field = item.get("param") or item.get("path") or item.get("field") or "body"
                errors.setdefault(str(field), []).append(str(item.get("msg") or item.get("message") or ""))

    detail = body.get("detail")
    if not errors and isinstance(detail, list):
        for item in detail:
            if isinstance(item, dict):
                loc = item.get("loc") or []
                field = str(loc[-1]) if loc else "body"
                errors.setdefault(field, []).append(str(item.get("msg", "")))
    return errors


class AuthenticatedClient:
    """
    모든 REST 호출이 거쳐가는 클라이언트.
    Bearer 토큰 부착 + 응답 오류 정책(아래 순서대로, 첫 번째로 맞는 규칙만 적용):
      1) 응답 없는 네트워크 오류 -> 고정 대기 후 1회 재시도
      2) 401 -> 토큰 삭제, 현재 경로 기억, 로그인 화면으로 이동, SessionExpiredError
      3) 429 -> Retry-After 만큼 대기 후 재시도 (최대 rate_limit_max_retries 회)
      4) 5xx -> ServerError (재시도 없음)
      5) 422 -> 필드 오류를 모두 이어붙인 ValidationError
      6) 그 밖의 상태 -> 상태 코드별 ApiError
    """

    def __init__(
        self,
        storage: ClientStorage,
        navigator: Navigator,
        *,
        base_url: str = API_URL,
        timeout: float = REQUEST_TIMEOUT_SEC,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Sleep] = None,
        network_retry_delay: float = NETWORK_RETRY_DELAY_SEC,
        rate_limit_default_delay: float = RATE_LIMIT_DEFAULT_DELAY_SEC,
        rate_limit_max_retries: int = RATE_LIMIT_MAX_RETRIES,
    ) -> None:
        self._storage = storage
        self._navigator = navigator
        self._sleep = sleep or asyncio.sleep
        self.network_retry_delay = network_retry_delay
        self.rate_limit_default_delay = rate_limit_default_delay
        self.rate_limit_max_retries = rate_limit_max_retries
        self._unauthorized_listeners: List[UnauthorizedListener] = []
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=Timeout(timeout),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "AuthenticatedClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    def add_unauthorized_listener(self, listener: UnauthorizedListener) -> None:
        self._unauthorized_listeners.append(listener)

    def _auth_headers(self) -> Dict[str, str]:
        # 토큰은 매 시도마다 새로 읽음 (저장소가 유일한 쓰기 주체)
        token = self._storage.get(TOKEN_KEY)
        if token:
            return {"Authorization": f"Bearer {token}"}
        return {}

    async def request(
        self,
        method: str,
        url: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        handle_unauthorized: bool = True,
        max_rate_limit_retries: Optional[int] = None,
    ) -> Any:
        rate_limit_cap = self.rate_limit_max_retries if max_rate_limit_retries is None else max_rate_limit_retries
        retried = False
        rate_limited = 0

        while True:
            try:
                response = await self._http.request(
                    method, url, json=json, params=params, headers=self._auth_headers()
                )
            except httpx.TransportError as exc:
                # 1. 네트워크 오류 (응답 자체가 없음)
                if not retried:
                    retried = True
                    logger.warning(
                        "Network error on %s %s (%s); retrying once in %.1fs",
                        method, url, exc, self.network_retry_delay,
                    )
                    await self._sleep(self.network_retry_delay)
                    continue
                logger.error("Network error on %s %s after retry: %s", method, url, exc)
                raise NetworkError(API_ERROR_MESSAGES["NETWORK_ERROR"]) from exc

            if response.is_success:
                return self._decode(response)

            status = response.status_code

            # 2. 인증 만료
            if status == 401:
                if handle_unauthorized:
                    await self._expire_session()
                    raise SessionExpiredError(API_ERROR_MESSAGES["SESSION_EXPIRED"], 401, response=response)
                raise AuthenticationFailedError(error_message_from(response), 401, response=response)

            # 3. 요청 제한
            if status == 429:
                delay = parse_retry_after(response.headers.get("Retry-After"), self.rate_limit_default_delay)
                if rate_limited < rate_limit_cap:
                    rate_limited += 1
                    logger.warning(
                        "Rate limited on %s %s; retry %d/%d in %.1fs",
                        method, url, rate_limited, rate_limit_cap, delay,
                    )
                    await self._sleep(delay)
                    continue
                raise RateLimitedError(API_ERROR_MESSAGES["RATE_LIMITED"], delay, response=response)

            # 4. 서버 오류
            if status >= 500:
                logger.error("Server error %d on %s %s", status, method, url)
                raise ServerError(API_ERROR_MESSAGES["SERVER_ERROR"], status, response=response)

            # 5. 검증 오류
            if status == 422:
                raise self._validation_error(response)

            # 6. 나머지
            raise self._status_error(response)

    async def get(self, url: str, **kwargs: Any) -> Any:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.request("POST", url, json=json, **kwargs)

    async def put(self, url: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.request("PUT", url, json=json, **kwargs)

    async def patch(self, url: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.request("PATCH", url, json=json, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", url, **kwargs)

    async def _expire_session(self) -> None:
        logger.warning("Received 401; evicting session and redirecting to %s", LOGIN_PATH)
        self._storage.remove(TOKEN_KEY)
        self._storage.remove(USER_KEY)
        # 로그인 후 돌아올 경로 기억
        self._navigator.remember_redirect()
        self._navigator.push(LOGIN_PATH)
        for listener in list(self._unauthorized_listeners):
            result = listener()
            if inspect.isawaitable(result):
                await result

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            # 2xx 응답을 받았지만 JSON이 아닌 경우
            raise ApiError(
                f"Failed to decode JSON response (status {response.status_code})",
                response.status_code,
                response=response,
            ) from e

    @staticmethod
    def _validation_error(response: httpx.Response) -> ValidationError:
        errors = collect_validation_errors(_json_or_none(response))
        messages = [m for field_messages in errors.values() for m in field_messages if m]
        message = ", ".join(messages) if messages else API_ERROR_MESSAGES["VALIDATION_ERROR"]
        return ValidationError(message, errors, response=response)

    @staticmethod
    def _status_error(response: httpx.Response) -> ApiError:
        status = response.status_code
        server_message = error_message_from(response)
        if status == 403:
            return PermissionDeniedError(
                API_ERROR_MESSAGES["FORBIDDEN"], 403, response=response, details={"server_message": server_message}
            )
        if status == 404:
            return NotFoundError(
                API_ERROR_MESSAGES["NOT_FOUND"], 404, response=response, details={"server_message": server_message}
            )
        return ApiError(server_message, status, response=response)
