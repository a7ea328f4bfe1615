from __future__ import annotations
from typing import Any, Dict

from gigsync.schemas import LoginRequest, LoginResponse, User
from gigsync.services.api_client import AuthenticatedClient


def _unwrap(body: Dict[str, Any]) -> Dict[str, Any]:
    # 관리자 로그인은 { success, data: { token, user } } 형태로 감싸서 돌려줌
    if isinstance(body, dict) and "token" not in body and isinstance(body.get("data"), dict):
        return body["data"]
    return body


class AuthApi:
    def __init__(self, client: AuthenticatedClient) -> None:
        self._client = client

    async def me(self) -> User:
        return User.model_validate(await self._client.get("/auth/me"))

    async def login(self, email: str, password: str) -> LoginResponse:
        req = LoginRequest(email=email, password=password)
        # 잘못된 비밀번호(401)는 세션 만료가 아니므로 로그인 화면 리다이렉트를 하지 않음
        body = await self._client.post("/auth/login", json=req.model_dump(), handle_unauthorized=False)
        return LoginResponse.model_validate(_unwrap(body))

    async def admin_login(self, email: str, password: str) -> LoginResponse:
        req = LoginRequest(email=email, password=password)
        # 서버 제한 창이 15분이라 429는 자동 재시도하지 않음
        body = await self._client.post(
            "/auth/admin/login",
            json=req.model_dump(),
            handle_unauthorized=False,
            max_rate_limit_retries=0,
        )
        return LoginResponse.model_validate(_unwrap(body))

    async def logout(self) -> None:
        await self._client.post("/auth/logout", handle_unauthorized=False)
