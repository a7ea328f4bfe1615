"""Session store: the single owner of the logged-in identity and its token."""
from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, List, Optional

from pydantic import ValidationError as SchemaValidationError

from gigsync.api.auth import AuthApi
from gigsync.errors import API_ERROR_MESSAGES, ApiError, PermissionDeniedError, SessionExpiredError
from gigsync.navigation import LOGIN_PATH, SIGNUP_PATH, Navigator, dashboard_for
from gigsync.schemas import Role, SessionState, User
from gigsync.services.api_client import AuthenticatedClient
from gigsync.storage import ADMIN_USER_KEY, SESSION_KEYS, TOKEN_KEY, USER_KEY, ClientStorage

logger = logging.getLogger(__name__)

SessionListener = Callable[[SessionState, Optional[User]], None]
LogoutHook = Callable[[], Any]


class SessionStore:
    """
    로그인한 사용자 신원의 단일 출처.

    상태: UNINITIALIZED -> LOADING -> AUTHENTICATED | ANONYMOUS
    AUTHENTICATED -> ANONYMOUS 는 logout() 또는 401 응답으로만 일어납니다.
    일시적인 네트워크/서버 오류로는 캐시된 세션을 버리지 않습니다 (fail-open).
    """

    def __init__(
        self,
        storage: ClientStorage,
        client: AuthenticatedClient,
        navigator: Navigator,
        *,
        auth_api: Optional[AuthApi] = None,
    ) -> None:
        self._storage = storage
        self._navigator = navigator
        self._auth_api = auth_api or AuthApi(client)
        self._state = SessionState.UNINITIALIZED
        self._user: Optional[User] = None
        self._listeners: List[SessionListener] = []
        self._logout_hooks: List[LogoutHook] = []
        # 어떤 요청이든 401을 받으면 즉시 ANONYMOUS로
        client.add_unauthorized_listener(self._on_unauthorized)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def user(self) -> Optional[User]:
        return self._user

    @property
    def token(self) -> Optional[str]:
        return self._storage.get(TOKEN_KEY)

    @property
    def is_authenticated(self) -> bool:
        return self._state is SessionState.AUTHENTICATED

    @property
    def loading(self) -> bool:
        return self._state in (SessionState.UNINITIALIZED, SessionState.LOADING)

    def subscribe(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def add_logout_hook(self, hook: LogoutHook) -> None:
        self._logout_hooks.append(hook)

    def load_cached(self) -> Optional[User]:
        """Synchronous half of initialize(): restore the persisted snapshot for an immediate UI."""
        self._set_state(SessionState.LOADING)
        token = self._storage.get(TOKEN_KEY)
        if not token:
            self._user = None
            self._set_state(SessionState.ANONYMOUS)
            return None

        raw = self._storage.get(USER_KEY)
        if raw:
            try:
                user = User.model_validate_json(raw)
            except SchemaValidationError as exc:
                logger.error("Error parsing stored user data: %s", exc)
            else:
                self._user = user
                self._set_state(SessionState.AUTHENTICATED)
                # 로그인/회원가입 화면에 있는데 이미 로그인 상태라면 대시보드로
                if self._navigator.current_path in (LOGIN_PATH, SIGNUP_PATH):
                    self._navigator.push(dashboard_for(user.role))
        return self._user

    async def initialize(self) -> None:
        self.load_cached()
        if self._state is SessionState.ANONYMOUS:
            return
        # 캐시로 먼저 화면을 그리고, 서버에서 최신 정보로 갱신
        await self.refresh()
        if self._state is SessionState.LOADING:
            # 토큰은 있지만 신원 조회가 일시적으로 실패: 토큰을 신뢰하고 유지
            self._set_state(SessionState.AUTHENTICATED)

    async def refresh(self) -> None:
        if not self._storage.get(TOKEN_KEY):
            self._user = None
            self._set_state(SessionState.ANONYMOUS)
            return

        try:
            user = await self._auth_api.me()
        except SessionExpiredError:
            logger.warning("Session rejected by the server; logging out")
            await self.logout(remote=False)
            return
        except (ApiError, SchemaValidationError) as exc:
            logger.warning("Failed to refresh user, keeping cached session: %s", exc)
            return

        self._user = user
        self._storage.set(USER_KEY, user.model_dump_json(by_alias=True))
        self._set_state(SessionState.AUTHENTICATED)

    def login(self, token: str, user: User) -> None:
        self._storage.set(TOKEN_KEY, token)
        self._storage.set(USER_KEY, user.model_dump_json(by_alias=True))
        self._user = user
        self._set_state(SessionState.AUTHENTICATED)

    async def login_with_credentials(self, email: str, password: str) -> User:
        resp = await self._auth_api.login(email, password)
        self.login(resp.token, resp.user)
        # 401로 튕겨났던 경로가 있으면 그리로, 없으면 역할별 대시보드
        self._navigator.push(self._navigator.pop_redirect() or dashboard_for(resp.user.role))
        return resp.user

    async def admin_login(self, email: str, password: str) -> User:
        resp = await self._auth_api.admin_login(email, password)
        if resp.user.role is not Role.ADMIN:
            raise PermissionDeniedError(API_ERROR_MESSAGES["FORBIDDEN"], 403)
        self.login(resp.token, resp.user)
        self._storage.set(ADMIN_USER_KEY, resp.user.model_dump_json(by_alias=True))
        self._navigator.push(dashboard_for(Role.ADMIN))
        return resp.user

    async def logout(self, *, remote: bool = True) -> None:
        if remote and self._storage.get(TOKEN_KEY):
            try:
                await self._auth_api.logout()
            except ApiError as exc:
                logger.warning("Remote logout failed, clearing local session anyway: %s", exc)

        for key in SESSION_KEYS:
            self._storage.remove(key)
        self._user = None
        self._set_state(SessionState.ANONYMOUS)

        await self._run_logout_hooks()

        # 일부 컴포넌트에 이전 세션 상태가 남지 않도록 전체 새로고침
        self._navigator.reload()
        self._navigator.push(LOGIN_PATH)

    async def handle_storage_change(self, key: str, new_value: Optional[str]) -> None:
        """다른 프로세스(탭)에서 로그인/로그아웃한 경우."""
        if key not in (TOKEN_KEY, USER_KEY):
            return
        if new_value:
            await self.refresh()
        else:
            self._user = None
            self._set_state(SessionState.ANONYMOUS)

    async def _on_unauthorized(self) -> None:
        # 토큰은 요청 클라이언트가 이미 지웠음. 이전 사용자의 연결/구독도 로그아웃과 똑같이 정리
        self._user = None
        self._set_state(SessionState.ANONYMOUS)
        await self._run_logout_hooks()

    async def _run_logout_hooks(self) -> None:
        for hook in list(self._logout_hooks):
            result = hook()
            if inspect.isawaitable(result):
                await result

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state, self._user)
