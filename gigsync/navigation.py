from __future__ import annotations
from typing import Callable, List, Optional

from gigsync.schemas import Role
from gigsync.storage import ClientStorage, MemoryStorage, REDIRECT_PATH_KEY

LOGIN_PATH = "/login"
SIGNUP_PATH = "/signup"
ADMIN_LOGIN_PATH = "/admin/login"

ROLE_DASHBOARDS = {
    Role.FREELANCER: "/freelancer/dashboard",
    Role.CLIENT: "/job-poster/dashboard",
    Role.ADMIN: "/admin/dashboard",
}

NavigationListener = Callable[[str, str], None]


def dashboard_for(role: Role) -> str:
    return ROLE_DASHBOARDS.get(role, "/")


class Navigator:
    """
    브라우저의 window.location / router 역할.
    화면을 그리는 호스트는 add_listener()로 이동/새로고침 이벤트를 받습니다.
    """

    def __init__(self, current_path: str = "/", session_storage: Optional[ClientStorage] = None) -> None:
        self.current_path = current_path
        self.history: List[str] = [current_path]
        self.reload_count = 0
        # sessionStorage 역할 (프로세스가 끝나면 사라지는 슬롯)
        self._session_storage = session_storage or MemoryStorage()
        self._listeners: List[NavigationListener] = []

    def add_listener(self, listener: NavigationListener) -> None:
        self._listeners.append(listener)

    def push(self, path: str) -> None:
        self.current_path = path
        self.history.append(path)
        self._notify("push", path)

    def reload(self) -> None:
        # 전체 새로고침: 호스트가 의존 컴포넌트 상태를 모두 버리는 신호
        self.reload_count += 1
        self._notify("reload", self.current_path)

    def remember_redirect(self, path: Optional[str] = None) -> None:
        target = path or self.current_path
        if target in (LOGIN_PATH, SIGNUP_PATH, ADMIN_LOGIN_PATH):
            return
        self._session_storage.set(REDIRECT_PATH_KEY, target)

    def pop_redirect(self) -> Optional[str]:
        path = self._session_storage.get(REDIRECT_PATH_KEY)
        if path is not None:
            self._session_storage.remove(REDIRECT_PATH_KEY)
        return path

    def _notify(self, action: str, path: str) -> None:
        for listener in list(self._listeners):
            listener(action, path)
