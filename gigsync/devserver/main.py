# /gigsync/devserver/main.py
# 클라이언트를 끝까지 돌려보기 위한 메모리 기반 개발 서버 (DB 없음)
#   uvicorn gigsync.devserver.main:app --port 5001

from typing import Optional

from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware

from gigsync.config import ADMIN_LOGIN_MAX_ATTEMPTS, ADMIN_LOGIN_WINDOW_SEC
from gigsync.devserver.auth_service import AttemptLimiter, hash_password
from gigsync.devserver.connection_manager import ConnectionManager
from gigsync.devserver.routers import auth, messenger, notifications
from gigsync.devserver.store import DEMO_PASSWORD, DEMO_USERS, DevStore


def create_store(seed: bool = True) -> DevStore:
    store = DevStore()
    if seed:
        password_hash = hash_password(DEMO_PASSWORD)
        for user in DEMO_USERS:
            store.add_user(user, password_hash)
    return store


def create_app(api_prefix: str = "", store: Optional[DevStore] = None) -> FastAPI:
    app = FastAPI(title="GigSync Dev API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://127.0.0.1:3000"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 앱마다 독립된 상태 (테스트끼리 섞이지 않도록)
    app.state.store = store if store is not None else create_store()
    app.state.manager = ConnectionManager()
    app.state.admin_login_limiter = AttemptLimiter(ADMIN_LOGIN_MAX_ATTEMPTS, ADMIN_LOGIN_WINDOW_SEC)

    api = APIRouter(prefix=api_prefix)
    api.include_router(auth.router)
    api.include_router(messenger.router)
    api.include_router(notifications.router)
    app.include_router(api)
    app.include_router(messenger.ws_router)

    @app.get("/health")
    async def health():
        return {"ok": True}

    return app


app = create_app(api_prefix="/api")
