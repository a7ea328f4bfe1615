# gigsync/config.py
import os
from dotenv import load_dotenv

load_dotenv()

# --- REST / WebSocket 엔드포인트 ---
API_URL = os.getenv("GIGSYNC_API_URL", "http://localhost:5001/api")
WS_URL = os.getenv("GIGSYNC_WS_URL", "ws://localhost:5001")

# 토큰/유저 스냅샷이 저장되는 로컬 저장소 (localStorage 역할)
STORAGE_URL = os.getenv("GIGSYNC_STORAGE_URL", "sqlite:///gigsync_session.db")

# --- 요청 재시도 정책 ---
REQUEST_TIMEOUT_SEC = float(os.getenv("GIGSYNC_REQUEST_TIMEOUT", "30"))
NETWORK_RETRY_DELAY_SEC = float(os.getenv("GIGSYNC_NETWORK_RETRY_DELAY", "1.0"))
RATE_LIMIT_DEFAULT_DELAY_SEC = float(os.getenv("GIGSYNC_RATE_LIMIT_DEFAULT_DELAY", "5"))
RATE_LIMIT_MAX_RETRIES = int(os.getenv("GIGSYNC_RATE_LIMIT_MAX_RETRIES", "5"))

# --- 실시간 연결 ---
WS_CONNECT_TIMEOUT_SEC = float(os.getenv("GIGSYNC_WS_CONNECT_TIMEOUT", "10"))
WS_PING_INTERVAL_SEC = float(os.getenv("GIGSYNC_WS_PING_INTERVAL", "15"))
WS_PONG_TIMEOUT_SEC = float(os.getenv("GIGSYNC_WS_PONG_TIMEOUT", "45"))
WS_MAX_RECONNECT_ATTEMPTS = int(os.getenv("GIGSYNC_WS_MAX_RECONNECT_ATTEMPTS", "5"))
WS_RECONNECT_BASE_DELAY_SEC = 1.0
WS_RECONNECT_MAX_DELAY_SEC = 30.0

NOTIFICATION_POLL_INTERVAL_SEC = float(os.getenv("GIGSYNC_NOTIFICATION_POLL_INTERVAL", "30"))

LOG_LEVEL = os.getenv("GIGSYNC_LOG_LEVEL", "INFO")

# --- 개발용 스텁 서버 (gigsync.devserver) ---
SECRET_KEY = os.getenv("SECRET_KEY", "gigsync-dev-secret")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
ADMIN_LOGIN_MAX_ATTEMPTS = 5
ADMIN_LOGIN_WINDOW_SEC = 15 * 60
