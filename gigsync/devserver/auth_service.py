import time
import uuid
from collections import deque
from datetime import datetime, timedelta, timezone
from typing import Deque, Dict, Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from passlib.context import CryptContext

from gigsync.config import SECRET_KEY, ALGORITHM, ACCESS_TOKEN_EXPIRE_MINUTES
from gigsync.devserver.store import DevStore
from gigsync.schemas import User

pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

def verify_password(plain_password, password_hash):
    return pwd_context.verify(plain_password, password_hash)

def hash_password(password):
    if not isinstance(password, (str, bytes)):
        raise TypeError("Password must be a string or bytes.")
    return pwd_context.hash(password)

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None):
    to_encode = data.copy()
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    # jti: 같은 초에 다시 로그인해도 로그아웃으로 폐기된 토큰과 겹치지 않도록
    to_encode.update({"exp": expire, "jti": uuid.uuid4().hex})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)

def verify_access_token(token: str, store: DevStore) -> dict:
    """토큰을 검증하고 payload 반환. 잘못됐거나 폐기된 토큰이면 JWTError."""
    payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
    if payload.get("jti") in store.revoked_tokens:
        raise JWTError("Token has been revoked")
    if payload.get("sub") is None:
        raise JWTError("Token has no subject")
    return payload


def get_store(request: Request) -> DevStore:
    return request.app.state.store

async def get_current_user(token: str = Depends(oauth2_scheme), store: DevStore = Depends(get_store)) -> User:
    """
    요청 헤더의 Bearer 토큰을 검증하고 현재 사용자를 반환하는 의존성.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = verify_access_token(token, store)
    except JWTError:
        raise credentials_exception

    user = store.get_user(str(payload["sub"]))
    if user is None:
        raise credentials_exception
    return user


class AttemptLimiter:
    """
    고정 창(window) 안의 시도 횟수 제한. 관리자 로그인에 사용 (15분에 5회).
    """

    def __init__(self, max_attempts: int, window_sec: float, clock=time.monotonic):
        self.max_attempts = max_attempts
        self.window_sec = window_sec
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}

    def hit(self, key: str) -> Optional[int]:
        """시도를 기록. 허용되면 None, 막히면 Retry-After 초."""
        now = self._clock()
        hits = self._hits.setdefault(key, deque())
        while hits and now - hits[0] >= self.window_sec:
            hits.popleft()
        if len(hits) >= self.max_attempts:
            return max(int(self.window_sec - (now - hits[0])) + 1, 1)
        hits.append(now)
        return None
