from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from jose import JWTError

from gigsync.devserver.auth_service import (
    create_access_token, verify_password, get_current_user, get_store, oauth2_scheme, verify_access_token,
)
from gigsync.devserver.store import DevStore
from gigsync.schemas import LoginRequest, Role, User

router = APIRouter(prefix="/auth", tags=["auth"])


def _authenticate(store: DevStore, req: LoginRequest) -> User:
    user = store.find_by_email(req.email)
    if not user or not verify_password(req.password, store.password_hashes[user.id]):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


@router.post("/login")
async def login(req: LoginRequest, store: DevStore = Depends(get_store)):
    user = _authenticate(store, req)
    token = create_access_token(data={"sub": user.id, "role": user.role.value})
    return {"token": token, "user": user.to_wire()}


@router.post("/admin/login")
async def admin_login(req: LoginRequest, request: Request, store: DevStore = Depends(get_store)):
    # 💡 [핵심] 클라이언트(IP)당 15분에 5회까지만 시도 가능
    client_key = request.client.host if request.client else "unknown"
    retry_after = request.app.state.admin_login_limiter.hit(client_key)
    if retry_after is not None:
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={"success": False, "error": "Too many login attempts. Please try again later."},
            headers={"Retry-After": str(retry_after)},
        )

    user = _authenticate(store, req)
    if user.role is not Role.ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    token = create_access_token(data={"sub": user.id, "role": user.role.value})
    # 관리자 로그인 응답은 { success, data } 로 감싸서 반환
    return {"success": True, "data": {"token": token, "user": user.to_wire()}}


@router.post("/logout")
async def logout(token: str = Depends(oauth2_scheme), store: DevStore = Depends(get_store)):
    try:
        payload = verify_access_token(token, store)
    except JWTError:
        # 이미 만료/폐기된 토큰으로 로그아웃해도 결과는 같음
        return {"success": True}
    store.revoked_tokens.add(payload["jti"])
    return {"success": True}


@router.get("/me")
async def get_my_info(current_user: User = Depends(get_current_user)):
    """
    현재 인증된 사용자 정보 (JWT 토큰 기반)를 반환합니다.
    """
    return current_user.to_wire()
