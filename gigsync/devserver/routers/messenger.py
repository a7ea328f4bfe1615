import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, WebSocket, WebSocketDisconnect, status
from jose import JWTError

from gigsync.devserver.auth_service import get_current_user, get_store, verify_access_token
from gigsync.devserver.store import DevStore
from gigsync.schemas import ChatMessage, EventType, MessageCreate, NotificationType, User

logger = logging.getLogger(__name__)

router = APIRouter(tags=["messenger"])
# WebSocket은 REST 접두사(/api)와 무관하게 항상 /ws
ws_router = APIRouter(tags=["messenger"])


async def _deliver(connection, message: ChatMessage, store: DevStore) -> None:
    """새 메시지를 상대방(CHAT_MESSAGE + NOTIFICATION)과 보낸 사람(MESSAGE_SENT)에게 푸시."""
    manager = connection.app.state.manager
    wire = message.to_wire()
    await manager.send_personal_message({"type": EventType.CHAT_MESSAGE, "message": wire}, message.recipient_id)
    await manager.send_personal_message(
        {"type": EventType.MESSAGE_SENT, "message": wire, "recipientOnline": manager.is_online(message.recipient_id)},
        message.sender_id,
    )
    sender = store.get_user(message.sender_id)
    notification = store.add_notification(
        message.recipient_id,
        NotificationType.CHAT,
        sender_id=message.sender_id,
        title="New message",
        message=f"{sender.name if sender else 'Someone'}: {message.content[:80]}",
    )
    await manager.send_personal_message(
        {"type": EventType.NOTIFICATION, "notification": notification.to_wire()}, message.recipient_id
    )


# 1. 대화 상대 목록 (REST - 초기 로딩용)
@router.get("/messages/conversations")
async def get_conversations(
    current_user: User = Depends(get_current_user),
    store: DevStore = Depends(get_store),
):
    return [c.to_wire() for c in store.conversations_for(current_user.id)]


# 2. 특정 상대와의 대화 기록
@router.get("/messages/{conversation_id}")
async def get_messages(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    store: DevStore = Depends(get_store),
):
    return [m.to_wire() for m in store.conversation(current_user.id, conversation_id)]


@router.post("/messages/{conversation_id}", status_code=status.HTTP_201_CREATED)
async def send_message(
    conversation_id: str,
    req: MessageCreate,
    request: Request,
    current_user: User = Depends(get_current_user),
    store: DevStore = Depends(get_store),
):
    if store.get_user(conversation_id) is None:
        raise HTTPException(status_code=404, detail="Recipient not found")
    message = store.add_message(current_user.id, conversation_id, req.content)
    await _deliver(request, message, store)
    return message.to_wire()


@router.put("/messages/read/{conversation_id}")
async def mark_as_read(
    conversation_id: str,
    current_user: User = Depends(get_current_user),
    store: DevStore = Depends(get_store),
):
    updated = store.mark_conversation_read(current_user.id, conversation_id)
    return {"success": True, "updated": updated}


@router.delete("/messages/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(
    message_id: str,
    current_user: User = Depends(get_current_user),
    store: DevStore = Depends(get_store),
):
    message = store.get_message(message_id)
    if message is None:
        raise HTTPException(status_code=404, detail="Message not found")
    if message.sender_id != current_user.id:
        raise HTTPException(status_code=403, detail="Only the sender can delete a message")
    store.delete_message(message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# 💡 3. [핵심] WebSocket 연결 및 이벤트 처리
@ws_router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: str = Query(...)):
    store: DevStore = websocket.app.state.store
    manager = websocket.app.state.manager

    # 1. 토큰 검증 (웹소켓은 헤더 대신 쿼리로 토큰을 받음)
    try:
        payload = verify_access_token(token, store)
    except JWTError:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return
    user_id = str(payload["sub"])
    if store.get_user(user_id) is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Invalid token")
        return

    # 2. 연결 수락
    await manager.connect(websocket, user_id)

    try:
        while True:
            # 3. 클라이언트로부터 이벤트 수신
            raw = await websocket.receive_text()
            try:
                data = json.loads(raw)
            except ValueError:
                await websocket.send_json({"type": EventType.ERROR, "message": "Invalid message format"})
                continue
            if not isinstance(data, dict):
                await websocket.send_json({"type": EventType.ERROR, "message": "Invalid message format"})
                continue
            await _handle_event(websocket, user_id, data, store)

    except WebSocketDisconnect:
        manager.disconnect(websocket, user_id)


async def _handle_event(websocket: WebSocket, user_id: str, data: dict, store: DevStore) -> None:
    manager = websocket.app.state.manager
    event_type = data.get("type")

    if event_type == EventType.PING:
        await websocket.send_json({"type": EventType.PONG})

    elif event_type == EventType.CHAT_MESSAGE:
        recipient_id = str(data.get("recipientId") or "")
        content = data.get("content")
        if not recipient_id or not content or store.get_user(recipient_id) is None:
            await websocket.send_json({"type": EventType.ERROR, "message": "Invalid chat message"})
            return
        message = store.add_message(user_id, recipient_id, content)
        await _deliver(websocket, message, store)

    elif event_type == EventType.TYPING_STATUS:
        await manager.send_personal_message(
            {"type": EventType.TYPING_STATUS, "senderId": user_id, "isTyping": bool(data.get("isTyping"))},
            str(data.get("conversationId")),
        )

    elif event_type == EventType.MESSAGE_READ:
        message = store.get_message(str(data.get("messageId")))
        # 받은 사람만 읽음 처리 가능
        if message is not None and message.recipient_id == user_id:
            store.mark_message_read(message.id)
            await manager.send_personal_message(
                {"type": EventType.MESSAGE_READ, "messageId": message.id}, message.sender_id
            )

    elif event_type == EventType.UNREAD_COUNT:
        await websocket.send_json({"type": EventType.UNREAD_COUNT, "count": store.unread_message_count(user_id)})

    else:
        logger.warning("Unsupported event type from user %s: %s", user_id, event_type)
        await websocket.send_json({"type": EventType.ERROR, "message": f"Unsupported event type: {event_type}"})
