"""Chat routes: conversations, messages and the WebSocket relay."""

from typing import Annotated, Any

from fastapi import (
    APIRouter,
    Depends,
    HTTPException,
    Request,
    WebSocket,
    WebSocketDisconnect,
    status,
)
from pydantic import BaseModel, Field

from ..auth import AuthContext, CurrentUser, context_from_token
from ..chat import manager
from ..config import Settings, get_settings
from ..database import CONVERSATIONS_TABLE, MESSAGES_TABLE, Database, new_id, utcnow
from ..logging_config import get_logger
from ..rate_limit import limiter

logger = get_logger("ajira.chat")
router = APIRouter(prefix="/api/chat", tags=["chat"])

WS_CLOSE_UNAUTHORIZED = 4401
MAX_MESSAGE_LENGTH = 5000


# =============================================================================
# Request/Response Models
# =============================================================================


class ConversationCreate(BaseModel):
    participant_ids: list[str] = Field(..., min_length=1)
    is_group: bool = False
    name: str | None = Field(None, max_length=100)


class MessageCreate(BaseModel):
    text: str = Field(..., min_length=1, max_length=MAX_MESSAGE_LENGTH)


# =============================================================================
# Database Operations
# =============================================================================


async def get_conversation(db, conversation_id: str) -> dict | None:
    result = db.table(CONVERSATIONS_TABLE).select("*").eq("id", conversation_id).execute()
    return result.data[0] if result.data else None


async def find_direct_conversation(db, participant_ids: list[str]) -> dict | None:
    result = (
        db.table(CONVERSATIONS_TABLE)
        .select("*")
        .eq("is_group", False)
        .eq("participant_ids", participant_ids)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


async def create_conversation(
    db, participant_ids: list[str], is_group: bool, name: str | None
) -> dict | None:
    now = utcnow().isoformat()
    data = {
        "id": new_id(),
        "participant_ids": participant_ids,
        "is_group": is_group,
        "name": name,
        "last_message": None,
        "created_at": now,
        "updated_at": now,
    }
    result = db.table(CONVERSATIONS_TABLE).insert(data).execute()
    return result.data[0] if result.data else None


async def list_conversations(db, user_id: str) -> list[dict]:
    result = (
        db.table(CONVERSATIONS_TABLE)
        .select("*")
        .contains("participant_ids", [user_id])
        .order("updated_at", desc=True)
        .execute()
    )
    return result.data or []


async def list_messages(db, conversation_id: str, limit: int = 100) -> list[dict]:
    result = (
        db.table(MESSAGES_TABLE)
        .select("*")
        .eq("conversation_id", conversation_id)
        .order("created_at")
        .limit(limit)
        .execute()
    )
    return result.data or []


async def save_message(db, conversation_id: str, sender_id: str, text: str) -> dict | None:
    """Store a message and make it the conversation's last message."""
    now = utcnow().isoformat()
    data = {
        "id": new_id(),
        "conversation_id": conversation_id,
        "sender_id": sender_id,
        "text": text,
        "created_at": now,
    }
    result = db.table(MESSAGES_TABLE).insert(data).execute()
    if not result.data:
        return None
    db.table(CONVERSATIONS_TABLE).update(
        {
            "last_message": {"text": text, "sender_id": sender_id, "sent_at": now},
            "updated_at": now,
        }
    ).eq("id", conversation_id).execute()
    return result.data[0]


def normalize_participants(participant_ids: list[str], caller_id: str) -> list[str]:
    """Deduplicated, sorted participant ids that always include the caller."""
    return sorted({*participant_ids, caller_id})


def is_participant(conversation: dict, user_id: str) -> bool:
    return user_id in (conversation.get("participant_ids") or [])


async def _get_joined_conversation(db, conversation_id: str, auth: AuthContext) -> dict:
    conversation = await get_conversation(db, conversation_id)
    if not conversation:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found"
        )
    if not is_participant(conversation, auth.user_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You are not a participant in this conversation",
        )
    return conversation


# =============================================================================
# HTTP Routes
# =============================================================================


@router.post("/conversations")
@limiter.limit("20/minute")
async def create_conversation_endpoint(
    request: Request, body: ConversationCreate, auth: CurrentUser, db: Database
):
    """Start a conversation. A direct conversation between two users is reused."""
    participants = normalize_participants(body.participant_ids, auth.user_id)
    logger.info(f"POST /chat/conversations | user={auth.user_id} | n={len(participants)}")
    if body.is_group and not (body.name and body.name.strip()):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Group conversations need a name",
        )
    if len(participants) < 2:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A conversation needs at least one other participant",
        )

    if not body.is_group:
        existing = await find_direct_conversation(db, participants)
        if existing:
            return existing

    created = await create_conversation(db, participants, body.is_group, body.name)
    if not created:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create conversation",
        )
    return created


@router.get("/conversations")
async def list_conversations_endpoint(auth: CurrentUser, db: Database):
    return await list_conversations(db, auth.user_id)


@router.get("/conversations/{conversation_id}/messages")
async def list_messages_endpoint(conversation_id: str, auth: CurrentUser, db: Database):
    await _get_joined_conversation(db, conversation_id, auth)
    return await list_messages(db, conversation_id)


@router.post("/conversations/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
@limiter.limit("60/minute")
async def send_message_endpoint(
    request: Request,
    conversation_id: str,
    body: MessageCreate,
    auth: CurrentUser,
    db: Database,
):
    await _get_joined_conversation(db, conversation_id, auth)
    message = await save_message(db, conversation_id, auth.user_id, body.text)
    if not message:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send message",
        )
    await manager.broadcast(conversation_id, {"event": "newMessage", "message": message})
    return message


# =============================================================================
# WebSocket Relay
# =============================================================================


def _authenticate_socket(websocket: WebSocket, settings: Settings) -> AuthContext | None:
    token = websocket.query_params.get("token") or websocket.cookies.get(
        settings.session_cookie_name
    )
    if not token:
        return None
    try:
        return context_from_token(token, settings)
    except HTTPException:
        return None


async def _send_error(websocket: WebSocket, message: str) -> None:
    await websocket.send_json({"event": "error", "message": message})


async def handle_event(
    websocket: WebSocket, auth: AuthContext, db, payload: dict[str, Any]
) -> None:
    """Apply one client event received on the socket."""
    event = payload.get("event")
    conversation_id = payload.get("conversation_id")
    if event not in ("joinConversation", "leaveConversation", "sendMessage"):
        await _send_error(websocket, f"Unknown event: {event}")
        return
    if not isinstance(conversation_id, str) or not conversation_id:
        await _send_error(websocket, "conversation_id is required")
        return

    if event == "leaveConversation":
        await manager.leave(conversation_id, websocket)
        return

    conversation = await get_conversation(db, conversation_id)
    if not conversation or not is_participant(conversation, auth.user_id):
        await _send_error(websocket, "Not a participant in this conversation")
        return

    if event == "joinConversation":
        await manager.join(conversation_id, websocket)
        return

    text = payload.get("text")
    if not isinstance(text, str) or not text.strip() or len(text) > MAX_MESSAGE_LENGTH:
        await _send_error(websocket, "Message text is required")
        return
    message = await save_message(db, conversation_id, auth.user_id, text)
    if not message:
        await _send_error(websocket, "Failed to send message")
        return
    await manager.broadcast(conversation_id, {"event": "newMessage", "message": message})


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    db: Database,
    settings: Annotated[Settings, Depends(get_settings)],
):
    auth = _authenticate_socket(websocket, settings)
    if auth is None:
        await websocket.close(code=WS_CLOSE_UNAUTHORIZED)
        return

    await websocket.accept()
    logger.info(f"WS /chat/ws connected | user={auth.user_id}")
    try:
        while True:
            try:
                payload = await websocket.receive_json()
            except ValueError:
                await _send_error(websocket, "Events must be valid JSON")
                continue
            if not isinstance(payload, dict):
                await _send_error(websocket, "Events must be JSON objects")
                continue
            await handle_event(websocket, auth, db, payload)
    except WebSocketDisconnect:
        logger.info(f"WS /chat/ws disconnected | user={auth.user_id}")
    finally:
        await manager.disconnect(websocket)
