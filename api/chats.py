# api/chats.py
import json
from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy import inspect as sa_inspect

from api.sse import SSEResponse
from core.errors import RequestValidationFailed
from core.orchestrator import ChatOrchestrator
from db.models import Chat, Message, Role
from db.store import ChatStore


def get_store(request: Request) -> ChatStore:
    return request.app.state.store


def get_orchestrator(request: Request) -> ChatOrchestrator:
    return request.app.state.orchestrator


# --- Schemas
class MessageResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    role: Role
    content: str
    truncated: bool = False
    create_time: datetime = Field(alias="createTime")


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    messages: Optional[List[MessageResponse]] = None   # omitted when not loaded
    create_time: datetime = Field(alias="createTime")


class CompletionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_message: str = Field(alias="userMessage")


# --- Projections
def message_response(message: Message) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        role=Role(message.role),
        content=message.content,
        truncated=bool(message.truncated),
        create_time=message.created_at,
    )


def chat_response(chat: Chat) -> ChatResponse:
    messages = None
    if "messages" not in sa_inspect(chat).unloaded:
        messages = [message_response(m) for m in chat.messages]
    return ChatResponse(id=chat.id, messages=messages, create_time=chat.created_at)


def parse_completion_request(body: Any) -> CompletionRequest:
    try:
        return CompletionRequest.model_validate(body)
    except ValidationError as e:
        raise RequestValidationFailed(
            "Invalid completion request", errors=json.loads(e.json(include_url=False))
        ) from e


# --- Handlers
def list_chats(store: ChatStore = Depends(get_store)):
    return [chat_response(c) for c in store.list_chats()]


def get_chat(chat_id: str, store: ChatStore = Depends(get_store)):
    return chat_response(store.get_chat(chat_id, with_messages=True))


def create_chat(store: ChatStore = Depends(get_store)):
    return chat_response(store.create_chat())


async def create_completion(
    chat_id: str,
    request: Request,
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
):
    try:
        body = await request.json()
    except ValueError as e:
        raise RequestValidationFailed("Request body must be JSON") from e
    payload = parse_completion_request(body)

    turn = await orchestrator.begin_turn(chat_id, payload.user_message)
    sse = SSEResponse()
    return sse.stream(orchestrator.relay(turn, sse))


# --- Route table
router = APIRouter(tags=["chats"])
router.add_api_route(
    "/v1/chats", list_chats, methods=["GET"],
    response_model=List[ChatResponse], response_model_exclude_none=True,
)
router.add_api_route(
    "/v1/chats/{chat_id}", get_chat, methods=["GET"],
    response_model=ChatResponse, response_model_exclude_none=True,
)
router.add_api_route(
    "/v1/chats", create_chat, methods=["POST"],
    response_model=ChatResponse, response_model_exclude_none=True, status_code=201,
)
router.add_api_route(
    "/v1/chats/{chat_id}/completion", create_completion, methods=["POST"], status_code=200,
)
