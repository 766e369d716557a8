"""Conversation, message and resource endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Response

from clark.api.dependencies import get_services
from clark.models.conversation import (
    Conversation,
    CreateConversationRequest,
    CreateMessageRequest,
    Message,
    Resource,
    UpdateConversationRequest,
)
from clark.models.messages import UIMessage
from clark.services.container import ServiceContainer
from clark.services.repositories import RepositoryConflictError
from clark.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/chats", tags=["Chats"])


async def _get_conversation(chat_id: str, services: ServiceContainer) -> Conversation:
    conversation = await services.conversations.get_by_id(chat_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Chat not found: {chat_id}")
    return conversation


@router.get("", response_model=list[Conversation])
async def list_chats(limit: int = 50, services: ServiceContainer = Depends(get_services)) -> list[Conversation]:
    return await services.conversations.list_recent(limit=limit)


@router.post("", response_model=Conversation, status_code=201)
async def create_chat(
    request: CreateConversationRequest, services: ServiceContainer = Depends(get_services)
) -> Conversation:
    return await services.conversations.create(title=request.title)


@router.get("/{chat_id}", response_model=Conversation)
async def get_chat(chat_id: str, services: ServiceContainer = Depends(get_services)) -> Conversation:
    return await _get_conversation(chat_id, services)


@router.patch("/{chat_id}", response_model=Conversation)
async def update_chat(
    chat_id: str, request: UpdateConversationRequest, services: ServiceContainer = Depends(get_services)
) -> Conversation:
    conversation = await services.conversations.update(chat_id, title=request.title)
    if conversation is None:
        raise HTTPException(status_code=404, detail=f"Chat not found: {chat_id}")
    return conversation


@router.delete("/{chat_id}", status_code=204)
async def delete_chat(chat_id: str, services: ServiceContainer = Depends(get_services)) -> Response:
    if not await services.conversations.delete(chat_id):
        raise HTTPException(status_code=404, detail=f"Chat not found: {chat_id}")
    return Response(status_code=204)


@router.get("/{chat_id}/messages", response_model=list[UIMessage])
async def list_messages(chat_id: str, services: ServiceContainer = Depends(get_services)) -> list[UIMessage]:
    await _get_conversation(chat_id, services)
    messages = await services.messages.list_by_conversation_id(chat_id)
    return [message.to_ui_message() for message in messages]


@router.post("/{chat_id}/messages", response_model=Message, status_code=201)
async def create_message(
    chat_id: str, request: CreateMessageRequest, services: ServiceContainer = Depends(get_services)
) -> Message:
    """Store a message, keyed by its client id so retries do not duplicate it."""
    await _get_conversation(chat_id, services)
    try:
        return await services.messages.upsert_by_external_id(
            external_id=request.message.id,
            conversation_id=chat_id,
            role=request.message.role,
            parts=request.message.parts,
            metadata=request.message.metadata,
        )
    except RepositoryConflictError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e


@router.get("/{chat_id}/resources", response_model=list[Resource])
async def list_resources(chat_id: str, services: ServiceContainer = Depends(get_services)) -> list[Resource]:
    await _get_conversation(chat_id, services)
    return await services.resources.list_by_conversation_id(chat_id)
