"""
Chat API routes

REST surface for history and mutations; live delivery goes over ``/ws``.
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_chat_service, get_current_user
from application.dtos.chats import (
    ChatView,
    EditMessageRequest,
    MessageView,
    QuickReplyRequest,
    ReactionRequest,
    SendMessageRequest,
    StartChatRequest,
    UnreadCount,
)
from application.services.chat_service import ChatService
from core.response import Response as ApiResponse, success_response
from domain.chat.templates import QUICK_REPLIES
from domain.user.entity import User


router = APIRouter(prefix="/chats", tags=["Chats"])


@router.post("", summary="Start or reuse a chat", response_model=ApiResponse[ChatView])
async def start_chat(
    payload: StartChatRequest,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    chat = await service.start_chat(current_user.id, payload.artisan_id, payload.booking_id)
    return success_response(data=ChatView.model_validate(chat))


@router.get("", summary="List my chats", response_model=ApiResponse[list[ChatView]])
async def list_chats(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    chats = await service.list_chats(current_user.id, skip=skip, limit=limit)
    return success_response(data=[ChatView.model_validate(c) for c in chats])


@router.get("/quick-replies", summary="Canned replies for my role", response_model=ApiResponse[list[str]])
async def quick_replies(current_user: User = Depends(get_current_user)):
    role = "artisan" if current_user.is_artisan else "user"
    return success_response(data=QUICK_REPLIES[role])


@router.get("/{chat_id}/messages", summary="Message history, newest first", response_model=ApiResponse[list[MessageView]])
async def list_messages(
    chat_id: int,
    before_id: Optional[int] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    messages = await service.list_messages(chat_id, current_user.id, before_id=before_id, limit=limit)
    return success_response(data=[MessageView.model_validate(m) for m in messages])


@router.post("/{chat_id}/messages", summary="Send a message", response_model=ApiResponse[MessageView])
async def send_message(
    chat_id: int,
    payload: SendMessageRequest,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    message = await service.send_message(
        chat_id,
        current_user.id,
        payload.content,
        type=payload.type,
        attachments=payload.attachments,
        reply_to_id=payload.reply_to_id,
    )
    return success_response(data=MessageView.model_validate(message))


@router.post("/{chat_id}/quick-reply", summary="Send a quick reply", response_model=ApiResponse[MessageView])
async def send_quick_reply(
    chat_id: int,
    payload: QuickReplyRequest,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    message = await service.send_quick_reply(chat_id, current_user.id, payload.index)
    return success_response(data=MessageView.model_validate(message))


@router.post("/{chat_id}/read", summary="Mark every message as read")
async def mark_all_read(
    chat_id: int,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    count = await service.mark_all_read(chat_id, current_user.id)
    return success_response(data={"updated": count})


@router.get("/{chat_id}/unread", summary="Unread count", response_model=ApiResponse[UnreadCount])
async def unread_count(
    chat_id: int,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    unread = await service.unread_count(chat_id, current_user.id)
    return success_response(data=UnreadCount(chat_id=chat_id, unread=unread))


@router.patch("/{chat_id}/messages/{message_id}", summary="Edit a message", response_model=ApiResponse[MessageView])
async def edit_message(
    chat_id: int,
    message_id: int,
    payload: EditMessageRequest,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    message = await service.edit_message(chat_id, message_id, current_user.id, payload.content)
    return success_response(data=MessageView.model_validate(message))


@router.put("/{chat_id}/messages/{message_id}/reaction", summary="React to a message", response_model=ApiResponse[MessageView])
async def react(
    chat_id: int,
    message_id: int,
    payload: ReactionRequest,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    message = await service.react_to_message(chat_id, message_id, current_user.id, payload.emoji)
    return success_response(data=MessageView.model_validate(message))


@router.delete("/{chat_id}/messages/{message_id}/reaction", summary="Remove my reaction", response_model=ApiResponse[MessageView])
async def remove_reaction(
    chat_id: int,
    message_id: int,
    current_user: User = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    message = await service.remove_reaction(chat_id, message_id, current_user.id)
    return success_response(data=MessageView.model_validate(message))
