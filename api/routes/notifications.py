"""
Notification inbox API routes
"""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_current_user, get_notification_service
from application.dtos.notifications import MarkReadRequest, NotificationList, NotificationView
from application.services.notification_service import NotificationService
from core.response import Response as ApiResponse, success_response
from domain.common.exceptions import NotificationNotFoundException
from domain.notification.entity import NotificationType
from domain.user.entity import User


router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", summary="List my notifications", response_model=ApiResponse[NotificationList])
async def list_notifications(
    unread_only: bool = Query(default=False),
    type: Optional[NotificationType] = Query(default=None),
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    items, unread = await service.list_notifications(
        current_user.id, unread_only=unread_only, type=type, skip=skip, limit=limit
    )
    return success_response(
        data=NotificationList(
            items=[NotificationView.model_validate(n) for n in items],
            unread_count=unread,
            skip=skip,
            limit=limit,
        )
    )


@router.patch("/read-all", summary="Mark all as read")
async def mark_all_read(
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    count = await service.mark_all_read(current_user.id)
    return success_response(data={"updated": count})


@router.patch("/read", summary="Mark several as read")
async def mark_many_read(
    payload: MarkReadRequest,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    count = await service.mark_many_read(current_user.id, payload.ids)
    return success_response(data={"updated": count})


@router.patch("/{notification_id}/read", summary="Mark one as read", response_model=ApiResponse[NotificationView])
async def mark_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    notification = await service.mark_read(current_user.id, notification_id)
    return success_response(data=NotificationView.model_validate(notification))


@router.delete("/clear-old", summary="Delete read notifications older than N days")
async def clear_old(
    days: int = Query(default=30, ge=1),
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    count = await service.clear_older_than(current_user.id, days)
    return success_response(data={"deleted": count})


@router.delete("/{notification_id}", summary="Delete a notification")
async def delete_notification(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service),
):
    if not await service.delete_notification(current_user.id, notification_id):
        raise NotificationNotFoundException(notification_id)
    return success_response(data={"deleted": 1})
