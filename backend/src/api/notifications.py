# pyright: reportMissingTypeStubs=false
"""
In-app notification endpoints for the signed-in doctor.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from auth.dependencies import UserContext, get_current_user
from core.config import get_scheduling_config
from core.constants import RECIPIENT_DOCTOR
from core.database import get_db
from services.notification_service import NotificationDispatcher
from api.responses import NotificationListResponse, NotificationResponse

logger = logging.getLogger(__name__)

router = APIRouter()


def get_notification_dispatcher(db: Session = Depends(get_db)) -> NotificationDispatcher:
    return NotificationDispatcher(db, get_scheduling_config())


@router.get("", summary="List notifications for the current doctor")
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    current_user: UserContext = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
) -> NotificationListResponse:
    notifications = dispatcher.list_for_recipient(
        RECIPIENT_DOCTOR, current_user.user_id, unread_only=unread_only, limit=limit
    )
    return NotificationListResponse(
        notifications=[NotificationResponse.from_notification(n) for n in notifications],
        unread_count=dispatcher.unread_count(RECIPIENT_DOCTOR, current_user.user_id),
    )


@router.post("/read-all", summary="Mark every notification as read")
async def mark_all_read(
    current_user: UserContext = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
) -> Dict[str, Any]:
    updated = dispatcher.mark_all_as_read(RECIPIENT_DOCTOR, current_user.user_id)
    return {"success": True, "updated": updated}


@router.post("/{notification_id}/read", summary="Mark a notification as read")
async def mark_read(
    notification_id: int,
    current_user: UserContext = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_notification_dispatcher)
) -> Dict[str, Any]:
    notification = dispatcher.mark_as_read(notification_id, RECIPIENT_DOCTOR, current_user.user_id)
    return {"success": True, "notification": NotificationResponse.from_notification(notification).model_dump()}
