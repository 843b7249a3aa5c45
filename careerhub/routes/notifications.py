"""Notification inbox and notification preference routes"""

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession
from pydantic import BaseModel
from typing import Optional, List

from careerhub.database import get_db
from careerhub.middleware.auth import get_current_user, TokenUser
from careerhub.services.notification_service import NotificationService
from careerhub.services.notification_category_service import (
    NotificationCategoryService,
    UnknownCategoryError,
)
from careerhub.utils.logger import get_logger

router = APIRouter()
logger = get_logger("routes.notifications")

category_service = NotificationCategoryService()
notification_service = NotificationService(category_service)


class NotificationIds(BaseModel):
    notificationIDs: List[int] = []


class CategoryPreferenceUpdate(BaseModel):
    category: Optional[str] = None
    isEnabled: Optional[bool] = None
    emailEnabled: Optional[bool] = None
    pushEnabled: Optional[bool] = None


class PreferenceUpdate(BaseModel):
    notificationType: Optional[str] = None
    isEnabled: Optional[bool] = None
    emailEnabled: Optional[bool] = None
    pushEnabled: Optional[bool] = None


def _changes(body) -> dict:
    changes = {
        "is_enabled": body.isEnabled,
        "email_enabled": body.emailEnabled,
        "push_enabled": body.pushEnabled,
    }
    return {k: v for k, v in changes.items() if v is not None}


@router.get("/")
async def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    unreadOnly: bool = False,
    sortBy: str = "createdAt",
    sortOrder: str = "DESC",
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    notifications = await notification_service.get_user_notifications(
        db, current_user.id, limit=limit, offset=offset, unread_only=unreadOnly,
        sort_by=sortBy, sort_order=sortOrder,
    )
    unread = await notification_service.get_unread_count(db, current_user.id)
    return {
        "notifications": [n.to_dict() for n in notifications],
        "unreadCount": unread,
    }


@router.get("/unread-count")
async def unread_count(
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return {"count": await notification_service.get_unread_count(db, current_user.id)}


@router.patch("/read")
async def mark_read(
    body: NotificationIds,
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not body.notificationIDs:
        raise HTTPException(status_code=400, detail="notificationIDs is required")
    success = await notification_service.mark_as_read(db, current_user.id, body.notificationIDs)
    return {"success": success}


@router.patch("/read-all")
async def mark_all_read(
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await notification_service.mark_all_as_read(db, current_user.id)
    return {"success": True}


@router.delete("/")
async def delete_notifications(
    body: NotificationIds,
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not body.notificationIDs:
        raise HTTPException(status_code=400, detail="notificationIDs is required")
    success = await notification_service.delete_notifications(db, current_user.id, body.notificationIDs)
    if not success:
        raise HTTPException(status_code=404, detail="Notifications not found")
    return {"success": True}


@router.get("/category-preferences")
async def get_category_preferences(
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    prefs = await category_service.get_category_preferences(db, current_user.id)
    return [p.to_dict() for p in prefs]


@router.patch("/category-preferences")
async def update_category_preference(
    body: CategoryPreferenceUpdate,
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not body.category:
        raise HTTPException(status_code=400, detail="Category is required")

    changes = _changes(body)
    if not changes:
        raise HTTPException(status_code=400, detail="No preferences to update")

    try:
        pref = await category_service.update_category_preference(db, current_user.id, body.category, **changes)
    except UnknownCategoryError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {"message": "Notification preference updated successfully", "preference": pref.to_dict()}


@router.get("/preferences")
async def get_preferences(
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await category_service.get_user_preferences(db, current_user.id)


@router.patch("/preferences")
async def update_preference(
    body: PreferenceUpdate,
    current_user: TokenUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if not body.notificationType:
        raise HTTPException(status_code=400, detail="Notification type is required")

    changes = _changes(body)
    if not changes:
        raise HTTPException(status_code=400, detail="No preferences to update")

    pref = await category_service.update_preference(db, current_user.id, body.notificationType, **changes)
    return {"message": "Notification preference updated successfully", "preference": pref.to_dict()}
