import uuid

from fastapi import APIRouter, Query

from trademart.api.deps import DB, Capabilities, CurrentSession
from trademart.schemas.notifications import NotificationOut
from trademart.services.notification_service import NotificationService
from trademart.utils.clock import as_utc
from trademart.utils.envelopes import api_page, api_success
from trademart.utils.exceptions import FeatureUnavailableException, NotFoundException

router = APIRouter(tags=["notifications"])


def _require_notifications(capabilities) -> None:
    if not capabilities.notifications:
        raise FeatureUnavailableException("notifications", "Notifications are not available yet")


@router.get("/notifications", response_model=dict)
async def list_notifications(
    session: CurrentSession,
    db: DB,
    capabilities: Capabilities,
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
):
    _require_notifications(capabilities)
    rows, total = await NotificationService.list_notifications(db, session.user.id, unread_only, limit, offset)
    items = [
        NotificationOut(
            id=str(n.id),
            type=n.type,
            title=n.title,
            message=n.message,
            link=n.link,
            reference_id=n.reference_id,
            is_read=n.is_read,
            created_at=as_utc(n.created_at),
        ).model_dump()
        for n in rows
    ]
    return api_page(items, total, limit, offset)


@router.post("/notifications/{notification_id}/read", response_model=dict)
async def mark_notification_read(notification_id: uuid.UUID, session: CurrentSession, db: DB, capabilities: Capabilities):
    _require_notifications(capabilities)
    if not await NotificationService.mark_read(db, session.user.id, notification_id):
        raise NotFoundException("Notification not found", code="NOTIFICATION_NOT_FOUND")
    return api_success({"id": str(notification_id), "is_read": True})


@router.post("/notifications/read-all", response_model=dict)
async def mark_all_notifications_read(session: CurrentSession, db: DB, capabilities: Capabilities):
    _require_notifications(capabilities)
    updated = await NotificationService.mark_all_read(db, session.user.id)
    return api_success({"updated": updated})
