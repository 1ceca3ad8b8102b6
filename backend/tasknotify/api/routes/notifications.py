"""Notifications API - Manual dispatch triggers and delivery history"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query

from ..deps import get_container, get_current_user_dep, require_api_key_dep
from ...container import ServiceContainer
from ...domain.models import (
    ActorContext, NotificationEvent, DispatchResult, DeliveryHistoryPage
)
from ...utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Triggers (called by the CRUD layer after a commit)
# =============================================================================

@router.post(
    "/users/{app_user_id}",
    response_model=DispatchResult,
    dependencies=[Depends(require_api_key_dep)]
)
async def notify_user(
    app_user_id: str,
    event: NotificationEvent,
    skip_if_delivered: bool = Query(False),
    container: ServiceContainer = Depends(get_container)
):
    """Send one event to one application user"""
    return await container.dispatcher.notify_user(app_user_id, event, skip_if_delivered=skip_if_delivered)


@router.post(
    "/projects/{project_id}",
    response_model=DispatchResult,
    dependencies=[Depends(require_api_key_dep)]
)
async def notify_project_channel(
    project_id: str,
    event: NotificationEvent,
    container: ServiceContainer = Depends(get_container)
):
    """Send one event to the project's bound channel"""
    return await container.dispatcher.notify_project_channel(project_id, event)


@router.post(
    "/events",
    response_model=List[DispatchResult],
    dependencies=[Depends(require_api_key_dep)]
)
async def route_event(event: NotificationEvent, container: ServiceContainer = Depends(get_container)):
    """Fan an event out to everyone the routing rules select"""
    return await container.router.route(event)


# =============================================================================
# History
# =============================================================================

@router.get("/history", response_model=DeliveryHistoryPage)
async def get_history(
    limit: int = Query(20, ge=1, le=100),
    after: Optional[str] = Query(
        None, description="log_id of the last item of the previous page; an unknown id is a 400"
    ),
    actor: ActorContext = Depends(get_current_user_dep),
    container: ServiceContainer = Depends(get_container)
):
    """Deliveries to the signed-in user, newest first"""
    return container.delivery_log_repo.get_history(actor.app_user_id, limit=limit, after=after)
