"""Preferences API - Notification settings of the signed-in user"""
from typing import Optional
from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..deps import get_container, get_current_user_dep
from ...container import ServiceContainer
from ...domain.enums import NotificationEventType
from ...domain.models import ActorContext, NotificationPreferences, PreferencesUpdate

router = APIRouter()


class MuteProjectRequest(BaseModel):
    project_id: str = Field(..., min_length=1)
    muted: bool = True


class DoNotDisturbRequest(BaseModel):
    enabled: bool
    duration_hours: Optional[float] = Field(None, gt=0, le=24 * 30)


class ResolveResponse(BaseModel):
    event_type: NotificationEventType
    project_id: Optional[str] = None
    allowed: bool


@router.get("", response_model=NotificationPreferences)
async def get_preferences(
    actor: ActorContext = Depends(get_current_user_dep),
    container: ServiceContainer = Depends(get_container)
):
    return container.preference_service.get_preferences(actor.app_user_id)


@router.put("", response_model=NotificationPreferences)
async def update_preferences(
    update: PreferencesUpdate,
    actor: ActorContext = Depends(get_current_user_dep),
    container: ServiceContainer = Depends(get_container)
):
    """Partial update; unknown keys are rejected"""
    return container.preference_service.update_preferences(actor.app_user_id, update)


@router.post("/mute-project", response_model=NotificationPreferences)
async def mute_project(
    request: MuteProjectRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    container: ServiceContainer = Depends(get_container)
):
    return container.preference_service.set_project_muted(
        actor.app_user_id, request.project_id, request.muted
    )


@router.post("/dnd", response_model=NotificationPreferences)
async def set_do_not_disturb(
    request: DoNotDisturbRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    container: ServiceContainer = Depends(get_container)
):
    """Enable do-not-disturb (optionally for a number of hours) or turn it off"""
    return container.preference_service.set_do_not_disturb(
        actor.app_user_id, request.enabled, request.duration_hours
    )


@router.get("/resolve", response_model=ResolveResponse)
async def resolve(
    event_type: NotificationEventType = Query(...),
    project_id: Optional[str] = Query(None),
    actor: ActorContext = Depends(get_current_user_dep),
    container: ServiceContainer = Depends(get_container)
):
    """Would a notification of this type reach me right now?"""
    allowed = container.preference_service.resolve(actor.app_user_id, event_type, project_id)
    return ResolveResponse(event_type=event_type, project_id=project_id, allowed=allowed)
