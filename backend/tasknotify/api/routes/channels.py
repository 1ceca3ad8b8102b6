"""Channels API - Project to chat channel bindings"""
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..deps import get_container, require_api_key_dep
from ...container import ServiceContainer
from ...domain.errors import ChannelNotFoundError
from ...domain.models import ProjectChannel
from ...utils.time import utc_now

router = APIRouter(dependencies=[Depends(require_api_key_dep)])


class BindChannelRequest(BaseModel):
    channel_name: str = Field(..., min_length=1, max_length=100)
    webhook_url: Optional[str] = Field(None, description="Overrides the channelsbyname URL")
    bound_by: Optional[str] = None


class UnbindResponse(BaseModel):
    project_id: str
    unbound: bool


@router.get("/{project_id}", response_model=ProjectChannel)
async def get_channel(project_id: str, container: ServiceContainer = Depends(get_container)):
    channel = container.channel_repo.get_channel(project_id)
    if channel is None:
        raise ChannelNotFoundError(f"No channel bound to project {project_id}", details={"project_id": project_id})
    return channel


@router.put("/{project_id}", response_model=ProjectChannel)
async def bind_channel(
    project_id: str,
    request: BindChannelRequest,
    container: ServiceContainer = Depends(get_container)
):
    channel = ProjectChannel(
        project_id=project_id,
        channel_name=request.channel_name,
        webhook_url=request.webhook_url,
        bound_by=request.bound_by,
        bound_at=utc_now()
    )
    return container.channel_repo.bind_channel(channel)


@router.delete("/{project_id}", response_model=UnbindResponse)
async def unbind_channel(project_id: str, container: ServiceContainer = Depends(get_container)):
    if not container.channel_repo.unbind_channel(project_id):
        raise ChannelNotFoundError(f"No channel bound to project {project_id}", details={"project_id": project_id})
    return UnbindResponse(project_id=project_id, unbound=True)
