"""Linking API - Two-factor chat account linking endpoints"""
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from ..deps import get_container, get_current_user_dep, require_api_key_dep
from ...container import ServiceContainer
from ...domain.models import ActorContext, GeneratedCode, LinkResult, UnlinkResult, CodeStatus
from ...utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter()


# =============================================================================
# Request / Response Models
# =============================================================================

class VerifyChallengeRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=16)
    challenge_number: int


class VerifyChallengeResponse(BaseModel):
    verified: bool


class LinkRequest(BaseModel):
    """Sent by the chat platform once the user typed the code in chat"""
    code: str = Field(..., min_length=1, max_length=16)
    chat_user_id: str = Field(..., min_length=1)
    chat_user_name: str = ""
    chat_email: Optional[str] = None


class IdentityStatusResponse(BaseModel):
    linked: bool
    chat_user_id: str
    app_user_id: Optional[str] = None
    app_email: Optional[str] = None
    linked_at: Optional[datetime] = None


# =============================================================================
# Application side (JWT)
# =============================================================================

@router.post("/codes", response_model=GeneratedCode, status_code=201)
async def generate_code(
    actor: ActorContext = Depends(get_current_user_dep),
    container: ServiceContainer = Depends(get_container)
):
    """Issue a linking code and challenge number for the signed-in user"""
    return container.linking_service.generate_code(actor.app_user_id, actor.email)


@router.post("/verify-challenge", response_model=VerifyChallengeResponse)
async def verify_challenge(
    request: VerifyChallengeRequest,
    actor: ActorContext = Depends(get_current_user_dep),
    container: ServiceContainer = Depends(get_container)
):
    """Confirm the challenge number shown in the chat"""
    verified = container.linking_service.verify_challenge(
        request.code, request.challenge_number, actor.app_user_id
    )
    return VerifyChallengeResponse(verified=verified)


@router.post("/unlink", response_model=UnlinkResult)
async def unlink(
    actor: ActorContext = Depends(get_current_user_dep),
    container: ServiceContainer = Depends(get_container)
):
    return container.linking_service.unlink(actor.app_user_id)


# =============================================================================
# Chat side (API key)
# =============================================================================

@router.get(
    "/codes/{code}/status",
    response_model=CodeStatus,
    dependencies=[Depends(require_api_key_dep)]
)
async def get_code_status(code: str, container: ServiceContainer = Depends(get_container)):
    return container.linking_service.get_code_status(code)


@router.post("/link", response_model=LinkResult, dependencies=[Depends(require_api_key_dep)])
async def link_with_code(request: LinkRequest, container: ServiceContainer = Depends(get_container)):
    """Consume a verified code and bind the chat account"""
    return container.linking_service.link_with_code(
        request.code,
        request.chat_user_id,
        request.chat_user_name,
        request.chat_email
    )


@router.get(
    "/identities/{chat_user_id}",
    response_model=IdentityStatusResponse,
    dependencies=[Depends(require_api_key_dep)]
)
async def get_identity(chat_user_id: str, container: ServiceContainer = Depends(get_container)):
    link = container.linking_service.get_link_for_chat_user(chat_user_id)
    if link is None:
        return IdentityStatusResponse(linked=False, chat_user_id=chat_user_id)
    return IdentityStatusResponse(
        linked=True,
        chat_user_id=chat_user_id,
        app_user_id=link.app_user_id,
        app_email=link.app_email,
        linked_at=link.linked_at
    )
