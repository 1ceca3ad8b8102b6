"""API Dependencies - Common dependencies for routes"""
import hmac
from typing import Optional
from fastapi import Depends, Header, HTTPException, Request, status

from ..container import ServiceContainer
from ..domain.models import ActorContext
from ..domain.errors import AuthenticationError


def get_container(request: Request) -> ServiceContainer:
    """Service container built in the application lifespan"""
    return request.app.state.container


async def get_current_user_dep(
    authorization: Optional[str] = Header(None),
    container: ServiceContainer = Depends(get_container)
) -> ActorContext:
    """
    Dependency to get the application user from the Authorization header

    Raises:
        HTTPException: 401 if token is invalid or missing
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "AUTHENTICATION_ERROR", "message": "Authorization header is missing"}},
            headers={"WWW-Authenticate": "Bearer"}
        )

    try:
        return container.jwt_validator.get_actor_context(authorization)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=e.to_dict(),
            headers={"WWW-Authenticate": "Bearer"}
        )


async def require_api_key_dep(
    x_api_key: Optional[str] = Header(None, alias="X-API-Key"),
    container: ServiceContainer = Depends(get_container)
) -> None:
    """
    Dependency for calls from the chat platform and the CRUD layer

    Raises:
        HTTPException: 401 if the key is missing, wrong, or not configured
    """
    expected = container.settings.chat_api_key
    if not expected or not x_api_key or not hmac.compare_digest(x_api_key, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": {"code": "AUTHENTICATION_ERROR", "message": "Invalid or missing API key"}}
        )
