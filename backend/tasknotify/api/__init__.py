"""API module - Routes and dependencies"""
from .deps import get_container, get_current_user_dep, require_api_key_dep

__all__ = ["get_container", "get_current_user_dep", "require_api_key_dep"]
