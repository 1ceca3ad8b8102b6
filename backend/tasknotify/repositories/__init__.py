"""Repository modules - Data access layer"""
from .mongo_client import create_client, get_database, create_indexes, run_in_transaction
from .identity_repo import IdentityRepository
from .linking_code_repo import LinkingCodeRepository
from .preference_repo import PreferenceRepository
from .delivery_log_repo import DeliveryLogRepository
from .channel_repo import ChannelRepository
from .task_repo import TaskRepository, UserDirectoryRepository

__all__ = [
    "create_client",
    "get_database",
    "create_indexes",
    "run_in_transaction",
    "IdentityRepository",
    "LinkingCodeRepository",
    "PreferenceRepository",
    "DeliveryLogRepository",
    "ChannelRepository",
    "TaskRepository",
    "UserDirectoryRepository",
]
