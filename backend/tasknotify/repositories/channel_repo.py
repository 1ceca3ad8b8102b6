"""Channel Repository - Project to chat channel bindings"""
from typing import Optional
from pymongo.collection import Collection
from pymongo.database import Database

from .mongo_client import PROJECT_CHANNELS
from ..domain.models import ProjectChannel
from ..utils.logger import get_logger

logger = get_logger(__name__)


class ChannelRepository:
    """Repository for project channel bindings (keyed by project id)"""

    def __init__(self, db: Database):
        self._channels: Collection = db[PROJECT_CHANNELS]

    def get_channel(self, project_id: str) -> Optional[ProjectChannel]:
        doc = self._channels.find_one({"_id": project_id})
        if doc:
            doc.pop("_id", None)
            return ProjectChannel.model_validate(doc)
        return None

    def bind_channel(self, channel: ProjectChannel) -> ProjectChannel:
        doc = channel.model_dump()
        doc["_id"] = channel.project_id
        self._channels.replace_one({"_id": channel.project_id}, doc, upsert=True)
        logger.info(
            f"Bound project channel {channel.channel_name}",
            extra={"project_id": channel.project_id}
        )
        return channel

    def unbind_channel(self, project_id: str) -> bool:
        result = self._channels.delete_one({"_id": project_id})
        return result.deleted_count > 0
