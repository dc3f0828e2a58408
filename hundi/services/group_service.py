"""
Group Service - roster partitions and the one-time default group bootstrap.
"""

import uuid
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hundi.config import settings
from hundi.models.group import Group

logger = logging.getLogger(__name__)


class GroupService:
    """Service for group lookups and setup."""
    
    def __init__(self, db: AsyncSession):
        self.db = db
    
    async def ensure_default_groups(
        self,
        actor_id: str,
        names: Optional[List[str]] = None,
    ) -> List[Group]:
        """
        Create the default groups that do not exist yet.

        Run once at system setup; safe to re-run. Returns the groups created.
        """
        created = []
        for name in names or settings.default_group_names:
            existing = await self.get_group_by_name(name)
            if existing:
                continue
            
            group = Group(
                name=name,
                area=name,
                description=f"Default {name}",
                created_by=actor_id,
            )
            self.db.add(group)
            created.append(group)
        
        await self.db.flush()
        
        if created:
            logger.info(f"Created default groups: {', '.join(g.name for g in created)}")
        return created
    
    async def get_group_by_name(self, name: str) -> Optional[Group]:
        """Get group by name."""
        result = await self.db.execute(
            select(Group).where(Group.name == name)
        )
        return result.scalar_one_or_none()
    
    async def get_group_by_id(self, group_id: uuid.UUID) -> Optional[Group]:
        """Get group by ID."""
        result = await self.db.execute(
            select(Group).where(Group.id == group_id)
        )
        return result.scalar_one_or_none()
    
    async def get_default_group(self) -> Optional[Group]:
        """The group donors join when none is given (first configured default)."""
        return await self.get_group_by_name(settings.default_group_names[0])
