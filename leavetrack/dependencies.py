"""Shared FastAPI dependencies."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.database import get_db
from leavetrack.policy.schemas import PolicySettings
from leavetrack.policy.service import PolicyService


async def get_policy(db: AsyncSession = Depends(get_db)) -> PolicySettings:
    """Fresh policy snapshot for the current request."""
    return await PolicyService.get_snapshot(db)
