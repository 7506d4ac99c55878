"""Database initialization utilities."""

import logging
from datetime import time

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from gobering.db.base import Base
from gobering.db.session import engine
from gobering.models.professional import Professional
from gobering.models.scheduling import BreakType, ScheduleBreak, WeeklySchedule

logger = logging.getLogger(__name__)

DEMO_PROFESSIONAL_EMAIL = "demo@gobering.local"


async def create_tables() -> None:
    """Create all database tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables created")


async def drop_tables() -> None:
    """Drop all database tables (use with caution)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    logger.info("Database tables dropped")


async def create_demo_professional(session: AsyncSession) -> Professional | None:
    """Create a demo professional open Monday to Friday, 9:00-17:00.

    Returns:
        Created professional or None if it already exists
    """
    result = await session.execute(
        select(Professional).where(Professional.email == DEMO_PROFESSIONAL_EMAIL)
    )
    if result.scalar_one_or_none():
        logger.info("Demo professional already exists, skipping creation")
        return None

    professional = Professional(
        first_name="Demo",
        last_name="Professional",
        email=DEMO_PROFESSIONAL_EMAIL,
        profession="Physiotherapist",
    )
    session.add(professional)
    await session.flush()

    for day_of_week in range(1, 6):
        session.add(
            WeeklySchedule(
                professional_id=professional.id,
                day_of_week=day_of_week,
                start_time=time(9, 0),
                end_time=time(17, 0),
            )
        )
        session.add(
            ScheduleBreak(
                professional_id=professional.id,
                day_of_week=day_of_week,
                start_time=time(12, 0),
                end_time=time(13, 0),
                type=BreakType.BREAK,
            )
        )

    await session.commit()
    await session.refresh(professional)

    logger.info(f"Created demo professional {professional.id}")
    return professional


async def init_db(session: AsyncSession) -> None:
    """Create tables and seed development data.

    Args:
        session: Database session
    """
    await create_tables()
    await create_demo_professional(session)
    logger.info("Database initialization complete")
