from fastapi import APIRouter
from sqlalchemy import text

from app.database import Base, async_session
from app.scheduler import get_scheduler_status

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "Marketplace Payments"}


@router.get("/health/db")
async def database_health():
    """Check connectivity and that every marketplace table exists"""
    expected = set(Base.metadata.tables)
    try:
        async with async_session() as session:
            result = await session.execute(
                text("SELECT table_name FROM information_schema.tables WHERE table_schema = 'public'")
            )
            present = {row[0] for row in result}
    except Exception as e:
        return {"status": "unhealthy", "database": "error", "error": str(e)}

    missing = sorted(expected - present)
    return {
        "status": "healthy" if not missing else "degraded",
        "database": "connected",
        "missing_tables": missing,
    }


@router.get("/health/scheduler")
async def scheduler_health():
    """Scheduled jobs and their next run times"""
    return await get_scheduler_status()
