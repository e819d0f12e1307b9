"""
Retention Worker — prune entry sheets older than the retention horizon.

Deletes whole aggregates (products, ingredients and attachments cascade)
and then reclaims their managed blobs. Reclaim runs only after the delete
has committed, so a crash mid-reclaim can leave orphaned blobs but never
a broken aggregate.
"""

from datetime import datetime

import structlog

from workers.celery_app import celery_app

logger = structlog.get_logger()


def retention_cutoff(now: datetime, retention_years: int) -> datetime:
    """Same calendar day `retention_years` earlier; Feb 29 falls back to Feb 28."""
    try:
        return now.replace(year=now.year - retention_years)
    except ValueError:
        return now.replace(year=now.year - retention_years, day=28)


async def run_retention_prune(db, reclaimer, *, retention_years: int, now: datetime | None = None) -> dict:
    """Delete sheets created before the cutoff; returns a summary."""
    from db.models import utcnow
    from sheets.repository import SheetRepository

    cutoff = retention_cutoff(now or utcnow(), retention_years)
    repository = SheetRepository(db)
    expired = await repository.find_created_before(cutoff)
    if not expired:
        return {"status": "success", "deleted": 0, "blobs_deleted": 0, "cutoff": cutoff.isoformat()}

    deleted = await repository.delete_by_ids([sheet.id for sheet in expired])
    blobs_deleted = await reclaimer.reclaim(expired, [])
    logger.info(
        "retention.prune.completed",
        cutoff=cutoff.isoformat(),
        deleted=deleted,
        blobs_deleted=len(blobs_deleted),
    )
    return {
        "status": "success",
        "deleted": deleted,
        "blobs_deleted": len(blobs_deleted),
        "cutoff": cutoff.isoformat(),
    }


@celery_app.task(
    name="workers.retention.prune_expired_sheets",
    bind=True,
    max_retries=3,
    default_retry_delay=300,
    acks_late=True,
)
def prune_expired_sheets(self):
    """
    Daily retention sweep.
    Scheduled via Celery Beat.
    """
    import asyncio

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    run_id = self.request.id or "manual"
    logger.info("retention.prune.started", run_id=run_id)

    async def _prune():
        from core.config import get_settings
        from db.session import build_engine
        from media.blob_store import get_blob_store
        from media.reclaimer import OrphanBlobReclaimer
        from media.sources import HostAllowlist

        settings = get_settings()
        engine = build_engine(settings.database_url)
        try:
            async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
            reclaimer = OrphanBlobReclaimer(get_blob_store(), HostAllowlist.from_settings(settings))
            async with async_session() as db:
                return await run_retention_prune(
                    db, reclaimer, retention_years=settings.sheet_retention_years
                )
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_prune())
    except Exception as exc:
        logger.error("retention.prune.failed", run_id=run_id, error=str(exc))
        raise self.retry(exc=exc)
