# threatguard/jobs/scheduled_tasks.py
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from threatguard.config.models import SchedulerConfig
from threatguard.services.alerts import AlertDispatcher
from threatguard.services.behavior_service import BehaviorAnalyzer
from threatguard.services.geo import GeoBlockingService
from threatguard.services.reputation_service import ReputationService


async def recompute_reputation_job(reputation: ReputationService) -> None:
    """Пересчитывает репутацию всех источников по сохраненной истории."""
    logger.info("⏰ Job: recomputing reputation scores")
    try:
        await reputation.recompute_all()
    except Exception:
        logger.exception("❌ Reputation recompute job failed")


async def sweep_caches_job(
    behavior: BehaviorAnalyzer,
    geo_blocking: GeoBlockingService,
    dispatcher: AlertDispatcher,
) -> None:
    """Вычищает протухшие записи из TTL-кэшей процесса."""
    behavior.expire()
    geo_blocking.expire()
    dispatcher.expire()
    logger.debug("🧹 Job: in-process caches swept")


def setup_scheduler(
    config: SchedulerConfig,
    reputation: ReputationService,
    behavior: BehaviorAnalyzer,
    geo_blocking: GeoBlockingService,
    dispatcher: AlertDispatcher,
) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        recompute_reputation_job,
        "interval",
        minutes=max(1, config.reputation_recompute_minutes),
        args=[reputation],
        id="reputation_recompute",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        sweep_caches_job,
        "interval",
        minutes=max(1, config.cache_sweep_minutes),
        args=[behavior, geo_blocking, dispatcher],
        id="cache_sweep",
        replace_existing=True,
        coalesce=True,
    )
    return scheduler
