import pytest

from threatguard.config.models import (
    AlertingConfig,
    BehaviorConfig,
    GeoBlockingConfig,
    ReputationConfig,
    SchedulerConfig,
)
from threatguard.jobs.scheduled_tasks import recompute_reputation_job, setup_scheduler, sweep_caches_job
from threatguard.services.alerts import AlertDispatcher
from threatguard.services.behavior_service import BehaviorAnalyzer
from threatguard.services.geo import ChainedGeoResolver, GeoBlockingService
from threatguard.services.reputation_service import ReputationService
from threatguard.utils.models import SecurityEvent, Severity


@pytest.fixture
def services(redis, clock):
    return {
        "reputation": ReputationService(redis=redis, config=ReputationConfig(decay_rate=0.0, max_events=1), clock=clock),
        "behavior": BehaviorAnalyzer(config=BehaviorConfig()),
        "geo_blocking": GeoBlockingService(config=GeoBlockingConfig(), resolver=ChainedGeoResolver([])),
        "dispatcher": AlertDispatcher(config=AlertingConfig(), channels={}),
    }


@pytest.mark.asyncio
async def test_scheduler_registers_jobs(services):
    scheduler = setup_scheduler(SchedulerConfig(reputation_recompute_minutes=10), **services)
    assert {job.id for job in scheduler.get_jobs()} == {"reputation_recompute", "cache_sweep"}


@pytest.mark.asyncio
async def test_recompute_job_uses_retained_history(services):
    reputation = services["reputation"]
    for _ in range(2):
        await reputation.update_reputation("1.1.1.1", SecurityEvent(type="xss", severity=Severity.HIGH))
    assert (await reputation.get_reputation("1.1.1.1")).score == pytest.approx(60)

    await recompute_reputation_job(reputation)
    assert (await reputation.get_reputation("1.1.1.1")).score == pytest.approx(80)


@pytest.mark.asyncio
async def test_sweep_job_runs(services):
    await sweep_caches_job(services["behavior"], services["geo_blocking"], services["dispatcher"])
