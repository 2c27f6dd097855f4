import pytest
from dependency_injector import providers

from threatguard.containers import Container
from threatguard.services.threat_orchestrator import ThreatOrchestrator
from threatguard.utils.models import RequestDescriptor


@pytest.mark.asyncio
async def test_container_assembles_pipeline(redis):
    container = Container()
    with Container.redis_client.override(providers.Object(redis)):
        try:
            orchestrator = container.threat_orchestrator()
            assert isinstance(orchestrator, ThreatOrchestrator)
            assert orchestrator.rate_tracker.redis is redis
            assert orchestrator.event_log is container.event_log()

            request = RequestDescriptor(method="GET", path="/../../etc/passwd", source_ip="10.1.1.1", request_id="r1")
            orchestrator.geo_blocking = None
            threats = await orchestrator.analyze_request("10.1.1.1", "r1", request)
            assert "path_traversal" in {t.type for t in threats}

            limiter = container.rate_limiter()
            assert limiter.redis is redis
            assert limiter.event_log is container.event_log()
            assert (await limiter.check("10.1.1.1", "/api/works", "GET")).allowed is True
        finally:
            for name in (
                "threat_orchestrator",
                "event_log",
                "rate_tracker",
                "rate_limiter",
                "reputation_service",
                "behavior_analyzer",
                "geo_blocking_service",
                "threat_block_list",
                "brute_force_block_list",
                "brute_force_detector",
                "alert_dispatcher",
            ):
                getattr(Container, name).reset()
