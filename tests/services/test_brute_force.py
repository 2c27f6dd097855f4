import pytest

from threatguard.config.models import BruteForceConfig
from threatguard.services.brute_force_service import BruteForceDetector
from threatguard.utils.models import Severity

LOGIN = "/api/auth/login"


@pytest.fixture
def detector(redis, event_log, clock):
    return BruteForceDetector(
        redis=redis,
        config=BruteForceConfig(max_attempts=3, window_seconds=900, block_duration_seconds=3600),
        event_log=event_log,
        clock=clock,
    )


@pytest.mark.asyncio
async def test_third_failure_blocks(detector, event_log):
    first = await detector.track_attempt("1.1.1.1", LOGIN, success=False)
    second = await detector.track_attempt("1.1.1.1", LOGIN, success=False)
    third = await detector.track_attempt("1.1.1.1", LOGIN, success=False)

    assert (first.blocked, first.attempts_remaining) == (False, 2)
    assert (second.blocked, second.attempts_remaining) == (False, 1)
    assert (third.blocked, third.attempts_remaining) == (True, 0)
    assert await detector.is_blocked("1.1.1.1") is True

    events = await event_log.get_recent_events()
    assert events[0].type == "brute_force_attempt"
    assert events[0].severity is Severity.HIGH
    assert events[0].details["attempts"] == 3
    assert events[0].endpoint == LOGIN


@pytest.mark.asyncio
async def test_blocked_source_stays_blocked_regardless_of_outcome(detector):
    for _ in range(3):
        await detector.track_attempt("1.1.1.1", LOGIN, success=False)

    after_success = await detector.track_attempt("1.1.1.1", LOGIN, success=True)
    after_failure = await detector.track_attempt("1.1.1.1", LOGIN, success=False)
    assert (after_success.blocked, after_success.attempts_remaining) == (True, 0)
    assert (after_failure.blocked, after_failure.attempts_remaining) == (True, 0)


@pytest.mark.asyncio
async def test_success_resets_counter(detector):
    await detector.track_attempt("1.1.1.1", LOGIN, success=False)
    await detector.track_attempt("1.1.1.1", LOGIN, success=False)
    result = await detector.track_attempt("1.1.1.1", LOGIN, success=True)
    assert result.attempts_remaining == 3

    stats = await detector.get_attempt_stats("1.1.1.1", LOGIN)
    assert stats.attempts == 0

    again = await detector.track_attempt("1.1.1.1", LOGIN, success=False)
    assert again.attempts_remaining == 2


@pytest.mark.asyncio
async def test_rolling_window(detector, clock):
    await detector.track_attempt("1.1.1.1", LOGIN, success=False)
    await detector.track_attempt("1.1.1.1", LOGIN, success=False)
    clock.advance(901)
    result = await detector.track_attempt("1.1.1.1", LOGIN, success=False)
    assert (result.blocked, result.attempts_remaining) == (False, 2)


@pytest.mark.asyncio
async def test_unmonitored_endpoint_is_ignored(detector):
    for _ in range(5):
        result = await detector.track_attempt("1.1.1.1", "/api/works", success=False)
    assert (result.blocked, result.attempts_remaining) == (False, 3)


@pytest.mark.asyncio
async def test_block_time_remaining_and_unblock(detector, event_log):
    for _ in range(3):
        await detector.track_attempt("1.1.1.1", LOGIN, success=False)

    remaining = await detector.get_block_time_remaining("1.1.1.1")
    assert 3500 < remaining <= 3600

    assert await detector.unblock_ip("1.1.1.1") is True
    assert await detector.is_blocked("1.1.1.1") is False
    assert await detector.get_block_time_remaining("1.1.1.1") == 0.0

    events = await event_log.get_recent_events()
    assert events[0].type == "brute_force_unblock"
    assert events[0].details["action"] == "manual_unblock"


@pytest.mark.asyncio
async def test_attempt_stats_and_reset(detector):
    await detector.track_attempt("1.1.1.1", LOGIN, success=False)
    await detector.track_attempt("1.1.1.1", LOGIN, success=False)
    stats = await detector.get_attempt_stats("1.1.1.1", LOGIN)
    assert stats.attempts == 2
    assert stats.first_attempt is not None and stats.last_attempt is not None
    assert stats.blocked is False

    await detector.reset_attempts("1.1.1.1", LOGIN)
    assert (await detector.get_attempt_stats("1.1.1.1", LOGIN)).attempts == 0


@pytest.mark.asyncio
async def test_store_failure_policy(broken_redis, clock):
    lenient = BruteForceDetector(redis=broken_redis, config=BruteForceConfig(), clock=clock)
    result = await lenient.track_attempt("1.1.1.1", LOGIN, success=False)
    assert (result.blocked, result.attempts_remaining) == (False, 5)

    strict = BruteForceDetector(redis=broken_redis, config=BruteForceConfig(fail_open=False), clock=clock)
    result = await strict.track_attempt("1.1.1.1", LOGIN, success=False)
    assert (result.blocked, result.attempts_remaining) == (True, 0)
