import sys
from pathlib import Path
from typing import Any, Dict, List

import fakeredis
import fakeredis.aioredis
import pytest
import pytest_asyncio

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from threatguard.config.models import EventLogConfig  # noqa: E402
from threatguard.services.alerts.channels import AlertChannel  # noqa: E402
from threatguard.services.event_log import SecurityEventLog  # noqa: E402
from threatguard.utils.exceptions import ChannelDispatchFailure  # noqa: E402


class FakeClock:
    """Управляемые часы для расчетов, зависящих от времени."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingChannel(AlertChannel):
    def __init__(self, name: str, fail: bool = False):
        self.name = name
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []

    async def send(self, payload, recipients):
        self.sent.append(payload)
        if self.fail:
            raise ChannelDispatchFailure(self.name, "boom")


@pytest.fixture
def clock():
    return FakeClock()


@pytest_asyncio.fixture
async def redis():
    r = fakeredis.aioredis.FakeRedis(decode_responses=True)
    await r.flushall()
    yield r
    await r.flushall()
    await r.aclose()


@pytest_asyncio.fixture
async def broken_redis():
    server = fakeredis.FakeServer()
    server.connected = False
    r = fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)
    yield r
    await r.aclose()


@pytest.fixture
def event_log(redis):
    return SecurityEventLog(redis=redis, config=EventLogConfig())


@pytest.fixture
def channel_factory():
    return RecordingChannel
