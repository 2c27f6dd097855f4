# threatguard/containers/container.py
from dependency_injector import containers, providers
from loguru import logger
from redis.asyncio import Redis

from threatguard.config.settings import settings
from threatguard.containers.providers import create_service_providers
from threatguard.utils.http_client import HTTPClient


class Container(containers.DynamicContainer):
    config = providers.Object(settings)

    redis_client = providers.Singleton(
        Redis.from_url,
        url=settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        socket_keepalive=True,
        health_check_interval=30,
    )

    http_client = providers.Singleton(HTTPClient, config=settings.http_client)

    async def init_resources(self) -> None:
        logger.info("🔧 Initializing container resources...")

        try:
            redis = self.redis_client()
            await redis.ping()
            logger.info("✅ Redis connected")
        except Exception as e:
            logger.error(f"❌ Redis connection failed: {e}")
            raise

        # Битые шаблоны должны уронить старт, а не первый запрос
        self.pattern_matcher()
        self.threat_orchestrator()
        logger.info("✅ Detection pipeline assembled")

    async def shutdown_resources(self) -> None:
        logger.info("🛑 Shutting down container resources...")

        try:
            await self.alert_dispatcher().aclose()
        except Exception as e:
            logger.error(f"Error draining alerts: {e}")

        try:
            await self.http_client().close()
        except Exception as e:
            logger.error(f"Error closing HTTP client: {e}")

        try:
            await self.redis_client().aclose()
            logger.info("✅ Redis client closed")
        except Exception as e:
            logger.error(f"Error closing Redis: {e}")


for service_name, service_provider in create_service_providers(
    Container.redis_client, Container.http_client
).items():
    setattr(Container, service_name, service_provider)
