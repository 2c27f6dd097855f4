# threatguard/main.py
import asyncio

from aiohttp import web
from loguru import logger

from threatguard.config.settings import settings
from threatguard.containers import Container
from threatguard.jobs.scheduled_tasks import setup_scheduler
from threatguard.utils.logging_setup import setup_logging


def create_health_app(container: Container) -> web.Application:
    async def health_check(request: web.Request) -> web.Response:
        try:
            await container.redis_client().ping()
            redis_ok = True
        except Exception:
            redis_ok = False
        status = 200 if redis_ok else 503
        return web.json_response(
            {"status": "ok" if redis_ok else "degraded", "service": "threatguard", "redis": redis_ok},
            status=status,
        )

    app = web.Application()
    app.router.add_get("/health", health_check)
    app.router.add_get("/healthz", health_check)
    return app


async def run_health_server(container: Container) -> None:
    runner = web.AppRunner(create_health_app(container))
    await runner.setup()
    site = web.TCPSite(runner, "0.0.0.0", settings.PORT)
    await site.start()
    logger.info(f"🏥 Health check server started on 0.0.0.0:{settings.PORT}")

    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await runner.cleanup()


async def run() -> None:
    container = Container()
    await container.init_resources()

    scheduler = None
    if settings.scheduler.enabled:
        scheduler = setup_scheduler(
            settings.scheduler,
            reputation=container.reputation_service(),
            behavior=container.behavior_analyzer(),
            geo_blocking=container.geo_blocking_service(),
            dispatcher=container.alert_dispatcher(),
        )
        scheduler.start()
        logger.info(f"⏰ Scheduler started: {[job.id for job in scheduler.get_jobs()]}")

    try:
        if settings.HEALTH_CHECK_ENABLED:
            await run_health_server(container)
        else:
            await asyncio.Event().wait()
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
        await container.shutdown_resources()


def main() -> None:
    setup_logging(
        level=settings.logging.level,
        format=settings.logging.format,
        debug_loggers=settings.logging.debug_loggers,
    )
    logger.info("🛡️ threatguard starting")
    try:
        asyncio.run(run())
    except (KeyboardInterrupt, SystemExit):
        logger.info("👋 threatguard stopped")


if __name__ == "__main__":
    main()
