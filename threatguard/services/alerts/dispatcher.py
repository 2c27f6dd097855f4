# threatguard/services/alerts/dispatcher.py
"""
Рассылка алертов с антидребезгом по id алерта.
"""
import asyncio
import time
from typing import Any, Callable, Dict, Mapping, Optional, Set, Tuple

from cachetools import TLRUCache
from loguru import logger

from threatguard.config.models import AlertConfig, AlertingConfig
from threatguard.services.alerts.channels import AlertChannel
from threatguard.services.alerts.formatters import build_payload
from threatguard.utils.exceptions import ChannelDispatchFailure
from threatguard.utils.models import DispatchReport


class AlertDispatcher:
    """
    Отправляет алерт во все настроенные каналы, не чаще одного раза
    за cooldown для одного id.

    Метка cooldown ставится в момент начала рассылки, до первого await,
    поэтому параллельные вызовы с тем же id не проходят проверку дважды.
    Каналы опрашиваются параллельно и независимо: ошибка одного
    логируется и не мешает остальным.
    """

    def __init__(
        self,
        config: AlertingConfig,
        channels: Mapping[str, AlertChannel],
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.channels: Dict[str, AlertChannel] = dict(channels)
        self._clock = clock
        # Метка живет ровно свой cooldown, по тем же часам, что и проверка
        self._last_sent: TLRUCache = TLRUCache(
            maxsize=config.cooldown_cache_size, ttu=self._cooldown_ends, timer=clock
        )
        self._pending: Set[asyncio.Task] = set()

    @staticmethod
    def _cooldown_ends(alert_id: str, stamp: Tuple[float, float], now: float) -> float:
        sent_at, cooldown = stamp
        return sent_at + cooldown

    def register_channel(self, channel: AlertChannel) -> None:
        self.channels[channel.name] = channel

    def in_cooldown(self, alert_id: str, cooldown: float) -> bool:
        stamp = self._last_sent.get(alert_id)
        return stamp is not None and self._clock() - stamp[0] < cooldown

    def clear_cooldowns(self) -> None:
        self._last_sent.clear()

    def expire(self) -> None:
        """Удаляет протухшие метки (вызывается планировщиком)."""
        self._last_sent.expire()

    async def _send_one(self, name: str, payload: Dict[str, Any], config: AlertConfig) -> bool:
        channel = self.channels.get(name)
        if channel is None:
            logger.warning(f"⚠️ Alert '{config.id}': channel '{name}' is not configured")
            return False
        try:
            await asyncio.wait_for(
                channel.send(payload, config.recipients),
                timeout=self.config.channel_timeout_seconds,
            )
            return True
        except ChannelDispatchFailure as e:
            logger.error(f"❌ Alert '{config.id}' not delivered: {e}")
        except asyncio.TimeoutError:
            logger.error(f"❌ Alert '{config.id}': channel '{name}' timed out")
        except Exception:
            logger.exception(f"❌ Alert '{config.id}': unexpected error in channel '{name}'")
        return False

    async def send_alert(self, config: AlertConfig, data: Dict[str, Any]) -> DispatchReport:
        """
        Отправляет алерт, если он включен и не в cooldown.

        Args:
            config: Описание алерта (id служит ключом антидребезга)
            data: Произвольные данные для тела алерта

        Returns:
            Отчет: была ли рассылка и результат по каждому каналу
        """
        if not self.config.enabled or not config.enabled:
            return DispatchReport(alert_id=config.id, dispatched=False, reason="disabled")
        if self.in_cooldown(config.id, config.cooldown):
            logger.debug(f"⏳ Alert '{config.id}' suppressed by cooldown")
            return DispatchReport(alert_id=config.id, dispatched=False, reason="cooldown")

        now = self._clock()
        self._last_sent[config.id] = (now, config.cooldown)

        payload = build_payload(config, data, now)
        names = list(dict.fromkeys(config.channels))
        outcomes = await asyncio.gather(*(self._send_one(name, payload, config) for name in names))
        results = dict(zip(names, outcomes))

        if any(outcomes):
            logger.info(f"🚨 Alert '{config.id}' dispatched: {results}")
        else:
            logger.error(f"❌ Alert '{config.id}' failed on every channel: {results}")
        return DispatchReport(alert_id=config.id, dispatched=True, results=results)

    def dispatch_in_background(self, config: AlertConfig, data: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Fire-and-forget: запрос не ждет доставки алерта."""
        try:
            task = asyncio.get_running_loop().create_task(self.send_alert(config, data))
        except RuntimeError:
            logger.error(f"❌ Alert '{config.id}' dropped: no running event loop")
            return None
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.opt(exception=task.exception()).error("❌ Background alert task failed")

    async def aclose(self) -> None:
        """Дожидается отправки всех фоновых алертов."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
