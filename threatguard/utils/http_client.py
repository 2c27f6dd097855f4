# threatguard/utils/http_client.py
import asyncio
import logging
from typing import Any, Literal, Optional

import aiohttp
import backoff

from threatguard.config.models import HttpClientConfig

logger = logging.getLogger(__name__)


def backoff_hdlr(details):
    """Логирует информацию о повторных попытках запроса."""
    logger.warning(
        "Backing off {wait:0.1f}s after {tries} tries calling function {target.__name__} due to {exception}".format(
            **details
        )
    )


def _giveup(e: Exception) -> bool:
    # 4xx кроме 429 повторять бессмысленно
    return isinstance(e, aiohttp.ClientResponseError) and 400 <= e.status < 500 and e.status != 429


class HTTPClient:
    """
    Обертка над aiohttp.ClientSession: одна сессия на процесс,
    общие таймауты, заголовки и повторы с экспоненциальной задержкой.
    Используется резолвером геолокации и webhook-каналом алертов.
    """

    def __init__(self, config: Optional[HttpClientConfig] = None):
        self.config = config or HttpClientConfig()
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        """Лениво создает и возвращает сессию aiohttp."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self.config.connection_limit,
                limit_per_host=self.config.connection_limit_per_host,
                ttl_dns_cache=300,
            )
            timeout = aiohttp.ClientTimeout(
                total=self.config.total_timeout, connect=self.config.connect_timeout
            )
            self._session = aiohttp.ClientSession(
                connector=connector,
                timeout=timeout,
                headers={"User-Agent": self.config.user_agent},
            )
        return self._session

    @backoff.on_exception(
        backoff.expo,
        (aiohttp.ClientError, asyncio.TimeoutError),
        max_tries=3,
        giveup=_giveup,
        on_backoff=backoff_hdlr,
    )
    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        response_type: Literal["json", "text"] = "json",
        timeout: float | None = None,
    ) -> Any:
        """
        Выполняет GET-запрос с логикой повторных попыток.
        Ошибки сети и HTTP пробрасываются вызывающему.
        """
        session = await self._get_session()
        aio_timeout = aiohttp.ClientTimeout(total=timeout or self.config.total_timeout)
        try:
            async with session.get(url, params=params, headers=headers, timeout=aio_timeout) as response:
                response.raise_for_status()
                if response_type == "json":
                    return await response.json(content_type=None)
                return await response.text()
        except aiohttp.ClientResponseError as e:
            logger.error(f"GET {url} failed with status {e.status}, message='{e.message}'")
            raise
        except asyncio.TimeoutError:
            logger.error(f"GET {url} timed out")
            raise

    @backoff.on_exception(
        backoff.expo,
        (aiohttp.ClientError, asyncio.TimeoutError),
        max_tries=3,
        giveup=_giveup,
        on_backoff=backoff_hdlr,
    )
    async def post_json(
        self,
        url: str,
        payload: Any,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> int:
        """
        Отправляет JSON методом POST.

        Returns:
            HTTP-статус ответа
        """
        session = await self._get_session()
        aio_timeout = aiohttp.ClientTimeout(total=timeout or self.config.total_timeout)
        try:
            async with session.post(url, json=payload, headers=headers, timeout=aio_timeout) as response:
                response.raise_for_status()
                return response.status
        except aiohttp.ClientResponseError as e:
            logger.error(f"POST {url} failed with status {e.status}, message='{e.message}'")
            raise
        except asyncio.TimeoutError:
            logger.error(f"POST {url} timed out")
            raise

    async def close(self):
        """Корректно закрывает сессию при остановке приложения."""
        if self._session and not self._session.closed:
            await self._session.close()
            logger.info("HTTP client session closed.")
