# threatguard/utils/exceptions.py
"""
Иерархия исключений конвейера обнаружения угроз.
"""


class ThreatGuardError(Exception):
    """Базовое исключение threatguard."""


class ConfigurationError(ThreatGuardError):
    """Некорректная конфигурация: битое регулярное выражение, неверные веса и т.п."""


class StoreUnavailable(ThreatGuardError):
    """Общее хранилище (Redis) недоступно или вернуло ошибку."""


class ResolutionFailure(ThreatGuardError):
    """Не удалось определить геолокацию IP-адреса."""

    def __init__(self, ip: str, reason: str = "unknown"):
        self.ip = ip
        self.reason = reason
        super().__init__(f"Failed to resolve location for {ip}: {reason}")


class ChannelDispatchFailure(ThreatGuardError):
    """Канал уведомлений не смог доставить алерт."""

    def __init__(self, channel: str, reason: str):
        self.channel = channel
        self.reason = reason
        super().__init__(f"Channel '{channel}' failed: {reason}")
