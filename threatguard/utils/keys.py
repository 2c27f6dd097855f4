# threatguard/utils/keys.py
class KeyFactory:
    """Генерирует стандартизированные ключи для Redis."""

    # --- Счетчики частоты запросов ---
    @staticmethod
    def rate_window(ip: str, scope: str = "requests") -> str:
        """ZSET с временными метками запросов/ошибок источника."""
        return f"rate:{scope}:{ip}"

    @staticmethod
    def rate_window_pattern() -> str:
        return "rate:*"

    # --- Ограничение частоты ---
    @staticmethod
    def rate_limit(ip: str, endpoint: str, method: str, window_start: int) -> str:
        """Счетчик запросов в фиксированном окне, начавшемся в window_start."""
        return f"rate_limit:{ip}:{endpoint}:{method}:{window_start}"

    @staticmethod
    def rate_limit_pattern(ip: str, endpoint: str, method: str) -> str:
        return f"rate_limit:{ip}:{endpoint}:{method}:*"

    # --- Репутация ---
    @staticmethod
    def ip_reputation(ip: str) -> str:
        return f"ip_reputation:{ip}"

    @staticmethod
    def ip_reputation_pattern() -> str:
        return "ip_reputation:*"

    # --- Перебор паролей ---
    @staticmethod
    def brute_force_attempts(endpoint: str, ip: str) -> str:
        """ZSET неудачных попыток на конкретном эндпоинте."""
        return f"brute_force:{endpoint}:{ip}"

    # --- Блокировки ---
    @staticmethod
    def block(namespace: str, ip: str) -> str:
        return f"{namespace}:{ip}"

    # --- Журнал событий ---
    @staticmethod
    def security_events() -> str:
        return "monitoring:security"

    @staticmethod
    def source_threats(ip: str) -> str:
        """LIST угроз конкретного источника (новые в начале)."""
        return f"monitoring:threats:{ip}"
