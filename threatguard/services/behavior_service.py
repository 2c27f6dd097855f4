# threatguard/services/behavior_service.py
"""
Поведенческий анализ источника по истории его событий.
"""
import statistics
import time
from typing import Callable, Dict, List, Optional, Sequence

from cachetools import TTLCache
from loguru import logger

from threatguard.config.models import BehaviorConfig, BehaviorPatternConfig
from threatguard.config.models.behavior import weights_sum_to_one
from threatguard.services.event_log import SecurityEventLog
from threatguard.utils.exceptions import ConfigurationError
from threatguard.utils.models import (
    BehaviorHistoryEntry,
    BehaviorProfile,
    SecurityEvent,
    Severity,
    ThreatEvent,
)


class BehaviorAnalyzer:
    """
    Взвешенная оценка поведения по пяти признакам:
    частота, доля серьезных событий, повторяемость, равномерность
    во времени и нагрузка. Профили живут в ограниченном TTL-кэше
    процесса и между инстансами не синхронизируются.
    """

    def __init__(
        self,
        config: BehaviorConfig,
        event_log: Optional[SecurityEventLog] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.event_log = event_log
        self._clock = clock
        self._patterns: List[BehaviorPatternConfig] = list(config.patterns)
        self._cache: TTLCache = TTLCache(maxsize=config.cache_size, ttl=config.cache_ttl_seconds)

    @property
    def patterns(self) -> List[BehaviorPatternConfig]:
        return list(self._patterns)

    def _threshold(self, pattern_type: str, default: float) -> float:
        for p in self._patterns:
            if p.type == pattern_type:
                return p.threshold or default
        return default

    # ------------------------------------------------------------------
    # Признаки
    # ------------------------------------------------------------------

    def _request_frequency(self, events: Sequence[ThreatEvent], now: float) -> float:
        recent = sum(1 for e in events if now - e.timestamp < 60)
        return min(recent / self._threshold("request_frequency", 100), 1.0)

    @staticmethod
    def _error_rate(events: Sequence[ThreatEvent]) -> float:
        if not events:
            return 0.0
        severe = sum(1 for e in events if e.severity.is_high)
        return severe / len(events)

    def _pattern_repetition(self, events: Sequence[ThreatEvent], current: ThreatEvent) -> float:
        similar = sum(
            1 for e in events
            if e.type == current.type and e.details.category == current.details.category
        )
        return min(similar / self._threshold("pattern_repetition", 5), 1.0)

    @staticmethod
    def _time_distribution(events: Sequence[ThreatEvent]) -> float:
        if len(events) < 2:
            return 0.0
        stamps = sorted(e.timestamp for e in events)
        intervals = [b - a for a, b in zip(stamps, stamps[1:])]
        mean = statistics.fmean(intervals)
        if mean <= 0:
            return 0.0
        cv = statistics.pstdev(intervals) / mean
        return min(cv / 2, 1.0)

    @staticmethod
    def _resource_usage(event: ThreatEvent) -> float:
        metrics = event.details.metrics
        if not metrics:
            return 0.0
        score = (
            metrics.get("request_rate", 0.0) / 100 * 0.4
            + metrics.get("error_rate", 0.0) * 0.3
            + metrics.get("suspicious_score", 0.0) / 100 * 0.3
        )
        return min(score, 1.0)

    def _score_event(
        self, event: ThreatEvent, events: Sequence[ThreatEvent], now: float
    ) -> Dict[str, float]:
        return {
            "request_frequency": self._request_frequency(events, now),
            "error_rate": self._error_rate(events),
            "pattern_repetition": self._pattern_repetition(events, event),
            "time_distribution": self._time_distribution(events),
            "resource_usage": self._resource_usage(event),
        }

    def _overall_score(self, history: List[BehaviorHistoryEntry]) -> float:
        recent = history[-self.config.score_history:]
        if not recent:
            return 0.0
        # Самая свежая запись весит 1, каждая предыдущая в decay_factor раз меньше
        n = len(recent)
        weights = [self.config.decay_factor ** (n - 1 - i) for i in range(n)]
        total = sum(weights)
        return sum(entry.score * w for entry, w in zip(recent, weights)) / total

    # ------------------------------------------------------------------
    # Публичный API
    # ------------------------------------------------------------------

    async def analyze_behavior(
        self,
        ip: str,
        events: Sequence[ThreatEvent],
        time_window_seconds: Optional[int] = None,
    ) -> BehaviorProfile:
        """
        Пересчитывает профиль источника.

        Args:
            ip: Адрес источника
            events: События источника
            time_window_seconds: Учитываются только события новее now - окно

        Returns:
            Обновленный профиль (он же сохраняется в кэше)
        """
        now = self._clock()
        window = time_window_seconds or self.config.time_window_seconds
        relevant = [e for e in events if e.timestamp > now - window]

        previous = self._cache.get(ip)
        profile = previous.model_copy(deep=True) if previous else BehaviorProfile(source_ip=ip, last_seen=now)
        patterns = list(profile.patterns)

        for event in relevant:
            scores = self._score_event(event, relevant, now)
            event_score = sum(scores.get(p.type, 0.0) * p.weight for p in self._patterns)

            profile.history.append(
                BehaviorHistoryEntry(timestamp=event.timestamp, event_type=event.type, score=event_score)
            )
            for pattern_type, value in scores.items():
                if value > self.config.pattern_threshold and pattern_type not in patterns:
                    patterns.append(pattern_type)

        profile.history = profile.history[-self.config.max_history:]
        profile.patterns = patterns
        profile.score = self._overall_score(profile.history)
        profile.last_seen = now

        self._cache[ip] = profile
        await self._report_change(ip, previous, profile)
        return profile

    async def _report_change(
        self, ip: str, previous: Optional[BehaviorProfile], current: BehaviorProfile
    ) -> None:
        if previous is None:
            return
        delta = current.score - previous.score
        if abs(delta) <= self.config.significant_change:
            return

        new_patterns = [p for p in current.patterns if p not in previous.patterns]
        logger.warning(f"📈 Behavior of {ip} changed: {previous.score:.2f} -> {current.score:.2f}")
        if self.event_log is None:
            return
        await self.event_log.track_security_event(
            SecurityEvent(
                type="behavior_change",
                severity=Severity.HIGH if current.score > self.config.pattern_threshold else Severity.MEDIUM,
                source_ip=ip,
                details={
                    "old_score": round(previous.score, 3),
                    "new_score": round(current.score, 3),
                    "change": round(delta, 3),
                    "new_patterns": new_patterns,
                },
            )
        )

    def get_behavior(self, ip: str) -> Optional[BehaviorProfile]:
        return self._cache.get(ip)

    def clear_cache(self) -> None:
        self._cache.clear()

    def expire(self) -> None:
        self._cache.expire()

    async def update_patterns(self, patterns: List[BehaviorPatternConfig | dict]) -> None:
        """
        Заменяет набор признаков.

        Raises:
            ConfigurationError: если веса не дают в сумме 1.0
        """
        try:
            parsed = [
                p if isinstance(p, BehaviorPatternConfig) else BehaviorPatternConfig.model_validate(p)
                for p in patterns
            ]
        except ValueError as e:
            raise ConfigurationError(f"Invalid behavior pattern: {e}") from e
        if not weights_sum_to_one(parsed):
            raise ConfigurationError("Behavior pattern weights must sum to 1.0")

        self._patterns = parsed
        logger.info(f"🔄 Behavior patterns updated: {[p.type for p in parsed]}")
        if self.event_log is not None:
            await self.event_log.track_security_event(
                SecurityEvent(
                    type="behavior_patterns_update",
                    severity=Severity.LOW,
                    details={"patterns": [p.model_dump() for p in parsed]},
                )
            )
