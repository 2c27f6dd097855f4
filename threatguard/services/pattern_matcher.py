# threatguard/services/pattern_matcher.py
"""
Сигнатурный анализ содержимого запроса.
"""
import re
from dataclasses import dataclass
from typing import Iterable, List

from loguru import logger
from pydantic import ValidationError

from threatguard.config.models import ThreatPatternConfig
from threatguard.utils.exceptions import ConfigurationError
from threatguard.utils.models import RequestDescriptor, Severity


@dataclass(frozen=True)
class CompiledPattern:
    type: str
    regex: re.Pattern
    severity: Severity
    category: str
    description: str


@dataclass(frozen=True)
class PatternMatch:
    type: str
    severity: Severity
    category: str
    description: str
    pattern: str


def compile_patterns(patterns: Iterable[ThreatPatternConfig | dict]) -> List[CompiledPattern]:
    """
    Компилирует набор шаблонов.

    Raises:
        ConfigurationError: если хотя бы одно выражение некорректно
    """
    compiled: List[CompiledPattern] = []
    for raw in patterns:
        try:
            item = raw if isinstance(raw, ThreatPatternConfig) else ThreatPatternConfig.model_validate(raw)
            regex = re.compile(item.pattern, re.IGNORECASE)
        except (ValidationError, re.error) as e:
            raise ConfigurationError(f"Invalid threat pattern {raw!r}: {e}") from e
        compiled.append(
            CompiledPattern(
                type=item.type,
                regex=regex,
                severity=item.severity,
                category=item.category,
                description=item.description,
            )
        )
    return compiled


class PatternMatcher:
    """
    Stateless-классификатор: сериализует запрос в одну строку
    и прогоняет ее через все шаблоны независимо друг от друга.
    """

    def __init__(self, patterns: Iterable[ThreatPatternConfig | dict]):
        self._patterns = compile_patterns(patterns)
        logger.debug(f"🔧 PatternMatcher: загружено шаблонов: {len(self._patterns)}")

    @property
    def pattern_types(self) -> List[str]:
        return [p.type for p in self._patterns]

    def replace_patterns(self, patterns: Iterable[ThreatPatternConfig | dict]) -> None:
        """Атомарно заменяет набор шаблонов. При ошибке старый набор остается в силе."""
        compiled = compile_patterns(patterns)
        self._patterns = compiled
        logger.info(f"🔄 Threat patterns replaced: {[p.type for p in compiled]}")

    def classify_text(self, content: str) -> List[PatternMatch]:
        patterns = self._patterns
        return [
            PatternMatch(
                type=p.type,
                severity=p.severity,
                category=p.category,
                description=p.description,
                pattern=p.regex.pattern,
            )
            for p in patterns
            if p.regex.search(content)
        ]

    def classify(self, request: RequestDescriptor) -> List[PatternMatch]:
        """
        Классифицирует запрос.

        Args:
            request: Описание входящего запроса

        Returns:
            Все сработавшие шаблоны (может быть несколько или ни одного)
        """
        return self.classify_text(request.serialize())
