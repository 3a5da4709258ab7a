"""
Конфигурация синтаксиса шаблонов.

Неизменяемое описание четырёх пар разделителей: директивы (pragma),
вывода выражения (inline), комментария (comment) и блока (block).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Tuple

logger = logging.getLogger(__name__)

# Пара (открывающий токен, закрывающий токен)
Delimiters = Tuple[str, str]

# Порядок распознавания открывающих токенов в тексте
START_ORDER = ("inline", "comment", "block", "pragma")


@dataclass(frozen=True)
class Syntax:
    """
    Набор разделителей, определяющий, где заканчивается текст
    и начинается синтаксис шаблона.

    Открывающие токены не должны быть префиксами друг друга.
    Неоднозначная конфигурация не исправляется автоматически:
    она только логируется, а ответственность лежит на вызывающем коде.
    """
    pragma: Delimiters = ("{!", "!}")
    inline: Delimiters = ("{{", "}}")
    comment: Delimiters = ("{#", "#}")
    block: Delimiters = ("{%", "%}")

    def __post_init__(self):
        """Валидация пар разделителей."""
        for kind in START_ORDER:
            pair = getattr(self, kind)
            if (
                not isinstance(pair, tuple)
                or len(pair) != 2
                or not all(isinstance(part, str) and part for part in pair)
            ):
                raise ValueError(f"Delimiter '{kind}' must be a pair of non-empty strings, got {pair!r}")

        ambiguous = self.ambiguous_starts()
        if ambiguous:
            logger.warning(
                f"Syntax has ambiguous start delimiters {ambiguous}; "
                f"they are tried in the order {', '.join(START_ORDER)}"
            )

    def starts(self) -> Dict[str, str]:
        """Возвращает открывающие токены в порядке распознавания."""
        return {kind: getattr(self, kind)[0] for kind in START_ORDER}

    def end_of(self, kind: str) -> str:
        """Возвращает закрывающий токен для вида разделителя."""
        return getattr(self, kind)[1]

    def ambiguous_starts(self) -> List[Tuple[str, str]]:
        """
        Находит пары видов, у которых один открывающий токен
        является префиксом другого.
        """
        starts = self.starts()
        kinds = list(starts)
        result: List[Tuple[str, str]] = []
        for i, a in enumerate(kinds):
            for b in kinds[i + 1:]:
                if starts[a].startswith(starts[b]) or starts[b].startswith(starts[a]):
                    result.append((a, b))
        return result

    def with_delimiters(self, **changes: Delimiters) -> "Syntax":
        """Копия синтаксиса с заменой указанных пар разделителей."""
        return replace(self, **changes)


# Синтаксис по умолчанию: {! !}, {{ }}, {# #}, {% %}
DEFAULT_SYNTAX = Syntax()

# Альтернативный синтаксис (в духе шаблонов Play/Scala) для случаев,
# когда фигурные скобки конфликтуют с другим шаблонизатором
ALTERNATE_SYNTAX = Syntax(
    pragma=("@!", "!@"),
    inline=("<@", "@>"),
    comment=("@*", "*@"),
    block=("@(", ")@"),
)

SYNTAX_PRESETS: Dict[str, Syntax] = {
    "default": DEFAULT_SYNTAX,
    "alternate": ALTERNATE_SYNTAX,
}


__all__ = [
    "Delimiters",
    "START_ORDER",
    "Syntax",
    "DEFAULT_SYNTAX",
    "ALTERNATE_SYNTAX",
    "SYNTAX_PRESETS",
]
