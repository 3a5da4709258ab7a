"""
Реестр лексических стилей.

Описывает классы символов для идентификаторов и операторов, а также
зарезервированные слова, по которым идентификаторы отличаются от
ключевых слов. Чистая конфигурация без поведения, кроме поиска.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import FrozenSet, Pattern


# Ключевые слова шаблонов: не могут использоваться как имена переменных
KEYWORDS: FrozenSet[str] = frozenset({
    "if", "elif", "else",
    "case", "when",
    "for", "include", "let",
    "endif", "endcase", "endfor", "endlet",
    "in", "with",
    "_", ".",
    "true", "false",
})

# Поля директивы {! ... !}
PRAGMA_FIELDS: FrozenSet[str] = frozenset({
    "pragma",
    "inline",
    "comment",
    "block",
})

# Все операторы, которые понимает парсер выражений
OPERATORS: FrozenSet[str] = frozenset({
    "!",
    "*", "/",
    "-", "+",
    "==", "!=", ">", ">=", "<", "<=",
    "&&",
    "||",
    "|",
})


@dataclass(frozen=True)
class IdentifierStyle:
    """
    Стиль лексемы: допустимые начальные и последующие символы
    плюс множество зарезервированных слов.

    Attributes:
        name: Имя стиля для сообщений об ошибках ("variable", "operator", ...)
        start: Класс допустимых первых символов (синтаксис regex)
        letter: Класс допустимых последующих символов (синтаксис regex)
        reserved: Зарезервированные лексемы стиля
    """
    name: str
    start: str
    letter: str
    reserved: FrozenSet[str] = frozenset()
    _pattern: Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "_pattern", re.compile(f"{self.start}{self.letter}*"))

    @property
    def pattern(self) -> Pattern[str]:
        """Скомпилированный шаблон максимальной лексемы стиля."""
        return self._pattern

    def is_reserved(self, word: str) -> bool:
        return word in self.reserved

    def renamed(self, name: str) -> "IdentifierStyle":
        """Копия стиля с другим именем (для сообщений об ошибках)."""
        return replace(self, name=name)


# Идентификаторы: буква Unicode или "_", далее буквы, цифры, "_" и "'"
KEYWORD_STYLE = IdentifierStyle(
    name="keyword",
    start=r"[^\W\d]",
    letter=r"[\w']",
    reserved=KEYWORDS,
)

VARIABLE_STYLE = KEYWORD_STYLE.renamed("variable")

PRAGMA_STYLE = IdentifierStyle(
    name="pragma field",
    start=r"[^\W\d]",
    letter=r"[\w']",
    reserved=PRAGMA_FIELDS,
)

# Операторы читаются жадно: "||" никогда не распадается на два "|"
OPERATOR_STYLE = IdentifierStyle(
    name="operator",
    start=r"[-+!&|=><*/]",
    letter=r"[-+!&|=><]",
    reserved=OPERATORS,
)


def reserved_sets() -> dict:
    """
    Статическая конфигурация для внешних инструментов
    (валидация и подсветка исходников шаблонов).
    """
    return {
        "keywords": sorted(KEYWORDS),
        "pragma_fields": sorted(PRAGMA_FIELDS),
        "operators": sorted(OPERATORS),
    }


__all__ = [
    "KEYWORDS",
    "PRAGMA_FIELDS",
    "OPERATORS",
    "IdentifierStyle",
    "KEYWORD_STYLE",
    "VARIABLE_STYLE",
    "PRAGMA_STYLE",
    "OPERATOR_STYLE",
    "reserved_sets",
]
