"""
Лексические типы парсера шаблонов.

Определяет позиции в исходном тексте, типы токенов и ошибки
лексического и синтаксического анализа.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from .errors import EdeUserError


@dataclass(frozen=True)
class Delta:
    """
    Позиция в исходном тексте для диагностики ошибок.

    Используется только для сообщений об ошибках и отчётов о циклах
    включений, никогда не участвует в сравнении узлов AST.
    """
    name: str           # Имя источника (файл или ключ шаблона)
    line: int           # Номер строки (начиная с 1)
    column: int         # Номер колонки (начиная с 1)
    offset: int         # Смещение в байтах UTF-8 от начала источника

    @property
    def is_synthetic(self) -> bool:
        """Возвращает True для маркера узлов без исходного текста."""
        return self.line == 0

    def __str__(self) -> str:
        return f"{self.name}:{self.line}:{self.column}"


def synthetic_delta(label: str) -> Delta:
    """
    Создаёт маркер позиции для узлов, синтезированных при раскрытии
    синтаксического сахара (например, неявная ветка else).
    """
    return Delta(name=label, line=0, column=0, offset=0)


class TokenType(enum.Enum):
    """Типы токенов внутри разделителей шаблона."""

    # Текстовый контент между конструкциями
    TEXT = "TEXT"

    # Содержимое выражений и директив
    IDENTIFIER = "IDENTIFIER"
    NUMBER = "NUMBER"
    STRING = "STRING"
    OPERATOR = "OPERATOR"
    LPAREN = "LPAREN"                        # (
    RPAREN = "RPAREN"                        # )
    DOT = "DOT"                              # .
    COMMA = "COMMA"                          # ,

    # Служебные токены
    UNKNOWN = "UNKNOWN"
    EOF = "EOF"


@dataclass(frozen=True)
class Token:
    """
    Токен с позиционной информацией для точной диагностики ошибок.
    """
    type: TokenType
    value: str
    delta: Delta
    position: int        # Позиция символа в исходном тексте

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.delta.line}:{self.delta.column})"


class TemplateSyntaxError(EdeUserError):
    """
    Ошибка разбора шаблона.

    Единый тип отказа парсера: несёт позицию первой обнаруженной ошибки
    и человекочитаемое сообщение. Частичный AST никогда не возвращается.
    """

    def __init__(self, message: str, delta: Delta):
        super().__init__(f"{message} at {delta}")
        self.message = message
        self.delta = delta
        self.line = delta.line
        self.column = delta.column


class LexerError(TemplateSyntaxError):
    """Ошибка лексического анализа: некорректный литерал или символ."""


class ParserError(TemplateSyntaxError):
    """Ошибка синтаксического анализа: незакрытый блок, неверный фильтр и т.п."""


class ReservedWordError(ParserError):
    """Ключевое слово использовано там, где ожидается свободный идентификатор."""

    def __init__(self, word: str, delta: Delta):
        super().__init__(f"Reserved keyword '{word}' cannot be used as an identifier", delta)
        self.word = word


__all__ = [
    "Delta",
    "synthetic_delta",
    "TokenType",
    "Token",
    "TemplateSyntaxError",
    "LexerError",
    "ParserError",
    "ReservedWordError",
]
