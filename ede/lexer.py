"""
Лексический анализатор шаблонов.

Курсор по исходному тексту с отслеживанием строки, колонки и байтового
смещения. Работает в двух режимах:
- текст документа: чтение фрагментов до ближайшего открывающего разделителя
- содержимое разделителей: токены выражений (идентификаторы, литералы, операторы)

Разделители не зашиты в лексер: парсер передаёт их явно, поэтому активный
синтаксис может меняться по ходу разбора.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from .styles import OPERATOR_STYLE, VARIABLE_STYLE
from .tokens import Delta, LexerError, Token, TokenType

logger = logging.getLogger(__name__)

# Состояние курсора: (position, line, column, offset)
_State = Tuple[int, int, int, int]

_WHITESPACE = re.compile(r"\s+")
_NUMBER = re.compile(r"0[xX][0-9a-fA-F]+|0[oO][0-7]+|[0-9]+(?:\.[0-9]+)?(?:[eE][+-]?[0-9]+)?")
_NUMBER_TAIL = re.compile(r"[\w.']+")

_SIMPLE_ESCAPES = {
    "\\": "\\",
    '"': '"',
    "'": "'",
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "0": "\0",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "v": "\v",
}

_PUNCTUATION = {
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    ".": TokenType.DOT,
    ",": TokenType.COMMA,
}


def number_value(lexeme: str) -> Decimal:
    """Преобразует лексему числа в десятичное значение произвольной точности."""
    prefix = lexeme[:2].lower()
    if prefix == "0x":
        return Decimal(int(lexeme[2:], 16))
    if prefix == "0o":
        return Decimal(int(lexeme[2:], 8))
    return Decimal(lexeme)


class TemplateLexer:
    """
    Лексический анализатор шаблонов.

    Токены выражений читаются лениво с одним токеном просмотра вперёд,
    так что парсер может в любой момент переключиться на сырое сравнение
    с закрывающим разделителем.
    """

    def __init__(self, text: str, name: str = "<template>"):
        self.text = text
        self.name = name
        self.length = len(text)

        # Позиционная информация
        self.position = 0
        self.line = 1
        self.column = 1
        self.offset = 0

        # Кэш просмотра вперёд: токен и состояние курсора после него
        self._lookahead: Optional[Tuple[Token, _State]] = None

    # ---- Позиции ----

    def delta(self) -> Delta:
        """Возвращает текущую позицию курсора."""
        return Delta(self.name, self.line, self.column, self.offset)

    def at_end(self) -> bool:
        return self.position >= self.length

    def mark(self) -> _State:
        """Сохраняет состояние курсора для возможного отката."""
        return self._save()

    def reset(self, state: _State) -> None:
        """Откатывает курсор к сохранённому состоянию."""
        self._restore(state)
        self._lookahead = None

    def char_at(self, position: int) -> str:
        """Символ в позиции или пустая строка за концом текста."""
        return self.text[position:position + 1]

    def _save(self) -> _State:
        return self.position, self.line, self.column, self.offset

    def _restore(self, state: _State) -> None:
        self.position, self.line, self.column, self.offset = state

    def _advance(self, count: int) -> None:
        """
        Перемещает позицию на указанное количество символов,
        обновляя номера строк, колонок и байтовое смещение.
        """
        chunk = self.text[self.position:self.position + count]
        newlines = chunk.count("\n")
        if newlines:
            self.line += newlines
            self.column = len(chunk) - chunk.rfind("\n")
        else:
            self.column += len(chunk)
        self.offset += len(chunk.encode("utf-8"))
        self.position += len(chunk)
        self._lookahead = None

    # ---- Режим текста документа ----

    def starts_with(self, literal: str) -> bool:
        """Проверяет, начинается ли остаток текста с указанной строки."""
        return self.text.startswith(literal, self.position)

    def consume_literal(self, literal: str) -> Optional[Token]:
        """Потребляет строку, если остаток текста начинается с неё."""
        if not self.starts_with(literal):
            return None
        delta = self.delta()
        start = self.position
        self._advance(len(literal))
        return Token(TokenType.TEXT, literal, delta, start)

    def sees_literal(self, literal: str) -> bool:
        """Проверяет, начинается ли текст с указанной строки после пробелов."""
        match = _WHITESPACE.match(self.text, self.position)
        start = match.end() if match else self.position
        return self.text.startswith(literal, start)

    def skip_whitespace(self) -> None:
        match = _WHITESPACE.match(self.text, self.position)
        if match:
            self._advance(match.end() - self.position)

    def read_text(self, stops: Iterable[str]) -> Token:
        """
        Читает максимальный фрагмент текста до ближайшего из
        открывающих разделителей или до конца источника.
        """
        end = self.length
        for stop in stops:
            index = self.text.find(stop, self.position)
            if index != -1 and index < end:
                end = index
        delta = self.delta()
        start = self.position
        value = self.text[start:end]
        self._advance(len(value))
        return Token(TokenType.TEXT, value, delta, start)

    def skip_until(self, end: str) -> Optional[Token]:
        """
        Пропускает текст до закрывающего токена включительно.

        Returns:
            Пропущенное содержимое (без закрывающего токена) или None,
            если закрывающий токен не найден
        """
        index = self.text.find(end, self.position)
        if index == -1:
            return None
        delta = self.delta()
        start = self.position
        value = self.text[start:index]
        self._advance(len(value) + len(end))
        return Token(TokenType.TEXT, value, delta, start)

    # ---- Режим выражений ----

    def peek(self) -> Token:
        """Возвращает следующий токен выражения без продвижения позиции."""
        if self._lookahead is None:
            start = self._save()
            token = self._scan_token()
            end = self._save()
            self._restore(start)
            self._lookahead = (token, end)
        return self._lookahead[0]

    def advance(self) -> Token:
        """Потребляет следующий токен выражения и возвращает его."""
        token = self.peek()
        assert self._lookahead is not None
        self._restore(self._lookahead[1])
        self._lookahead = None
        return token

    def _scan_token(self) -> Token:
        """Читает токен выражения, пропуская пробельные символы."""
        self.skip_whitespace()
        delta = self.delta()
        start = self.position
        if self.at_end():
            return Token(TokenType.EOF, "", delta, start)

        char = self.text[self.position]

        if "0" <= char <= "9":
            return self._scan_number(delta)

        if char == '"':
            return self._scan_string(delta)

        for token_type, style in ((TokenType.IDENTIFIER, VARIABLE_STYLE), (TokenType.OPERATOR, OPERATOR_STYLE)):
            match = style.pattern.match(self.text, self.position)
            if match:
                value = match.group(0)
                self._advance(len(value))
                return Token(token_type, value, delta, start)

        token_type = _PUNCTUATION.get(char, TokenType.UNKNOWN)
        self._advance(1)
        return Token(token_type, char, delta, start)

    def _scan_number(self, delta: Delta) -> Token:
        start = self.position
        match = _NUMBER.match(self.text, self.position)
        assert match is not None
        tail = _NUMBER_TAIL.match(self.text, match.end())
        if tail:
            lexeme = self.text[start:tail.end()]
            raise LexerError(f"Malformed number literal '{lexeme}'", delta)
        value = match.group(0)
        self._advance(len(value))
        return Token(TokenType.NUMBER, value, delta, start)

    def _scan_string(self, delta: Delta) -> Token:
        """Читает строковый литерал в двойных кавычках с экранированием."""
        start = self.position
        pos = start + 1
        chars = []
        while True:
            if pos >= self.length or self.text[pos] == "\n":
                raise LexerError("Unterminated string literal", delta)
            char = self.text[pos]
            if char == '"':
                pos += 1
                break
            if char != "\\":
                chars.append(char)
                pos += 1
                continue

            escape = self.text[pos + 1:pos + 2]
            if escape in _SIMPLE_ESCAPES:
                chars.append(_SIMPLE_ESCAPES[escape])
                pos += 2
            elif escape in ("x", "u"):
                width = 2 if escape == "x" else 4
                digits = self.text[pos + 2:pos + 2 + width]
                if len(digits) != width or any(d not in "0123456789abcdefABCDEF" for d in digits):
                    raise LexerError(f"Invalid escape sequence '\\{escape}{digits}'", delta)
                chars.append(chr(int(digits, 16)))
                pos += 2 + width
            else:
                raise LexerError(f"Invalid escape sequence '\\{escape}'", delta)

        self._advance(pos - self.position)
        return Token(TokenType.STRING, "".join(chars), delta, start)


def tokenize_expression(text: str, name: str = "<expression>") -> List[Token]:
    """
    Удобная функция для токенизации отдельного выражения.

    Args:
        text: Исходный текст выражения

    Returns:
        Список токенов, включая EOF в конце

    Raises:
        LexerError: При некорректном литерале
    """
    lexer = TemplateLexer(text, name)
    tokens: List[Token] = []
    while True:
        token = lexer.advance()
        tokens.append(token)
        if token.type == TokenType.EOF:
            break
    logger.debug(f"Tokenized expression into {len(tokens)} tokens")
    return tokens


__all__ = ["TemplateLexer", "number_value", "tokenize_expression"]
