"""
Парсер шаблонов с рекурсивным спуском.

Строит абстрактное синтаксическое дерево (AST) из исходного текста шаблона
и собирает карту включений: ключ шаблона → позиции всех {% include %}.

Грамматика документа:
document   → (render | comment | pragma | block | fragment)*
render     → INLINE_START expression INLINE_END
block      → if | case | for | let | include
if         → {% if expression %} document ({% elif expression %} document)* else? {% endif %}
case       → {% case expression %} ({% when pattern %} document)* else? {% endcase %}
for        → {% for IDENT in variable %} document else? {% endfor %}
let        → {% let IDENT = expression %} document {% endlet %}
include    → {% include STRING (with expression)? %}
else       → {% else %} document

Выражения разбираются подъёмом по приоритетам (от слабого к сильному):
"|" (фильтр), "||", "&&", сравнения, "+ -", "* /", префиксный "!".
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Callable, Dict, List, Mapping, Optional, Tuple, Union

from .lexer import TemplateLexer, number_value
from .nodes import (
    Alternative,
    ApplyNode,
    BoolLiteral,
    Identifier,
    IncludeNode,
    LetNode,
    Literal,
    LiteralNode,
    LiteralPattern,
    LoopNode,
    NumberLiteral,
    Pattern,
    TemplateNode,
    TextLiteral,
    TextNode,
    Variable,
    VariablePattern,
    WildcardPattern,
    alt,
    ebuild,
    ecase,
    efun,
    eif,
    evar,
)
from .styles import KEYWORDS, OPERATORS, PRAGMA_FIELDS, PRAGMA_STYLE, VARIABLE_STYLE
from .syntax import DEFAULT_SYNTAX, Syntax
from .tokens import (
    Delta,
    LexerError,
    ParserError,
    ReservedWordError,
    TemplateSyntaxError,
    Token,
    TokenType,
)

logger = logging.getLogger(__name__)

# Карта включений: ключ шаблона → непустой список позиций в порядке исходника
Includes = Mapping[str, Tuple[Delta, ...]]

# Ключевые слова, открывающие блочные конструкции
CONSTRUCT_KEYWORDS = frozenset({"if", "case", "for", "let", "include"})

# Ключевые слова, завершающие тело блока
TERMINATOR_KEYWORDS = frozenset({"elif", "else", "when", "endif", "endcase", "endfor", "endlet"})


class Associativity(enum.Enum):
    LEFT = "left"
    RIGHT = "right"


class OperatorKind(enum.Enum):
    INFIX = "infix"      # l op r → op(l)(r)
    FILTER = "filter"    # l | f  → f(l)


@dataclass(frozen=True)
class OperatorSpec:
    """Строка таблицы операторов для подъёма по приоритетам."""
    symbol: str
    precedence: int      # Чем больше, тем сильнее связывание
    associativity: Associativity = Associativity.LEFT
    kind: OperatorKind = OperatorKind.INFIX


_OPERATOR_TABLE = [
    OperatorSpec("|", 1, kind=OperatorKind.FILTER),
    OperatorSpec("||", 2),
    OperatorSpec("&&", 3),
    OperatorSpec("==", 4),
    OperatorSpec("!=", 4),
    OperatorSpec(">", 4),
    OperatorSpec(">=", 4),
    OperatorSpec("<", 4),
    OperatorSpec("<=", 4),
    OperatorSpec("-", 5),
    OperatorSpec("+", 5),
    OperatorSpec("*", 6),
    OperatorSpec("/", 6),
]

BINARY_OPERATORS: Dict[str, OperatorSpec] = {spec.symbol: spec for spec in _OPERATOR_TABLE}

# Префиксные операторы связывают сильнее любого бинарного
PREFIX_OPERATORS: Dict[str, int] = {"!": 7}


@dataclass(frozen=True)
class ParseResult:
    """Успешный результат разбора: корень AST и карта включений."""
    root: TemplateNode
    includes: Includes

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class ParseFailure:
    """Неуспешный результат разбора: единственная диагностика, без AST."""
    error: TemplateSyntaxError

    @property
    def ok(self) -> bool:
        return False

    @property
    def delta(self) -> Delta:
        return self.error.delta

    @property
    def message(self) -> str:
        return self.error.message


def _describe(token: Token) -> str:
    if token.type == TokenType.EOF:
        return "end of input"
    return f"'{token.value}'"


def _decode(source: Union[str, bytes], name: str) -> str:
    if isinstance(source, str):
        return source
    try:
        return source.decode("utf-8")
    except UnicodeDecodeError as e:
        head = source[:e.start]
        line = head.count(b"\n") + 1
        column = e.start - (head.rfind(b"\n") + 1) + 1
        raise LexerError("Source is not valid UTF-8", Delta(name, line, column, e.start)) from e


class TemplateParser:
    """
    Парсер шаблонов с рекурсивным спуском.

    Один экземпляр — один разбор: карта включений и активный синтаксис
    (который может поменять директива {! ... !}) живут только в нём.

    Глубина вложенности (блоки, скобки, префиксные операторы) ограничена
    max_depth: слишком глубокий шаблон даёт ParserError, а не переполнение стека.
    Таблицу бинарных операторов можно заменить в подклассе.
    """

    max_depth = 100
    binary_operators: Mapping[str, OperatorSpec] = BINARY_OPERATORS

    def __init__(self, source: Union[str, bytes], name: str = "<template>",
                 syntax: Syntax = DEFAULT_SYNTAX):
        self.name = name
        self.syntax = syntax
        self.lexer = TemplateLexer(_decode(source, name), name)
        self._includes: Dict[str, List[Delta]] = {}
        # Закрывающий токен текущей области ({{ ... }}, {% ... %}, {! ... !})
        self._region_end: Optional[str] = None
        self._depth = 0

        self._block_parsers: Dict[str, Callable[[], TemplateNode]] = {
            "if": self._parse_if,
            "case": self._parse_case,
            "for": self._parse_for,
            "let": self._parse_let,
            "include": self._parse_include,
        }

    def parse(self) -> ParseResult:
        """
        Разбирает весь источник.

        Returns:
            Корень AST и карта включений

        Raises:
            TemplateSyntaxError: При первой лексической или синтаксической ошибке
        """
        root = self._parse_document()

        if not self.lexer.at_end():
            # Документ верхнего уровня остановился на завершающем ключевом слове
            keyword = self._peek_block_keyword()
            raise ParserError(
                f"Unexpected {self._block_text(keyword)} without a matching opening block",
                self.lexer.delta(),
            )

        includes = MappingProxyType({key: tuple(deltas) for key, deltas in self._includes.items()})
        logger.debug(f"Parsed template '{self.name}' with {len(includes)} include keys")
        return ParseResult(root, includes)

    # ---- Документ ----

    def _parse_document(self) -> TemplateNode:
        """
        Парсит последовательность конструкций до конца источника
        или до завершающего ключевого слова объемлющего блока.
        """
        start = self.lexer.delta()
        parts: List[TemplateNode] = []

        self._enter_nested()
        try:
            self._parse_parts(parts)
        finally:
            self._leave_nested()

        return ebuild(start, parts)

    def _parse_parts(self, parts: List[TemplateNode]) -> None:
        while not self.lexer.at_end():
            kind = self._start_kind()

            if kind is None:
                token = self.lexer.read_text(self.syntax.starts().values())
                self._append_text(parts, token)
            elif kind == "inline":
                parts.append(self._parse_render())
            elif kind == "comment":
                self._skip_comment()
            elif kind == "pragma":
                self._parse_pragma()
            else:
                keyword = self._peek_block_keyword()
                if keyword in CONSTRUCT_KEYWORDS:
                    parts.append(self._block_parsers[keyword]())
                elif keyword in TERMINATOR_KEYWORDS:
                    return
                elif keyword is None:
                    raise ParserError(f"Expected block keyword after '{self.syntax.block[0]}'", self.lexer.delta())
                else:
                    raise ParserError(f"Unknown block keyword '{keyword}'", self.lexer.delta())

    def _append_text(self, parts: List[TemplateNode], token: Token) -> None:
        # Объединяем с предыдущим TextNode, если между ними был только комментарий
        if parts and isinstance(parts[-1], TextNode):
            previous = parts[-1]
            parts[-1] = TextNode(previous.delta, previous.text + token.value)
        else:
            parts.append(TextNode(token.delta, token.value))

    def _start_kind(self) -> Optional[str]:
        """Определяет вид разделителя, открывающегося в текущей позиции."""
        for kind, start in self.syntax.starts().items():
            if self.lexer.starts_with(start):
                return kind
        return None

    def _enter_nested(self) -> None:
        self._depth += 1
        if self._depth > self.max_depth:
            self._depth -= 1
            raise ParserError(f"Template nested too deeply (limit {self.max_depth})", self.lexer.delta())

    def _leave_nested(self) -> None:
        self._depth -= 1

    def _parse_render(self) -> TemplateNode:
        start, end = self.syntax.inline
        self.lexer.consume_literal(start)
        self._region_end = end
        expression = self._parse_expression()
        self._close_region()
        return expression

    def _skip_comment(self) -> None:
        delta = self.lexer.delta()
        start, end = self.syntax.comment
        self.lexer.consume_literal(start)
        if self.lexer.skip_until(end) is None:
            raise ParserError(f"Unterminated comment: expected '{end}'", delta)

    def _parse_pragma(self) -> None:
        """
        Парсит директиву {! field = ("start", "end"), ... !}.

        Новые разделители действуют до конца разбора.
        """
        delta = self.lexer.delta()
        start, end = self.syntax.pragma
        self.lexer.consume_literal(start)
        self._region_end = end

        changes: Dict[str, Tuple[str, str]] = {}
        while True:
            token = self.lexer.peek()
            if token.type != TokenType.IDENTIFIER or self._at_region_end():
                raise ParserError(f"Expected pragma field, got {_describe(token)}", token.delta)
            if not PRAGMA_STYLE.is_reserved(token.value):
                raise ParserError(
                    f"Unknown pragma field '{token.value}'. Expected one of: {', '.join(sorted(PRAGMA_FIELDS))}",
                    token.delta,
                )
            self.lexer.advance()
            self._expect_operator("=")
            self._expect(TokenType.LPAREN, "'('")
            opening = self._expect(TokenType.STRING, "delimiter string").value
            self._expect(TokenType.COMMA, "','")
            closing = self._expect(TokenType.STRING, "delimiter string").value
            self._expect(TokenType.RPAREN, "')'")
            changes[token.value] = (opening, closing)

            if self._at_region_end():
                break
            self._expect(TokenType.COMMA, "','")

        self._close_region()
        try:
            self.syntax = self.syntax.with_delimiters(**changes)
        except ValueError as e:
            raise ParserError(f"Invalid pragma: {e}", delta) from e
        logger.debug(f"Pragma at {delta} switched delimiters: {changes}")

    # ---- Блоки ----

    def _peek_block_keyword(self) -> Optional[str]:
        """
        Возвращает ключевое слово блока в текущей позиции без потребления.

        Ограниченный просмотр вперёд: разделитель и одна лексема.
        """
        state = self.lexer.mark()
        try:
            if self.lexer.consume_literal(self.syntax.block[0]) is None:
                return None
            token = self.lexer.peek()
            return token.value if token.type == TokenType.IDENTIFIER else None
        except LexerError:
            return None
        finally:
            self.lexer.reset(state)

    def _at_block(self, keyword: str) -> bool:
        return self._start_kind() == "block" and self._peek_block_keyword() == keyword

    def _open_block(self, keyword: str) -> Delta:
        """Потребляет открывающий разделитель блока и ключевое слово."""
        delta = self.lexer.delta()
        self.lexer.consume_literal(self.syntax.block[0])
        token = self.lexer.advance()
        assert token.value == keyword
        self._region_end = self.syntax.block[1]
        logger.debug(f"Opened block '{keyword}' at {delta}")
        return delta

    def _close_region(self) -> None:
        end = self._region_end
        assert end is not None
        self.lexer.skip_whitespace()
        if self.lexer.consume_literal(end) is None:
            token = self.lexer.peek()
            raise ParserError(f"Expected '{end}', got {_describe(token)}", token.delta)
        self._region_end = None

    def _block_text(self, keyword: Optional[str]) -> str:
        start, end = self.syntax.block
        return f"'{start} {keyword or ''} {end}'"

    def _expect_terminator(self, keyword: str, construct: str, opener: Delta) -> None:
        """Потребляет завершающий блок или сообщает о незакрытой конструкции."""
        if self._at_block(keyword):
            self._open_block(keyword)
            self._close_region()
            return

        if self.lexer.at_end():
            found = "end of input"
        else:
            found = self._block_text(self._peek_block_keyword())
        raise ParserError(
            f"Unterminated '{construct}' block opened at {opener}: "
            f"expected {self._block_text(keyword)}, found {found}",
            self.lexer.delta(),
        )

    def _parse_else(self) -> Optional[TemplateNode]:
        if not self._at_block("else"):
            return None
        self._open_block("else")
        self._close_region()
        return self._parse_document()

    def _parse_if(self) -> TemplateNode:
        """Парсит {% if %}...{% elif %}...{% else %}...{% endif %} в цепочку case."""
        opener = self._open_block("if")
        condition = self._parse_expression()
        self._close_region()
        branches = [(condition, self._parse_document())]

        while self._at_block("elif"):
            self._open_block("elif")
            condition = self._parse_expression()
            self._close_region()
            branches.append((condition, self._parse_document()))

        default = self._parse_else()
        self._expect_terminator("endif", "if", opener)
        return eif(branches, default)

    def _parse_case(self) -> TemplateNode:
        """Парсит {% case %}{% when pattern %}...{% else %}...{% endcase %}."""
        opener = self._open_block("case")
        scrutinee = self._parse_expression()
        self._close_region()
        self._skip_blank()

        alternatives: List[Alternative] = []
        while self._at_block("when"):
            self._open_block("when")
            pattern = self._parse_pattern()
            self._close_region()
            alternatives.append(alt(pattern, self._parse_document()))

        default = self._parse_else()
        self._expect_terminator("endcase", "case", opener)
        return ecase(scrutinee, alternatives, default)

    def _skip_blank(self) -> None:
        """Пропускает пробельный текст и комментарии между case и первым when."""
        while not self.lexer.at_end():
            kind = self._start_kind()
            if kind == "comment":
                self._skip_comment()
            elif kind is None:
                token = self.lexer.read_text(self.syntax.starts().values())
                if token.value.strip():
                    raise ParserError(
                        f"Unexpected text after 'case', expected {self._block_text('when')}",
                        token.delta,
                    )
            else:
                return

    def _parse_for(self) -> TemplateNode:
        """Парсит {% for item in source %}...{% else %}...{% endfor %}."""
        opener = self._open_block("for")
        binding = self._parse_identifier()
        self._expect_keyword("in")
        source = evar(self._parse_variable())
        self._close_region()

        body = self._parse_document()
        else_body = self._parse_else()
        self._expect_terminator("endfor", "for", opener)
        return LoopNode(opener, binding, source, body, else_body)

    def _parse_let(self) -> TemplateNode:
        """Парсит {% let name = expression %}...{% endlet %}."""
        opener = self._open_block("let")
        binding = self._parse_identifier()

        # Одиночный "=" сравнивается напрямую: "=-1" не должен стать оператором
        self.lexer.skip_whitespace()
        if self.lexer.starts_with("==") or self.lexer.consume_literal("=") is None:
            token = self.lexer.peek()
            raise ParserError(f"Expected '=' after '{binding.name}', got {_describe(token)}", token.delta)

        value = self._parse_expression()
        self._close_region()

        body = self._parse_document()
        self._expect_terminator("endlet", "let", opener)
        return LetNode(opener, binding, value, body)

    def _parse_include(self) -> TemplateNode:
        """
        Парсит {% include "key" with expression %}.

        Каждое синтаксическое вхождение регистрируется в карте включений.
        """
        opener = self._open_block("include")
        token = self.lexer.peek()
        if token.type != TokenType.STRING or self._at_region_end():
            raise ParserError(f"Expected template key string after 'include', got {_describe(token)}", token.delta)
        self.lexer.advance()

        key = token.value
        self._includes.setdefault(key, []).append(opener)
        logger.debug(f"Registered include '{key}' at {opener}")

        context: Optional[TemplateNode] = None
        if not self._at_region_end() and self._peek_is_keyword("with"):
            self.lexer.advance()
            context = self._parse_expression()

        self._close_region()
        return IncludeNode(opener, key, context)

    # ---- Выражения ----

    def _parse_expression(self, min_precedence: int = 1) -> TemplateNode:
        """Подъём по приоритетам по таблице binary_operators."""
        left = self._parse_unary()

        while not self._at_region_end():
            token = self.lexer.peek()
            if token.type != TokenType.OPERATOR:
                break

            spec = self.binary_operators.get(token.value)
            if spec is None:
                if token.value in OPERATORS:
                    raise ParserError(f"Operator '{token.value}' cannot be used as an infix operator", token.delta)
                raise ParserError(f"Unknown operator '{token.value}'", token.delta)
            if spec.precedence < min_precedence:
                break

            self.lexer.advance()

            if spec.kind == OperatorKind.FILTER:
                left = efun(token.delta, self._parse_filter_name(token, spec), left)
                continue

            if spec.associativity == Associativity.LEFT:
                next_precedence = spec.precedence + 1
            else:
                next_precedence = spec.precedence
            right = self._parse_expression(next_precedence)
            left = ApplyNode(token.delta, efun(token.delta, spec.symbol, left), right)

        return left

    def _parse_filter_name(self, operator: Token, spec: OperatorSpec) -> str:
        """Правая часть фильтра: только голый идентификатор."""
        token = self.lexer.peek()
        if self._at_region_end() or token.type != TokenType.IDENTIFIER:
            raise ParserError(f"Expected filter name after '{operator.value}', got {_describe(token)}", token.delta)
        if VARIABLE_STYLE.is_reserved(token.value):
            raise ReservedWordError(token.value, token.delta)
        self.lexer.advance()

        if not self._at_region_end():
            following = self.lexer.peek()
            binds_tighter = (
                following.type == TokenType.OPERATOR
                and following.value in self.binary_operators
                and self.binary_operators[following.value].precedence > spec.precedence
            )
            if following.type in (TokenType.DOT, TokenType.LPAREN) or binds_tighter:
                raise ParserError(
                    f"Filter '{token.value}' must be a bare identifier, got {_describe(following)} after it",
                    following.delta,
                )
        return token.value

    def _parse_unary(self) -> TemplateNode:
        if not self._at_region_end():
            token = self.lexer.peek()
            if token.type == TokenType.OPERATOR and token.value in PREFIX_OPERATORS:
                self.lexer.advance()
                self._enter_nested()
                try:
                    operand = self._parse_unary()
                finally:
                    self._leave_nested()
                return efun(token.delta, token.value, operand)
        return self._parse_atom()

    def _parse_atom(self) -> TemplateNode:
        """Атом: выражение в скобках, переменная или литерал."""
        if self._at_region_end():
            raise ParserError("Expected expression", self.lexer.delta())
        token = self.lexer.peek()

        if token.type == TokenType.LPAREN:
            self.lexer.advance()
            self._enter_nested()
            try:
                expression = self._parse_expression()
            finally:
                self._leave_nested()
            self._expect(TokenType.RPAREN, "')'")
            return expression

        literal = self._parse_literal()
        if literal is not None:
            delta, value = literal
            return LiteralNode(delta, value)

        if token.type == TokenType.IDENTIFIER:
            return evar(self._parse_variable())

        raise ParserError(f"Expected expression, got {_describe(token)}", token.delta)

    def _parse_literal(self) -> Optional[Tuple[Delta, Literal]]:
        """
        Парсит литерал, если он начинается в текущей позиции.

        Returns:
            (позиция, литерал) или None, если здесь не литерал
        """
        token = self.lexer.peek()

        if token.type == TokenType.IDENTIFIER and token.value in ("true", "false"):
            self.lexer.advance()
            return token.delta, BoolLiteral(token.value == "true")

        if token.type == TokenType.NUMBER:
            self.lexer.advance()
            return token.delta, NumberLiteral(number_value(token.value))

        if token.type == TokenType.STRING:
            self.lexer.advance()
            return token.delta, TextLiteral(token.value)

        # Знак, записанный вплотную к числу: -1, +2.5
        if (
            token.type == TokenType.OPERATOR
            and token.value in ("-", "+")
            and "0" <= self.lexer.char_at(token.position + 1) <= "9"
        ):
            self.lexer.advance()
            number = self.lexer.advance()
            value = number_value(number.value)
            return token.delta, NumberLiteral(-value if token.value == "-" else value)

        return None

    def _parse_pattern(self) -> Pattern:
        """Образец для when: _, переменная или литерал."""
        if self._at_region_end():
            raise ParserError("Expected pattern", self.lexer.delta())
        token = self.lexer.peek()

        if token.type == TokenType.IDENTIFIER and token.value == "_":
            self.lexer.advance()
            return WildcardPattern()

        literal = self._parse_literal()
        if literal is not None:
            return LiteralPattern(literal[1])

        if token.type == TokenType.IDENTIFIER:
            return VariablePattern(self._parse_variable())

        raise ParserError(f"Expected pattern, got {_describe(token)}", token.delta)

    def _parse_variable(self) -> Variable:
        """Путь через точку: a.b.c"""
        names = [self._parse_identifier()]
        while not self._at_region_end() and self.lexer.peek().type == TokenType.DOT:
            self.lexer.advance()
            names.append(self._parse_identifier())
        return Variable(tuple(names))

    def _parse_identifier(self) -> Identifier:
        token = self.lexer.peek()
        if token.type != TokenType.IDENTIFIER or self._at_region_end():
            raise ParserError(f"Expected identifier, got {_describe(token)}", token.delta)
        if VARIABLE_STYLE.is_reserved(token.value):
            raise ReservedWordError(token.value, token.delta)
        self.lexer.advance()
        return Identifier(token.delta, token.value)

    # ---- Вспомогательные методы для работы с токенами ----

    def _at_region_end(self) -> bool:
        """Проверяет, стоит ли курсор перед закрывающим токеном области."""
        return self._region_end is not None and self.lexer.sees_literal(self._region_end)

    def _peek_is_keyword(self, keyword: str) -> bool:
        assert keyword in KEYWORDS
        token = self.lexer.peek()
        return token.type == TokenType.IDENTIFIER and token.value == keyword

    def _expect_keyword(self, keyword: str) -> Token:
        token = self.lexer.peek()
        if self._at_region_end() or not self._peek_is_keyword(keyword):
            raise ParserError(f"Expected '{keyword}', got {_describe(token)}", token.delta)
        return self.lexer.advance()

    def _expect_operator(self, symbol: str) -> Token:
        token = self.lexer.peek()
        if token.type != TokenType.OPERATOR or token.value != symbol:
            raise ParserError(f"Expected '{symbol}', got {_describe(token)}", token.delta)
        return self.lexer.advance()

    def _expect(self, token_type: TokenType, expected: str) -> Token:
        token = self.lexer.peek()
        if token.type != token_type:
            raise ParserError(f"Expected {expected}, got {_describe(token)}", token.delta)
        return self.lexer.advance()


def parse_template(source: Union[str, bytes], name: str = "<template>",
                   syntax: Syntax = DEFAULT_SYNTAX) -> ParseResult:
    """
    Удобная функция для разбора шаблона.

    Args:
        source: Исходный текст шаблона (str или байты UTF-8)
        name: Имя источника для диагностики
        syntax: Набор разделителей

    Returns:
        Корень AST и карта включений

    Raises:
        TemplateSyntaxError: При ошибке разбора
    """
    return TemplateParser(source, name, syntax).parse()


def run_parser(source: Union[str, bytes], name: str = "<template>",
               syntax: Syntax = DEFAULT_SYNTAX) -> Union[ParseResult, ParseFailure]:
    """
    Разбор без исключений: возвращает либо полный результат,
    либо единственную диагностику.
    """
    try:
        return parse_template(source, name, syntax)
    except TemplateSyntaxError as e:
        logger.debug(f"Failed to parse '{name}': {e}")
        return ParseFailure(e)


__all__ = [
    "Includes",
    "CONSTRUCT_KEYWORDS",
    "TERMINATOR_KEYWORDS",
    "Associativity",
    "OperatorKind",
    "OperatorSpec",
    "BINARY_OPERATORS",
    "PREFIX_OPERATORS",
    "ParseResult",
    "ParseFailure",
    "TemplateParser",
    "parse_template",
    "run_parser",
]
