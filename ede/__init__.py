"""
Парсер шаблонов: текст с выражениями {{ ... }}, комментариями {# ... #}
и блоками {% ... %} превращается в AST и карту включений.

Вычисление шаблонов и загрузка включаемых файлов находятся вне пакета.
"""

from __future__ import annotations

from .errors import ConfigError, EdeUserError
from .parser import (
    Includes,
    ParseFailure,
    ParseResult,
    TemplateParser,
    parse_template,
    run_parser,
)
from .styles import KEYWORDS, OPERATORS, PRAGMA_FIELDS
from .syntax import ALTERNATE_SYNTAX, DEFAULT_SYNTAX, SYNTAX_PRESETS, Syntax
from .tokens import Delta, LexerError, ParserError, ReservedWordError, TemplateSyntaxError

__all__ = [
    "parse_template",
    "run_parser",
    "TemplateParser",
    "ParseResult",
    "ParseFailure",
    "Includes",
    "Syntax",
    "DEFAULT_SYNTAX",
    "ALTERNATE_SYNTAX",
    "SYNTAX_PRESETS",
    "KEYWORDS",
    "PRAGMA_FIELDS",
    "OPERATORS",
    "Delta",
    "EdeUserError",
    "ConfigError",
    "TemplateSyntaxError",
    "LexerError",
    "ParserError",
    "ReservedWordError",
]
