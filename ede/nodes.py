"""
AST-узлы шаблонов и конструкторы составных узлов.

Все узлы неизменяемы и несут позицию (Delta) своего первого токена.
Позиция исключена из сравнения: два дерева, отличающиеся только
расположением в исходнике, равны.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Optional, Sequence, Tuple, Union

from .tokens import Delta, synthetic_delta


# ---- Идентификаторы и переменные ----

@dataclass(frozen=True)
class Identifier:
    """Имя с позицией. Равенство учитывает только имя."""
    delta: Delta = field(compare=False, repr=False)
    name: str


@dataclass(frozen=True)
class Variable:
    """
    Путь доступа через точку: a.b.c

    Всегда содержит хотя бы один идентификатор.
    """
    names: Tuple[Identifier, ...]

    def __post_init__(self):
        if not self.names:
            raise ValueError("Variable must contain at least one identifier")

    @property
    def delta(self) -> Delta:
        return self.names[0].delta

    @property
    def path(self) -> str:
        return ".".join(ident.name for ident in self.names)

    def __str__(self) -> str:
        return self.path


# ---- Литералы ----

@dataclass(frozen=True)
class BoolLiteral:
    value: bool


@dataclass(frozen=True)
class NumberLiteral:
    value: Decimal


@dataclass(frozen=True)
class TextLiteral:
    value: str


Literal = Union[BoolLiteral, NumberLiteral, TextLiteral]


# ---- Образцы для case/when ----

@dataclass(frozen=True)
class WildcardPattern:
    """Образец _: совпадает с любым значением."""
    pass


@dataclass(frozen=True)
class VariablePattern:
    variable: Variable


@dataclass(frozen=True)
class LiteralPattern:
    literal: Literal


Pattern = Union[WildcardPattern, VariablePattern, LiteralPattern]


# ---- Выражения ----

@dataclass(frozen=True)
class TemplateNode:
    """Базовый класс для всех узлов AST шаблона."""
    delta: Delta = field(compare=False, repr=False)


@dataclass(frozen=True)
class LiteralNode(TemplateNode):
    """Литеральное значение: true, 42, "text"."""
    literal: Literal


@dataclass(frozen=True)
class VariableNode(TemplateNode):
    """Ссылка на переменную контекста."""
    variable: Variable


@dataclass(frozen=True)
class FunctionNode(TemplateNode):
    """
    Ссылка на функцию по имени.

    Операторы и фильтры представлены функциями с именем оператора
    ("+", "||") или фильтра ("upper"): смысл им придаёт вычислитель.
    """
    name: Identifier


@dataclass(frozen=True)
class ApplyNode(TemplateNode):
    """
    Применение функции к одному аргументу.

    Вызовы с несколькими аргументами каррированы: f(a, b) = Apply(Apply(f, a), b).
    """
    function: TemplateNode
    argument: TemplateNode


# Альтернатива case: (образец, тело)
Alternative = Tuple[Pattern, TemplateNode]


@dataclass(frozen=True)
class CaseNode(TemplateNode):
    """
    Сопоставление с образцом.

    Альтернативы проверяются по порядку, побеждает первая совпавшая.
    Завершающая альтернатива с WildcardPattern кодирует ветку else.
    """
    scrutinee: TemplateNode
    alternatives: Tuple[Alternative, ...]


@dataclass(frozen=True)
class LoopNode(TemplateNode):
    """
    Цикл {% for item in source %}...{% else %}...{% endfor %}.

    Имя item видно только внутри body. Ветка else вычисляется,
    когда источник пуст.
    """
    binding: Identifier
    source: VariableNode
    body: TemplateNode
    else_body: Optional[TemplateNode] = None


@dataclass(frozen=True)
class LetNode(TemplateNode):
    """Привязка {% let name = value %}...{% endlet %}; имя видно только в body."""
    binding: Identifier
    value: TemplateNode
    body: TemplateNode


@dataclass(frozen=True)
class IncludeNode(TemplateNode):
    """Включение {% include "key" with expr %}; контекст необязателен."""
    key: str
    context: Optional[TemplateNode] = None


@dataclass(frozen=True)
class TextNode(TemplateNode):
    """
    Обычный текстовый контент в шаблоне.

    Выводится в результат как есть.
    """
    text: str


@dataclass(frozen=True)
class BuildNode(TemplateNode):
    """
    Последовательность соседних выражений, результаты которых склеиваются.

    Пустая последовательность — нейтральный элемент.
    """
    parts: Tuple[TemplateNode, ...] = ()


# ---- Конструкторы составных узлов ----

def var(ident: Identifier) -> Variable:
    """Переменная из одного идентификатора."""
    return Variable((ident,))


def evar(variable: Variable) -> VariableNode:
    return VariableNode(variable.delta, variable)


def efun(delta: Delta, name: str, argument: TemplateNode) -> ApplyNode:
    """Применение именованной функции к аргументу; все узлы получают одну позицию."""
    return ApplyNode(delta, FunctionNode(delta, Identifier(delta, name)), argument)


def eapp(function: TemplateNode, arguments: Iterable[TemplateNode]) -> TemplateNode:
    """Каррированное применение функции к списку аргументов (левая свёртка)."""
    result = function
    for argument in arguments:
        result = ApplyNode(result.delta, result, argument)
    return result


def empty_build() -> BuildNode:
    """Нейтральный узел для неявных веток без исходного текста."""
    return BuildNode(synthetic_delta("<build>"))


def ebuild(delta: Delta, parts: Sequence[TemplateNode]) -> TemplateNode:
    """
    Склеивает соседние узлы документа.

    Ноль узлов дают пустой BuildNode, один узел возвращается как есть.
    """
    if not parts:
        return BuildNode(delta)
    if len(parts) == 1:
        return parts[0]
    return BuildNode(delta, tuple(parts))


def alt(pattern: Pattern, body: TemplateNode) -> Alternative:
    return pattern, body


def wild(body: TemplateNode) -> Alternative:
    return alt(WildcardPattern(), body)


def true_alt(body: TemplateNode) -> Alternative:
    return alt(LiteralPattern(BoolLiteral(True)), body)


def false_alt(body: TemplateNode) -> Alternative:
    return alt(LiteralPattern(BoolLiteral(False)), body)


def ecase(scrutinee: TemplateNode,
          alternatives: Sequence[Alternative],
          default: Optional[TemplateNode]) -> CaseNode:
    """
    Узел case с необязательной веткой по умолчанию.

    Без default неявная альтернатива не добавляется: неполное
    сопоставление обрабатывает вычислитель.
    """
    alts = list(alternatives)
    if default is not None:
        alts.append(wild(default))
    return CaseNode(scrutinee.delta, scrutinee, tuple(alts))


def eif(branches: Sequence[Tuple[TemplateNode, TemplateNode]],
        default: Optional[TemplateNode]) -> TemplateNode:
    """
    Раскрывает цепочку if/elif/else во вложенные узлы case по {true, false}.

    Свёртка справа: последняя ветка else (или пустой узел) становится
    самым внутренним запасным вариантом.
    """
    result = default if default is not None else empty_build()
    for condition, body in reversed(branches):
        result = CaseNode(condition.delta, condition, (true_alt(body), false_alt(result)))
    return result


__all__ = [
    "Identifier",
    "Variable",
    "BoolLiteral",
    "NumberLiteral",
    "TextLiteral",
    "Literal",
    "WildcardPattern",
    "VariablePattern",
    "LiteralPattern",
    "Pattern",
    "Alternative",
    "TemplateNode",
    "LiteralNode",
    "VariableNode",
    "FunctionNode",
    "ApplyNode",
    "CaseNode",
    "LoopNode",
    "LetNode",
    "IncludeNode",
    "TextNode",
    "BuildNode",
    "var",
    "evar",
    "efun",
    "eapp",
    "empty_build",
    "ebuild",
    "alt",
    "wild",
    "true_alt",
    "false_alt",
    "ecase",
    "eif",
]
