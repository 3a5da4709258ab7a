"""
Схема JSON-отчёта о разборе шаблона для CLI.

Переводит AST и карту включений в словари, пригодные для JSON.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from .nodes import (
    ApplyNode,
    BoolLiteral,
    BuildNode,
    CaseNode,
    FunctionNode,
    IncludeNode,
    LetNode,
    Literal,
    LiteralNode,
    LiteralPattern,
    LoopNode,
    NumberLiteral,
    Pattern,
    TemplateNode,
    TextNode,
    VariableNode,
    VariablePattern,
    WildcardPattern,
)
from .parser import ParseFailure, ParseResult
from .tokens import Delta


class Position(BaseModel):
    name: str
    line: int
    column: int
    offset: int

    @classmethod
    def of(cls, delta: Delta) -> "Position":
        return cls(name=delta.name, line=delta.line, column=delta.column, offset=delta.offset)


class Diagnostic(BaseModel):
    message: str
    position: Position


class ParseReport(BaseModel):
    ok: bool
    name: str
    ast: Optional[Dict[str, Any]] = None
    includes: Dict[str, List[Position]] = Field(default_factory=dict)
    error: Optional[Diagnostic] = None


def literal_to_value(literal: Literal) -> Union[bool, str]:
    # Числа отдаём строкой, чтобы не терять точность Decimal
    if isinstance(literal, NumberLiteral):
        return str(literal.value)
    return literal.value


def pattern_to_dict(pattern: Pattern) -> Dict[str, Any]:
    if isinstance(pattern, WildcardPattern):
        return {"pattern": "wildcard"}
    if isinstance(pattern, VariablePattern):
        return {"pattern": "variable", "path": pattern.variable.path}
    if isinstance(pattern, LiteralPattern):
        return {"pattern": "literal", "value": literal_to_value(pattern.literal)}
    raise TypeError(f"Unsupported pattern: {type(pattern).__name__}")


def node_to_dict(node: TemplateNode) -> Dict[str, Any]:
    """Рекурсивно переводит узел AST в словарь."""
    result: Dict[str, Any]
    if isinstance(node, TextNode):
        result = {"node": "text", "text": node.text}
    elif isinstance(node, LiteralNode):
        kind = "bool" if isinstance(node.literal, BoolLiteral) else (
            "number" if isinstance(node.literal, NumberLiteral) else "text")
        result = {"node": "literal", "type": kind, "value": literal_to_value(node.literal)}
    elif isinstance(node, VariableNode):
        result = {"node": "variable", "path": node.variable.path}
    elif isinstance(node, FunctionNode):
        result = {"node": "function", "name": node.name.name}
    elif isinstance(node, ApplyNode):
        result = {
            "node": "apply",
            "function": node_to_dict(node.function),
            "argument": node_to_dict(node.argument),
        }
    elif isinstance(node, CaseNode):
        result = {
            "node": "case",
            "scrutinee": node_to_dict(node.scrutinee),
            "alternatives": [
                {"pattern": pattern_to_dict(pattern), "body": node_to_dict(body)}
                for pattern, body in node.alternatives
            ],
        }
    elif isinstance(node, LoopNode):
        result = {
            "node": "loop",
            "binding": node.binding.name,
            "source": node.source.variable.path,
            "body": node_to_dict(node.body),
            "else": node_to_dict(node.else_body) if node.else_body is not None else None,
        }
    elif isinstance(node, LetNode):
        result = {
            "node": "let",
            "binding": node.binding.name,
            "value": node_to_dict(node.value),
            "body": node_to_dict(node.body),
        }
    elif isinstance(node, IncludeNode):
        result = {
            "node": "include",
            "key": node.key,
            "with": node_to_dict(node.context) if node.context is not None else None,
        }
    elif isinstance(node, BuildNode):
        result = {"node": "build", "parts": [node_to_dict(part) for part in node.parts]}
    else:
        raise TypeError(f"Unsupported node: {type(node).__name__}")

    if not node.delta.is_synthetic:
        result["line"] = node.delta.line
        result["column"] = node.delta.column
    return result


def build_report(name: str, outcome: Union[ParseResult, ParseFailure]) -> ParseReport:
    """Формирует отчёт по результату run_parser."""
    if isinstance(outcome, ParseFailure):
        return ParseReport(
            ok=False,
            name=name,
            error=Diagnostic(message=outcome.message, position=Position.of(outcome.delta)),
        )
    return ParseReport(
        ok=True,
        name=name,
        ast=node_to_dict(outcome.root),
        includes={key: [Position.of(d) for d in deltas] for key, deltas in outcome.includes.items()},
    )


__all__ = [
    "Position",
    "Diagnostic",
    "ParseReport",
    "node_to_dict",
    "pattern_to_dict",
    "build_report",
]
