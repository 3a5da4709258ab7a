"""
Тесты для парсера шаблонов: документ и блочные конструкции.

Проверяет построение AST для текста, вывода выражений, комментариев,
директив, блоков if/case/for/let/include и сбор карты включений.
"""

from decimal import Decimal

import pytest

from ede.nodes import (
    BoolLiteral,
    BuildNode,
    CaseNode,
    IncludeNode,
    LetNode,
    LiteralNode,
    LiteralPattern,
    LoopNode,
    NumberLiteral,
    TextLiteral,
    TextNode,
    VariableNode,
    VariablePattern,
    WildcardPattern,
)
from ede.parser import ParseFailure, ParseResult, TemplateParser, parse_template, run_parser
from ede.syntax import ALTERNATE_SYNTAX
from ede.tokens import LexerError, ParserError, ReservedWordError, TemplateSyntaxError
from tests.conftest import root_of, v

TRUE = LiteralPattern(BoolLiteral(True))
FALSE = LiteralPattern(BoolLiteral(False))


class TestDocument:
    """Тесты документа верхнего уровня."""

    def test_plain_text_round_trip(self):
        """Текст без разделителей возвращается одним узлом без изменений."""
        text = "Hello, world!\n  multiple   spaces } % # !\n"
        root = root_of(text)

        assert isinstance(root, TextNode)
        assert root.text == text

    def test_empty_document(self):
        root = root_of("")
        assert isinstance(root, BuildNode)
        assert root.parts == ()

    def test_render_variable(self):
        root = root_of("Hello {{ user.name }}!")

        assert isinstance(root, BuildNode)
        assert root.parts == (TextNode(None, "Hello "), v("user.name"), TextNode(None, "!"))

    def test_single_render_is_root(self):
        root = root_of("{{x}}")
        assert root == v("x")

    def test_comment_is_dropped_and_text_merged(self):
        root = root_of("a{# note {{ x }} #}b")
        assert root == TextNode(None, "ab")

    def test_positions(self):
        root = parse_template("ab\n  {{ x }}", name="page.ede").root

        assert root.parts[0].delta.line == 1
        assert root.parts[1].delta.name == "page.ede"
        assert root.parts[1].delta.line == 2
        assert root.parts[1].delta.column == 6
        assert root.parts[1].delta.offset == 8

    def test_bytes_source(self):
        root = root_of("Привет {{ x }}".encode("utf-8"))
        assert root.parts[0] == TextNode(None, "Привет ")

    def test_invalid_utf8(self):
        with pytest.raises(LexerError, match="not valid UTF-8") as exc:
            parse_template(b"ok\n\xff")
        assert exc.value.line == 2
        assert exc.value.column == 1

    def test_parser_instance(self):
        result = TemplateParser("{{ x }}", "inline.ede").parse()
        assert isinstance(result, ParseResult)
        assert result.ok
        assert result.root == v("x")


class TestRender:
    """Тесты вывода выражений {{ ... }}."""

    def test_literals(self):
        assert root_of('{{ "text" }}') == LiteralNode(None, TextLiteral("text"))
        assert root_of("{{ 42 }}") == LiteralNode(None, NumberLiteral(Decimal(42)))
        assert root_of("{{ true }}") == LiteralNode(None, BoolLiteral(True))
        assert root_of("{{ false }}") == LiteralNode(None, BoolLiteral(False))

    def test_signed_number(self):
        assert root_of("{{ -1 }}") == LiteralNode(None, NumberLiteral(Decimal(-1)))
        assert root_of("{{ +2.5 }}") == LiteralNode(None, NumberLiteral(Decimal("2.5")))

    def test_unclosed_render(self):
        with pytest.raises(ParserError, match="Expected '}}'"):
            parse_template("{{ x ")

    def test_empty_render(self):
        with pytest.raises(ParserError, match="Expected expression"):
            parse_template("{{ }}")

    def test_reserved_word_rejected(self):
        with pytest.raises(ReservedWordError, match="Reserved keyword 'for'") as exc:
            parse_template("{{ for }}")
        assert exc.value.word == "for"
        assert exc.value.column == 4

    def test_reserved_word_in_path(self):
        with pytest.raises(ReservedWordError):
            parse_template("{{ user.if }}")


class TestComments:

    def test_unterminated_comment(self):
        with pytest.raises(ParserError, match="Unterminated comment") as exc:
            parse_template("text {# never closed")
        assert exc.value.column == 6

    def test_comment_inside_block_body(self):
        root = root_of("{% if x %}a{# c #}b{% endif %}")
        assert root.alternatives[0][1] == TextNode(None, "ab")


class TestIf:
    """Тесты раскрытия if/elif/else в case."""

    def test_if_else(self):
        root = root_of("{% if x %}A{% else %}B{% endif %}")

        assert isinstance(root, CaseNode)
        assert root.scrutinee == v("x")
        assert root.alternatives == ((TRUE, TextNode(None, "A")), (FALSE, TextNode(None, "B")))

    def test_if_without_else(self):
        root = root_of("{% if x %}A{% endif %}")
        assert root.alternatives[1] == (FALSE, BuildNode(None))

    def test_elif_chain(self):
        root = root_of("{% if a %}A{% elif b %}B{% elif c %}C{% else %}D{% endif %}")

        inner_c = CaseNode(None, v("c"), ((TRUE, TextNode(None, "C")), (FALSE, TextNode(None, "D"))))
        inner_b = CaseNode(None, v("b"), ((TRUE, TextNode(None, "B")), (FALSE, inner_c)))
        assert root == CaseNode(None, v("a"), ((TRUE, TextNode(None, "A")), (FALSE, inner_b)))

    def test_if_equals_case(self):
        """if/else и case по true/false дают одно и то же дерево."""
        via_if = root_of("{% if x %}A{% else %}B{% endif %}")
        via_case = root_of("{% case x %}{% when true %}A{% when false %}B{% endcase %}")
        assert via_if == via_case

    def test_nested_if(self):
        root = root_of("{% if a %}{% if b %}AB{% endif %}{% endif %}")
        inner = root.alternatives[0][1]
        assert isinstance(inner, CaseNode)
        assert inner.scrutinee == v("b")

    def test_unterminated_if(self):
        outcome = run_parser("{% if x %}A")

        assert isinstance(outcome, ParseFailure)
        assert not outcome.ok
        assert "Unterminated 'if' block" in outcome.message
        assert "end of input" in outcome.message
        assert outcome.delta.offset >= 3

    def test_mismatched_terminator(self):
        with pytest.raises(ParserError, match=r"expected '\{% endif %\}', found '\{% endfor %\}'"):
            parse_template("{% if x %}A{% endfor %}")

    def test_stray_terminator(self):
        with pytest.raises(ParserError, match="without a matching opening block"):
            parse_template("text{% endif %}")

    def test_unknown_block_keyword(self):
        with pytest.raises(ParserError, match="Unknown block keyword 'while'"):
            parse_template("{% while x %}")

    def test_missing_block_keyword(self):
        with pytest.raises(ParserError, match="Expected block keyword"):
            parse_template("{% 42 %}")


class TestCase:

    def test_case_with_patterns(self):
        root = root_of(
            '{% case kind %}\n'
            '  {% when "a" %}A'
            '{% when 1 %}one'
            '{% when other.value %}V'
            '{% when _ %}W'
            '{% else %}E'
            '{% endcase %}'
        )

        assert root.scrutinee == v("kind")
        patterns = [pattern for pattern, _ in root.alternatives]
        assert patterns == [
            LiteralPattern(TextLiteral("a")),
            LiteralPattern(NumberLiteral(Decimal(1))),
            VariablePattern(v("other.value").variable),
            WildcardPattern(),
            WildcardPattern(),
        ]
        assert root.alternatives[-1][1] == TextNode(None, "E")

    def test_case_allows_comment_before_when(self):
        root = root_of("{% case x %} {# first #}\n{% when true %}A{% endcase %}")
        assert root.alternatives == ((TRUE, TextNode(None, "A")),)

    def test_case_rejects_text_before_when(self):
        with pytest.raises(ParserError, match="Unexpected text after 'case'"):
            parse_template("{% case x %}oops{% when 1 %}A{% endcase %}")

    def test_case_without_alternatives(self):
        root = root_of("{% case x %}{% else %}E{% endcase %}")
        assert root.alternatives == ((WildcardPattern(), TextNode(None, "E")),)

    def test_unterminated_case(self):
        with pytest.raises(ParserError, match="Unterminated 'case' block"):
            parse_template("{% case x %}{% when 1 %}A")


class TestFor:

    def test_for_loop(self):
        root = root_of("{% for item in page.items %}[{{ item }}]{% endfor %}")

        assert isinstance(root, LoopNode)
        assert root.binding.name == "item"
        assert root.source == v("page.items")
        assert root.body == BuildNode(None, (TextNode(None, "["), v("item"), TextNode(None, "]")))
        assert root.else_body is None

    def test_for_else(self):
        root = root_of("{% for x in xs %}{{ x }}{% else %}empty{% endfor %}")
        assert root.else_body == TextNode(None, "empty")

    def test_for_delta_is_block_start(self):
        root = parse_template("ab{% for x in xs %}{% endfor %}").root
        assert root.parts[1].delta.column == 3

    def test_for_requires_in(self):
        with pytest.raises(ParserError, match="Expected 'in'"):
            parse_template("{% for x of xs %}{% endfor %}")

    def test_for_binding_cannot_be_keyword(self):
        with pytest.raises(ReservedWordError):
            parse_template("{% for case in xs %}{% endfor %}")

    def test_for_source_must_be_variable(self):
        with pytest.raises(ParserError, match="Expected identifier"):
            parse_template('{% for x in "abc" %}{% endfor %}')


class TestLet:

    def test_let(self):
        root = root_of("{% let total = a + 1 %}{{ total }}{% endlet %}")

        assert isinstance(root, LetNode)
        assert root.binding.name == "total"
        assert root.body == v("total")

    def test_let_negative_number(self):
        root = root_of("{% let n =-1 %}{% endlet %}")
        assert root.value == LiteralNode(None, NumberLiteral(Decimal(-1)))

    def test_let_rejects_comparison(self):
        with pytest.raises(ParserError, match="Expected '=' after 'n'"):
            parse_template("{% let n == 1 %}{% endlet %}")

    def test_unterminated_let(self):
        with pytest.raises(ParserError, match="Unterminated 'let' block"):
            parse_template("{% let n = 1 %}body")


class TestInclude:

    def test_include(self):
        result = parse_template('{% include "header" %}')

        assert result.root == IncludeNode(None, "header", None)
        assert list(result.includes) == ["header"]

    def test_include_with_context(self):
        root = root_of('{% include "row" with item.data %}')
        assert root.context == v("item.data")

    def test_include_accumulation(self):
        """Все вхождения одного ключа собираются в порядке исходника."""
        source = (
            '{% include "x" %}\n'
            '{% for i in items %}{% include "x" %}{% endfor %}\n'
            '{% if flag %}{% include "y" %}{% include "x" %}{% endif %}\n'
        )
        result = parse_template(source, name="page.ede")

        positions = result.includes["x"]
        assert len(positions) == 3
        assert [d.line for d in positions] == [1, 2, 3]
        assert [d.column for d in positions] == [1, 21, 31]
        assert positions[0].name == "page.ede"
        assert len(result.includes["y"]) == 1

    def test_includes_are_read_only(self):
        result = parse_template('{% include "x" %}')
        with pytest.raises(TypeError):
            result.includes["z"] = ()

    def test_failed_parse_has_no_includes(self):
        outcome = run_parser('{% include "x" %}{% if y %}')
        assert isinstance(outcome, ParseFailure)
        assert not hasattr(outcome, "includes")

    def test_include_requires_string(self):
        with pytest.raises(ParserError, match="Expected template key string"):
            parse_template("{% include header %}")


class TestPragma:
    """Тесты директив смены разделителей."""

    def test_pragma_switches_delimiters(self):
        result = parse_template('{! inline = ("<@", "@>") !}a {{ b }} <@ c @>')

        assert result.root == BuildNode(None, (TextNode(None, "a {{ b }} "), v("c")))

    def test_pragma_multiple_fields(self):
        source = '{! block = ("[%", "%]"), comment = ("[#", "#]") !}[# gone #][% if x %]A[% endif %]'
        root = root_of(source)
        assert isinstance(root, CaseNode)
        assert root.alternatives[0][1] == TextNode(None, "A")

    def test_unknown_pragma_field(self):
        with pytest.raises(ParserError, match="Unknown pragma field 'colour'"):
            parse_template('{! colour = ("<", ">") !}')

    def test_pragma_requires_pair(self):
        with pytest.raises(ParserError, match="Expected ','"):
            parse_template('{! inline = ("<@") !}')

    def test_invalid_pragma_delimiter(self):
        with pytest.raises(ParserError, match="Invalid pragma"):
            parse_template('{! inline = ("", "@>") !}')


class TestAlternateSyntax:

    def test_same_ast_as_default(self):
        default = root_of(
            "Hi {{ user.name | upper }}{# c #}"
            "{% for x in xs %}{% if x.ok %}{{ x }}{% else %}-{% endif %}{% endfor %}"
        )
        alternate = root_of(
            "Hi <@ user.name | upper @>@* c *@"
            "@( for x in xs )@@( if x.ok )@<@ x @>@( else )@-@( endif )@@( endfor )@",
            syntax=ALTERNATE_SYNTAX,
        )
        assert default == alternate

    def test_default_delimiters_are_text(self):
        root = root_of("{{ x }} <@ y @>", syntax=ALTERNATE_SYNTAX)
        assert root == BuildNode(None, (TextNode(None, "{{ x }} "), v("y")))

    def test_parenthesized_expression_in_block(self):
        root = root_of("@( if (a) )@A@( endif )@", syntax=ALTERNATE_SYNTAX)
        assert root.scrutinee == v("a")


class TestRunParser:

    def test_success(self):
        outcome = run_parser("{{ x }}")
        assert isinstance(outcome, ParseResult)
        assert outcome.ok

    def test_failure_carries_single_diagnostic(self):
        outcome = run_parser("line one\n{{ 12abc }}", name="bad.ede")

        assert isinstance(outcome, ParseFailure)
        assert isinstance(outcome.error, TemplateSyntaxError)
        assert outcome.delta.name == "bad.ede"
        assert outcome.delta.line == 2
        assert outcome.delta.column == 4
        assert str(outcome.error) == "Malformed number literal '12abc' at bad.ede:2:4"


class TestNesting:
    """Глубина вложенности ограничена: диагностика вместо переполнения стека."""

    def test_deep_parentheses_fail_cleanly(self):
        outcome = run_parser("{{ " + "(" * 330 + "a" + ")" * 330 + " }}")

        assert isinstance(outcome, ParseFailure)
        assert "nested too deeply" in outcome.message
        assert outcome.delta.column == 3 + TemplateParser.max_depth + 1

    def test_deep_if_blocks_fail_cleanly(self):
        source = "{% if a %}" * 1000 + "x" + "{% endif %}" * 1000
        outcome = run_parser(source)

        assert isinstance(outcome, ParseFailure)
        assert "nested too deeply" in outcome.message

    def test_deep_prefix_operators_fail_cleanly(self):
        outcome = run_parser("{{ " + "! " * 500 + "a }}")
        assert isinstance(outcome, ParseFailure)
        assert "nested too deeply" in outcome.message

    def test_nesting_below_limit(self):
        root = root_of("{{ " + "(" * 90 + "a" + ")" * 90 + " }}")
        assert root == v("a")

        source = "{% if a %}" * 50 + "x" + "{% endif %}" * 50
        assert isinstance(root_of(source), CaseNode)

    def test_limit_is_configurable(self):
        class ShallowParser(TemplateParser):
            max_depth = 3

        assert ShallowParser("{{ ((a)) }}").parse().root == v("a")
        with pytest.raises(ParserError, match=r"nested too deeply \(limit 3\)"):
            ShallowParser("{{ (((a))) }}").parse()

    def test_depth_restored_after_blocks(self):
        """Счётчик глубины возвращается после каждой закрытой конструкции."""
        source = "{% if a %}{% if b %}x{% endif %}{% endif %}" * 200
        result = TemplateParser(source).parse()
        assert len(result.root.parts) == 200


class TestUnicodeIdentifiers:

    def test_render_unicode_variable(self):
        assert root_of("{{ café }}") == v("café")
        assert root_of("{{ пользователь.имя }}") == v("пользователь.имя")

    def test_for_with_unicode_names(self):
        root = root_of("{% for элемент in список %}{{ элемент }}{% endfor %}")

        assert isinstance(root, LoopNode)
        assert root.binding.name == "элемент"
        assert root.source == v("список")
        assert root.body == v("элемент")

    def test_unicode_filter(self):
        root = root_of("{{ x | 大写 }}")
        assert root.function.name.name == "大写"


class TestPragmaStart:
    """{! открывает директиву так же, как остальные три разделителя."""

    def test_pragma_start_is_not_text(self):
        with pytest.raises(ParserError, match="Unknown pragma field 'b'"):
            parse_template("a {! b")

    def test_unterminated_pragma(self):
        with pytest.raises(ParserError, match="Expected ','"):
            parse_template('a {! inline = ("<@", "@>")')

    def test_pragma_start_of_other_syntax_is_text(self):
        root = root_of("a {! b", syntax=ALTERNATE_SYNTAX)
        assert root == TextNode(None, "a {! b")
