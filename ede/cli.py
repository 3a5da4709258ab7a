from __future__ import annotations

import argparse
import logging
import os
import sys
from importlib import metadata
from pathlib import Path

from .config import resolve_syntax
from .errors import EdeUserError
from .jsonic import dumps as jdumps
from .parser import ParseFailure, run_parser
from .report_schema import build_report
from .styles import reserved_sets


def _package_version() -> str:
    try:
        return metadata.version("ede-parser")
    except metadata.PackageNotFoundError:
        # запуск из исходников без установки
        return "0.0.0+local"


def _setup_logging(verbose: bool) -> None:
    root = logging.getLogger("ede")
    level = logging.DEBUG if (verbose or os.environ.get("EDE_DEBUG")) else logging.WARNING
    root.setLevel(level)
    if not root.handlers:
        h = logging.StreamHandler()
        h.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        root.addHandler(h)


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="ede",
        description="Template parser front-end: AST and include map as JSON",
        add_help=True,
    )
    p.add_argument("-v", "--version", action="version", version=f"%(prog)s {_package_version()}")
    p.add_argument("--verbose", action="store_true", help="отладочный лог в stderr")
    p.add_argument("--pretty", action="store_true", help="JSON с отступами")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp_parse = sub.add_parser("parse", help="JSON-отчёт: AST и карта включений")
    sp_parse.add_argument("file", help="путь к шаблону или - для чтения из stdin")
    sp_parse.add_argument(
        "--syntax",
        default=None,
        metavar="default|alternate|CONFIG.yaml",
        help="пресет разделителей или путь к YAML-конфигурации",
    )
    sp_parse.add_argument(
        "--name",
        default=None,
        help="имя источника в диагностике (по умолчанию путь к файлу)",
    )

    sub.add_parser("keywords", help="Зарезервированные слова, поля директив и операторы (JSON)")

    return p


def _read_source(file_arg: str) -> bytes:
    if file_arg == "-":
        return sys.stdin.buffer.read()
    path = Path(file_arg)
    if not path.is_file():
        raise EdeUserError(f"Template file not found: {path}")
    return path.read_bytes()


def main(argv: list[str] | None = None) -> int:
    ns = _build_parser().parse_args(argv)
    _setup_logging(bool(ns.verbose))
    indent = 2 if ns.pretty else None

    try:
        if ns.cmd == "keywords":
            sys.stdout.write(jdumps(reserved_sets(), indent=indent))
            return 0

        if ns.cmd == "parse":
            syntax = resolve_syntax(ns.syntax)
            name = ns.name or ("<stdin>" if ns.file == "-" else ns.file)
            outcome = run_parser(_read_source(ns.file), name, syntax)
            report = build_report(name, outcome)
            sys.stdout.write(jdumps(report.model_dump(mode="json"), indent=indent))
            if isinstance(outcome, ParseFailure):
                sys.stderr.write(str(outcome.error).rstrip() + "\n")
                return 2
            return 0

    except EdeUserError as e:
        sys.stderr.write(str(e).rstrip() + "\n")
        return 2

    return 2


if __name__ == "__main__":
    raise SystemExit(main())
