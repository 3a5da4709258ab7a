from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import pytest

from ede.nodes import Identifier, Variable, VariableNode
from ede.parser import parse_template
from ede.tokens import synthetic_delta

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def write(p: Path, text: str) -> Path:
    """Записывает текст в файл, создавая родительские директории при необходимости."""
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    return p


def run_cli(root: Path, *args: str, stdin: str | None = None) -> subprocess.CompletedProcess:
    env = os.environ.copy()
    env["PYTHONPATH"] = os.pathsep.join(filter(None, [str(PROJECT_ROOT), env.get("PYTHONPATH")]))
    return subprocess.run(
        [sys.executable, "-m", "ede.cli", *args],
        cwd=root, env=env, input=stdin, capture_output=True, text=True, encoding="utf-8"
    )


def v(path: str) -> VariableNode:
    """Узел переменной по пути через точку (позиции в сравнении не участвуют)."""
    d = synthetic_delta("<test>")
    return VariableNode(d, Variable(tuple(Identifier(d, name) for name in path.split("."))))


def root_of(source: str, **kwargs):
    return parse_template(source, **kwargs).root


@pytest.fixture
def tmpproj(tmp_path: Path):
    """Каталог с шаблоном и конфигурацией альтернативного синтаксиса."""
    write(tmp_path / "page.ede", "Hello {{ user.name }}!\n{% include \"footer\" %}\n")
    write(tmp_path / "alt.ede", "Hello <@ user.name @>!\n")
    write(tmp_path / "ede.yaml", "syntax: alternate\n")
    return tmp_path
