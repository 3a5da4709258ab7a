"""
Загрузчик конфигурации синтаксиса.

Читает YAML-файл с именем пресета и/или переопределениями разделителей:

    syntax: alternate
    delimiters:
      inline: ["<<", ">>"]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import ConfigError
from .syntax import START_ORDER, SYNTAX_PRESETS, Syntax

logger = logging.getLogger(__name__)

_yaml = YAML(typ="safe")


@dataclass
class SyntaxConfig:
    """
    Настройки синтаксиса из файла конфигурации.

    Переопределения разделителей применяются поверх пресета.
    """
    preset: str = "default"
    delimiters: Dict[str, Tuple[str, str]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyntaxConfig":
        """Создание экземпляра из словаря (из YAML)."""
        preset = str(data.get("syntax", "default"))
        if preset not in SYNTAX_PRESETS:
            raise ConfigError(
                f"Unknown syntax preset '{preset}'. Expected one of: {', '.join(sorted(SYNTAX_PRESETS))}"
            )

        raw = data.get("delimiters") or {}
        if not isinstance(raw, dict):
            raise ConfigError("'delimiters' must be a mapping")

        delimiters: Dict[str, Tuple[str, str]] = {}
        for kind, pair in raw.items():
            if kind not in START_ORDER:
                raise ConfigError(
                    f"Unknown delimiter kind '{kind}'. Expected one of: {', '.join(START_ORDER)}"
                )
            if not isinstance(pair, (list, tuple)) or len(pair) != 2:
                raise ConfigError(f"Delimiter '{kind}' must be a list of two strings, got {pair!r}")
            delimiters[kind] = (str(pair[0]), str(pair[1]))

        return cls(preset=preset, delimiters=delimiters)

    def to_syntax(self) -> Syntax:
        base = SYNTAX_PRESETS[self.preset]
        if not self.delimiters:
            return base
        try:
            return base.with_delimiters(**self.delimiters)
        except ValueError as e:
            raise ConfigError(str(e)) from e


def _read_yaml_map(path: Path) -> dict:
    """Читает YAML файл и возвращает словарь."""
    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")
    try:
        raw = _yaml.load(path.read_text(encoding="utf-8")) or {}
    except YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"YAML must be a mapping: {path}")
    return raw


def load_syntax(path: Path) -> Syntax:
    """
    Загружает синтаксис из YAML-файла.

    Raises:
        ConfigError: Файл отсутствует, не является YAML-словарём
            или содержит неизвестные поля
    """
    config = SyntaxConfig.from_dict(_read_yaml_map(path))
    logger.debug(f"Loaded syntax config from {path}: preset={config.preset}, overrides={config.delimiters}")
    return config.to_syntax()


def resolve_syntax(name_or_path: Optional[str]) -> Syntax:
    """
    Определяет синтаксис по имени пресета или пути к YAML-файлу.

    Args:
        name_or_path: "default", "alternate", путь к файлу или None (синтаксис по умолчанию)
    """
    if not name_or_path:
        return SYNTAX_PRESETS["default"]
    if name_or_path in SYNTAX_PRESETS:
        return SYNTAX_PRESETS[name_or_path]
    return load_syntax(Path(name_or_path))


__all__ = ["SyntaxConfig", "load_syntax", "resolve_syntax"]
