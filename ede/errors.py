"""
Базовое исключение для пользовательских ошибок.

Все ожидаемые ошибки, которые должны показываться пользователю
чистым сообщением (без стектрейса), наследуются от EdeUserError.

Ошибки программирования и баги НЕ должны наследоваться от EdeUserError —
они распространяются с полным трейсбеком.
"""

from __future__ import annotations


class EdeUserError(Exception):
    """
    Базовый класс для всех пользовательских ошибок парсера шаблонов.

    Такие ошибки пользователь может исправить сам:
    синтаксис шаблона, конфигурация разделителей, отсутствующие файлы.
    """
    pass


class ConfigError(EdeUserError):
    """Ошибка загрузки конфигурации синтаксиса."""
    pass


__all__ = ["EdeUserError", "ConfigError"]
