from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Optional


def _default(obj: Any) -> Any:
    # Decimal из литералов AST отдаём строкой без потери точности
    if isinstance(obj, Decimal):
        return str(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def dumps(obj: Any, indent: Optional[int] = None) -> str:
    """
    JSON-дампер для отчётов CLI: ensure_ascii=False, компактный по умолчанию.
    Завершающий перевод строки добавляет вызывающий код.
    """
    return json.dumps(obj, ensure_ascii=False, indent=indent, default=_default)
