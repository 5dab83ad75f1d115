from __future__ import annotations

import json
from typing import Any

from sqlalchemy import Text
from sqlalchemy.types import TypeDecorator


def parse_string_list(value: Any) -> list[str] | None:
    """Decode a list field that may arrive as a list, a JSON array string or a bare legacy string.

    ``None`` and blank strings decode to ``None``. A string that is valid JSON
    but not an array (``'"us"'``, ``'5'``) is treated like a bare string.
    """

    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        items = [str(item).strip() for item in value if item is not None and str(item).strip()]
        return items
    text = str(value).strip()
    if not text:
        return None
    if text.startswith("["):
        try:
            decoded = json.loads(text)
        except ValueError:
            decoded = None
        if isinstance(decoded, list):
            return [str(item).strip() for item in decoded if item is not None and str(item).strip()]
    return [text]


def encode_string_list(value: list[str] | None) -> str | None:
    if value is None:
        return None
    return json.dumps(list(value))


class StringList(TypeDecorator[list[str]]):
    """Text column holding a JSON array of strings.

    Rows written before arrays were introduced hold a bare string; those are
    read back as a one-element list so callers only ever see ``list[str]``.
    """

    impl = Text
    cache_ok = True

    def process_bind_param(self, value: Any, dialect: Any) -> str | None:
        return encode_string_list(parse_string_list(value))

    def process_result_value(self, value: Any, dialect: Any) -> list[str] | None:
        return parse_string_list(value)


def is_truthy(value: Any) -> bool:
    """Lost/converted flags arrive as ``True``, ``1``, ``"1"`` or ``"true"``."""

    if isinstance(value, str):
        return value.strip().lower() in {"1", "true"}
    return value is True or value == 1
