"""JSON helpers built on orjson.

orjson covers datetime, date, time, UUID and dataclasses natively. The
handler below adds the driver types it rejects (Decimal, bytes, timedelta)
and the result models.
"""

import base64
import datetime
import decimal
from pathlib import Path
from typing import Any, Union

import orjson
from pydantic import BaseModel


def _default_handler(obj: Any) -> Any:
    """
    Convert types orjson does not serialize natively.

    Raises:
        TypeError: If object cannot be serialized
    """
    # MySQL DECIMAL / NUMERIC columns; keep precision as text
    if isinstance(obj, decimal.Decimal):
        return str(obj)

    if isinstance(obj, datetime.timedelta):
        return obj.total_seconds()

    # BLOB columns: text when it decodes, base64 otherwise
    if isinstance(obj, (bytes, bytearray, memoryview)):
        data = bytes(obj)
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return base64.b64encode(data).decode("ascii")

    if isinstance(obj, (set, frozenset)):
        return list(obj)

    if isinstance(obj, BaseModel):
        return obj.model_dump()

    raise TypeError(f"Object of type {type(obj)} is not JSON serializable")


def convert_value_to_json_safe(value: Any) -> Any:
    """
    Convert a value to JSON-serializable format.

    Round-trips through orjson so the value matches what ``dumps`` would emit.
    Values orjson cannot handle at all fall back to ``str``.
    """
    try:
        return orjson.loads(orjson.dumps(value, default=_default_handler))
    except TypeError:
        return str(value)


def convert_row_to_json_safe(row: dict[str, Any]) -> dict[str, Any]:
    """Convert all values in a row dict to JSON-serializable formats."""
    return {key: convert_value_to_json_safe(value) for key, value in row.items()}


def convert_rows_to_json_safe(rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Convert all rows to JSON-serializable format."""
    return [convert_row_to_json_safe(row) for row in rows]


def dumps(obj: Any, indent: bool = False) -> str:
    """
    Serialize object to JSON string using orjson.

    Args:
        obj: Object to serialize (rows, result models, plain data)
        indent: Pretty-print with two-space indentation

    Returns:
        JSON string
    """
    option = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(obj, default=_default_handler, option=option).decode("utf-8")


def load_json_document(source: Union[str, Path]) -> Any:
    """
    Read and parse a JSON file.

    Raises:
        OSError: If the file cannot be read
        orjson.JSONDecodeError: If the content is not valid JSON
    """
    return orjson.loads(Path(source).read_bytes())
