"""
Shared utility functions for dataconnect connectors.
"""

import re
import time
from datetime import date, datetime, time as dt_time
from decimal import Decimal
from typing import Any, Iterable, List, Optional

from ..core.schema import ColumnType

SAMPLE_VALUES = 10


def sanitize_name(name: str) -> str:
    """Convert an arbitrary string into a safe identifier.

    Used by the spreadsheet and document connectors to turn headers and
    sheet titles into stable column and table names.

    Examples:
        >>> sanitize_name("First Name")
        'first_name'
        >>> sanitize_name("123-count")
        '_123_count'
        >>> sanitize_name("email@address")
        'email_address'
    """
    name = re.sub(r"[^a-zA-Z0-9_]", "_", str(name))
    name = re.sub(r"_+", "_", name).strip("_").lower()
    if not name:
        return "_unnamed"
    if name[0].isdigit():
        name = "_" + name
    return name


def unique_headers(raw: Iterable[Any]) -> List[str]:
    """Name blank headers ``col_N`` and suffix duplicates with ``_2``, ``_3``..."""
    headers: List[str] = []
    seen: dict = {}
    for i, h in enumerate(raw):
        name = str(h).strip() if h is not None and str(h).strip() else f"col_{i + 1}"
        count = seen.get(name, 0) + 1
        seen[name] = count
        headers.append(name if count == 1 else f"{name}_{count}")
    return headers


def infer_type(value) -> ColumnType:
    """Infer a ColumnType from a Python value.

    Used by the file and Google connectors to infer column types from
    sample data values.

    Args:
        value: A sample value from the data source.

    Returns:
        The inferred ColumnType.
    """
    if value is None:
        return ColumnType.UNKNOWN
    if isinstance(value, bool):
        return ColumnType.BOOLEAN
    if isinstance(value, int):
        return ColumnType.INTEGER
    if isinstance(value, float):
        return ColumnType.FLOAT
    if isinstance(value, Decimal):
        return ColumnType.DECIMAL
    if isinstance(value, datetime):
        return ColumnType.DATETIME
    if isinstance(value, date):
        return ColumnType.DATE
    if isinstance(value, dt_time):
        return ColumnType.TIME
    if isinstance(value, (dict,)):
        return ColumnType.JSON
    if isinstance(value, (list, tuple)):
        return ColumnType.ARRAY
    if isinstance(value, (bytes, bytearray)):
        return ColumnType.BLOB
    s = str(value).strip().lower()
    if not s:
        return ColumnType.UNKNOWN
    if s in ("true", "false"):
        return ColumnType.BOOLEAN
    try:
        int(s)
        return ColumnType.INTEGER
    except (ValueError, TypeError):
        pass
    try:
        float(s)
        return ColumnType.FLOAT
    except (ValueError, TypeError):
        pass
    for fmt, kind in (("%Y-%m-%d", ColumnType.DATE), ("%Y-%m-%dT%H:%M:%S", ColumnType.DATETIME),
                      ("%Y-%m-%d %H:%M:%S", ColumnType.DATETIME)):
        try:
            datetime.strptime(str(value).strip(), fmt)
            return kind
        except ValueError:
            continue
    return ColumnType.STRING


def infer_column_type(values: Iterable[Any], sample_size: int = 100) -> ColumnType:
    """Infer a column type from sample values.

    The dominant non-null type wins; a mix of integers and floats is
    FLOAT, and an empty column is STRING.
    """
    counts: dict = {}
    for i, v in enumerate(values):
        if i >= sample_size:
            break
        kind = infer_type(v)
        if kind is ColumnType.UNKNOWN:
            continue
        counts[kind] = counts.get(kind, 0) + 1

    if not counts:
        return ColumnType.STRING
    if set(counts) == {ColumnType.INTEGER, ColumnType.FLOAT}:
        return ColumnType.FLOAT
    if len(counts) > 1 and ColumnType.STRING in counts:
        return ColumnType.STRING
    return max(counts, key=counts.get)


def sample_values(values: Iterable[Any], limit: int = SAMPLE_VALUES) -> List[Any]:
    """First ``limit`` distinct non-empty values."""
    out: List[Any] = []
    for v in values:
        if v is None or (isinstance(v, str) and not v.strip()):
            continue
        if v not in out:
            out.append(v)
        if len(out) >= limit:
            break
    return out


def coerce_value(value: str) -> Any:
    """Turn a text cell into int, float or bool when it clearly is one."""
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    kind = infer_type(s)
    if kind is ColumnType.INTEGER:
        return int(s)
    if kind is ColumnType.FLOAT:
        return float(s)
    if kind is ColumnType.BOOLEAN:
        return s.lower() == "true"
    return value


def elapsed_ms(start: float) -> float:
    """Milliseconds since ``start`` (a ``time.perf_counter()`` reading)."""
    return round((time.perf_counter() - start) * 1000, 3)


def file_extension(name: Optional[str]) -> str:
    if not name or "." not in name:
        return ""
    return "." + name.rsplit(".", 1)[1].lower()


def word_count(text: str) -> int:
    return len(text.split())
