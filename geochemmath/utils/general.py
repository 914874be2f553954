"""
General utility functions for the geochemmath package.

Helpers for turning raw sample rows (as parsed from spreadsheets) into
numeric columns.
"""

import math
import re
from numbers import Number
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd


# Column-name tokens that mark sample identifiers rather than measurements
IDENTIFIER_TOKENS = {'id', 'no', 'number', 'index', 'seq', 'sequence'}
IDENTIFIER_SUBSTRINGS = ('번호',)


def parse_number(value: Any) -> Optional[float]:
    """
    Parse a raw cell value into a finite float.

    Args:
        value: Raw value (number, numeric string, or anything else)

    Returns:
        The parsed float, or None if the value is missing or not numeric
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, Number):
        result = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            result = float(text)
        except ValueError:
            return None
    else:
        return None

    if not math.isfinite(result):
        return None
    return result


def as_rows(samples: Any) -> List[Mapping[str, Any]]:
    """
    Normalize a sample matrix to a list of row mappings.

    Args:
        samples: List of dicts or a pandas DataFrame

    Returns:
        List of row mappings
    """
    if isinstance(samples, pd.DataFrame):
        return samples.to_dict('records')
    return list(samples)


def column_values(rows: Sequence[Mapping[str, Any]], name: str) -> np.ndarray:
    """
    Extract one column as a float array, with NaN for unparseable cells.

    Args:
        rows: Sample rows
        name: Column name

    Returns:
        Float array of length len(rows)
    """
    values = [parse_number(row.get(name)) for row in rows]
    return np.array([np.nan if v is None else v for v in values], dtype=float)


def extract_columns(rows: Sequence[Mapping[str, Any]],
                    names: Iterable[str]) -> Dict[str, np.ndarray]:
    """
    Extract several columns at once.

    Args:
        rows: Sample rows
        names: Column names

    Returns:
        Dictionary of column name to float array
    """
    return {name: column_values(rows, name) for name in names}


def valid_counts(rows: Sequence[Mapping[str, Any]],
                 names: Iterable[str]) -> Dict[str, Tuple[int, int]]:
    """
    Count parseable values per column.

    Args:
        rows: Sample rows
        names: Column names

    Returns:
        Dictionary of column name to (valid, total)
    """
    total = len(rows)
    return {
        name: (int(np.sum(np.isfinite(column_values(rows, name)))), total)
        for name in names
    }


def numeric_columns(rows: Sequence[Mapping[str, Any]],
                    min_fraction: float = 0.5) -> List[str]:
    """
    Detect the columns whose values are mostly numeric.

    Args:
        rows: Sample rows
        min_fraction: Fraction of non-empty cells that must parse

    Returns:
        Column names in first-seen order
    """
    names = []
    for row in rows:
        for name in row:
            if name not in names:
                names.append(name)

    result = []
    for name in names:
        cells = [row.get(name) for row in rows]
        present = [c for c in cells if not _is_blank(c)]
        if not present:
            continue
        parsed = sum(1 for c in present if parse_number(c) is not None)
        if parsed / len(present) >= min_fraction:
            result.append(name)
    return result


def _is_blank(cell: Any) -> bool:
    if cell is None:
        return True
    if isinstance(cell, str):
        return not cell.strip()
    return isinstance(cell, float) and math.isnan(cell)


def identifier_columns(names: Iterable[str]) -> List[str]:
    """
    Find columns that look like sample identifiers or sequence numbers.

    Names are split into alphanumeric tokens so that oxide names such as
    "Oxide" are not mistaken for "id".

    Args:
        names: Column names

    Returns:
        The subset of names that look like identifiers
    """
    result = []
    for name in names:
        lower = str(name).lower()
        tokens = set(re.findall(r'[a-z0-9]+', lower))
        if tokens & IDENTIFIER_TOKENS or any(s in lower for s in IDENTIFIER_SUBSTRINGS):
            result.append(name)
    return result


def distinct(coll: Iterable[Any]) -> List[Any]:
    """
    Return a list with duplicates removed, preserving order.

    Args:
        coll: Collection to process

    Returns:
        List with duplicates removed
    """
    seen = set()
    result = []
    for item in coll:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result
