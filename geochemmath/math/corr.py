"""
Correlation matrix construction for geochemmath.

This module builds the all-pairs Pearson correlation matrix over a set of
variables. It is used for variable grouping and for ranking, not for
significance testing.
"""

import logging
from typing import Any, Dict, Iterator, List, Mapping, Sequence, Tuple

import numpy as np

from geochemmath.math.named_matrix import NamedMatrix
from geochemmath.math.stats import pearson, valid_pairs
from geochemmath.utils.general import extract_columns

logger = logging.getLogger(__name__)


def pairwise_pearson(x: np.ndarray, y: np.ndarray) -> float:
    """
    Pearson correlation after pairwise dropping of non-finite values.

    Pairs with fewer than two valid points, or zero variance, map to 0.

    Args:
        x: First series
        y: Second series

    Returns:
        Correlation coefficient
    """
    x_clean, y_clean = valid_pairs(x, y)
    if len(x_clean) < 2:
        return 0.0
    return pearson(x_clean, y_clean)


def iter_correlation_rows(variables: Mapping[str, Sequence[float]]) -> Iterator[Tuple[str, np.ndarray]]:
    """
    Compute the correlation matrix one row at a time.

    Each yielded row is complete. Only the upper triangle is computed;
    values below the diagonal are mirrored from earlier rows.

    Args:
        variables: Mapping of variable name to series

    Yields:
        Tuples of (variable name, row of correlations)
    """
    names = list(variables.keys())
    series = [np.array(variables[name], dtype=float) for name in names]
    n_vars = len(names)
    corr = np.eye(n_vars)

    for i in range(n_vars):
        for j in range(i + 1, n_vars):
            r = pairwise_pearson(series[i], series[j])
            corr[i, j] = r
            corr[j, i] = r
        yield names[i], corr[i].copy()


def correlation_matrix(variables: Mapping[str, Sequence[float]]) -> NamedMatrix:
    """
    Compute the Pearson correlation matrix for a set of variables.

    Args:
        variables: Mapping of variable name to series

    Returns:
        Symmetric NamedMatrix with unit diagonal
    """
    names = []
    rows = []
    for name, row in iter_correlation_rows(variables):
        names.append(name)
        rows.append(row)

    if not names:
        return NamedMatrix(np.zeros((0, 0)), rownames=[], colnames=[])

    logger.debug(f"Computed {len(names)}x{len(names)} correlation matrix")
    return NamedMatrix(np.vstack(rows), rownames=names, colnames=names)


def correlation_matrix_from_rows(rows: Sequence[Mapping[str, Any]],
                                 variable_names: List[str]) -> NamedMatrix:
    """
    Compute the correlation matrix directly from sample rows.

    Args:
        rows: Sample rows
        variable_names: Columns to include

    Returns:
        Correlation NamedMatrix
    """
    return correlation_matrix(extract_columns(rows, variable_names))


def strongest_pairs(corr: NamedMatrix, limit: int = 10) -> List[Dict[str, Any]]:
    """
    List the most strongly correlated variable pairs.

    Args:
        corr: Correlation matrix
        limit: Maximum number of pairs to return

    Returns:
        List of {'x', 'y', 'r'} dictionaries, by descending |r|
    """
    names = corr.rownames()
    values = corr.values
    pairs = [
        {'x': names[i], 'y': names[j], 'r': float(values[i, j])}
        for i in range(len(names))
        for j in range(i + 1, len(names))
    ]
    pairs.sort(key=lambda p: abs(p['r']), reverse=True)
    return pairs[:limit]
