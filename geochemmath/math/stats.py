"""
Pairwise correlation statistics for geochemical variables.

This module provides Pearson and Spearman correlation with t-test
significance, ordinary least squares regression, and descriptive
statistics for a single series.
"""

import logging
import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Sequence, Tuple, Union

import numpy as np
from scipy.special import betaln
from scipy.stats import rankdata

from geochemmath.errors import InsufficientDataError, UnsupportedMethodError

logger = logging.getLogger(__name__)


MIN_VALID_PAIRS = 3

# Continued fraction settings for the incomplete beta function
BETA_CF_MAX_ITERS = 200
BETA_CF_EPS = 1e-12
BETA_CF_TINY = 1e-300


class CorrelationMethod(Enum):
    """
    Correlation methods understood by the engine.

    KENDALL is reserved: it is accepted by the parser so callers get an
    explicit error instead of a silently missing result.
    """

    PEARSON = 'pearson'
    SPEARMAN = 'spearman'
    KENDALL = 'kendall'

    @property
    def supported(self) -> bool:
        return self is not CorrelationMethod.KENDALL

    @classmethod
    def parse(cls, value: Union[str, 'CorrelationMethod']) -> 'CorrelationMethod':
        """
        Convert a string or method into a CorrelationMethod.

        Args:
            value: Method name (case-insensitive) or member

        Returns:
            The matching member

        Raises:
            ValueError: If the name is not a known method
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown correlation method: {value}") from None


DEFAULT_METHODS = (CorrelationMethod.PEARSON, CorrelationMethod.SPEARMAN)


def resolve_methods(methods: Optional[Iterable[Union[str, CorrelationMethod]]]) -> Tuple[CorrelationMethod, ...]:
    """
    Parse and validate a collection of requested methods.

    Args:
        methods: Method names or members (None for the defaults)

    Returns:
        Tuple of distinct methods in request order

    Raises:
        ValueError: For unknown names
        UnsupportedMethodError: For reserved methods such as Kendall
    """
    if methods is None:
        return DEFAULT_METHODS

    resolved = []
    for method in methods:
        parsed = CorrelationMethod.parse(method)
        if not parsed.supported:
            raise UnsupportedMethodError(
                f"Correlation method '{parsed.value}' is not implemented")
        if parsed not in resolved:
            resolved.append(parsed)
    return tuple(resolved)


@dataclass(frozen=True)
class CorrelationResult:
    """Correlation, significance and regression statistics for one pair."""

    pearson_r: Optional[float] = None
    pearson_p: Optional[float] = None
    spearman_r: Optional[float] = None
    spearman_p: Optional[float] = None
    slope: Optional[float] = None
    intercept: Optional[float] = None
    r_squared: Optional[float] = None
    n: int = 0
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def coefficient(self, method: CorrelationMethod) -> Optional[float]:
        """Get the correlation coefficient for a method."""
        if method is CorrelationMethod.PEARSON:
            return self.pearson_r
        if method is CorrelationMethod.SPEARMAN:
            return self.spearman_r
        return None

    def p_value(self, method: CorrelationMethod) -> Optional[float]:
        """Get the two-tailed p-value for a method."""
        if method is CorrelationMethod.PEARSON:
            return self.pearson_p
        if method is CorrelationMethod.SPEARMAN:
            return self.spearman_p
        return None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def valid_pairs(x: Sequence[float], y: Sequence[float]) -> Tuple[np.ndarray, np.ndarray]:
    """
    Drop positions where either series is non-finite.

    Args:
        x: First series
        y: Second series

    Returns:
        Tuple of the cleaned (x, y) arrays
    """
    x_arr = np.array(x, dtype=float)
    y_arr = np.array(y, dtype=float)
    if x_arr.shape != y_arr.shape:
        raise ValueError(f"Series lengths differ: {x_arr.shape[0]} != {y_arr.shape[0]}")

    mask = np.isfinite(x_arr) & np.isfinite(y_arr)
    return x_arr[mask], y_arr[mask]


def pearson(x: np.ndarray, y: np.ndarray) -> float:
    """
    Sample Pearson correlation of two clean series.

    Zero variance in either series gives 0.

    Args:
        x: First series (no missing values)
        y: Second series (no missing values)

    Returns:
        Correlation coefficient in [-1, 1]
    """
    n = len(x)
    if n < 2:
        return 0.0

    dx = x - np.mean(x)
    dy = y - np.mean(y)
    sx = math.sqrt(np.dot(dx, dx) / (n - 1))
    sy = math.sqrt(np.dot(dy, dy) / (n - 1))
    if sx == 0 or sy == 0:
        return 0.0

    r = np.dot(dx, dy) / ((n - 1) * sx * sy)
    return float(min(1.0, max(-1.0, r)))


def ordinal_ranks(values: np.ndarray) -> np.ndarray:
    """
    Rank values 1..n, breaking ties by position (stable sort order).

    Ties are not averaged, so Spearman on heavily tied data differs from
    the textbook definition.

    Args:
        values: Series to rank

    Returns:
        Array of ranks
    """
    return rankdata(values, method='ordinal').astype(float)


def regularized_incomplete_beta(a: float, b: float, x: float) -> float:
    """
    Regularized incomplete beta function I_x(a, b).

    Evaluated with the modified Lentz continued fraction, using the
    symmetry I_x(a, b) = 1 - I_{1-x}(b, a) where the fraction converges
    faster.

    Args:
        a: First shape parameter (> 0)
        b: Second shape parameter (> 0)
        x: Upper integration limit in [0, 1]

    Returns:
        Value in [0, 1]
    """
    if x <= 0:
        return 0.0
    if x >= 1:
        return 1.0

    log_front = a * math.log(x) + b * math.log1p(-x) - betaln(a, b)

    if x < (a + 1) / (a + b + 2):
        result = math.exp(log_front) * _beta_continued_fraction(a, b, x) / a
    else:
        result = 1.0 - math.exp(log_front) * _beta_continued_fraction(b, a, 1 - x) / b

    return min(1.0, max(0.0, result))


def _beta_continued_fraction(a: float, b: float, x: float) -> float:
    qab = a + b
    qap = a + 1
    qam = a - 1

    c = 1.0
    d = 1.0 - qab * x / qap
    if abs(d) < BETA_CF_TINY:
        d = BETA_CF_TINY
    d = 1.0 / d
    h = d

    for m in range(1, BETA_CF_MAX_ITERS + 1):
        m2 = 2 * m

        # Even step
        an = m * (b - m) * x / ((qam + m2) * (a + m2))
        d = 1.0 + an * d
        if abs(d) < BETA_CF_TINY:
            d = BETA_CF_TINY
        c = 1.0 + an / c
        if abs(c) < BETA_CF_TINY:
            c = BETA_CF_TINY
        d = 1.0 / d
        h *= d * c

        # Odd step
        an = -(a + m) * (qab + m) * x / ((a + m2) * (qap + m2))
        d = 1.0 + an * d
        if abs(d) < BETA_CF_TINY:
            d = BETA_CF_TINY
        c = 1.0 + an / c
        if abs(c) < BETA_CF_TINY:
            c = BETA_CF_TINY
        d = 1.0 / d
        delta = d * c
        h *= delta

        if abs(delta - 1.0) < BETA_CF_EPS:
            break
    else:
        logger.debug(f"Incomplete beta continued fraction hit {BETA_CF_MAX_ITERS} iterations (a={a}, b={b}, x={x})")

    return h


def t_test_p_value(t: float, df: float) -> float:
    """
    Two-tailed p-value of a Student t statistic.

    Args:
        t: t statistic
        df: Degrees of freedom (> 0)

    Returns:
        p-value in [0, 1]
    """
    if df <= 0:
        return 1.0
    if math.isinf(t):
        return 0.0

    x = df / (df + t * t)
    return regularized_incomplete_beta(df / 2.0, 0.5, x)


def correlation_p_value(r: float, n: int) -> float:
    """
    p-value for a correlation coefficient from n pairs (df = n - 2).

    Args:
        r: Correlation coefficient
        n: Number of pairs

    Returns:
        Two-tailed p-value
    """
    df = n - 2
    if df <= 0:
        return 1.0

    denom = 1.0 - r * r
    if denom <= 0:
        return 0.0

    t = r * math.sqrt(df / denom)
    return t_test_p_value(t, df)


def linear_regression(x: np.ndarray, y: np.ndarray) -> Dict[str, float]:
    """
    Ordinary least squares fit of y = slope * x + intercept.

    Args:
        x: Predictor (no missing values)
        y: Response (no missing values)

    Returns:
        Dictionary with 'slope', 'intercept' and 'r_squared'
    """
    x_mean = float(np.mean(x))
    y_mean = float(np.mean(y))
    dx = x - x_mean
    sxx = float(np.dot(dx, dx))

    slope = float(np.dot(dx, y - y_mean) / sxx) if sxx > 0 else 0.0
    intercept = y_mean - slope * x_mean

    predicted = slope * x + intercept
    ss_res = float(np.sum((y - predicted) ** 2))
    ss_tot = float(np.sum((y - y_mean) ** 2))
    r_squared = 1.0 - ss_res / ss_tot if ss_tot > 0 else 0.0

    return {
        'slope': slope,
        'intercept': intercept,
        'r_squared': r_squared
    }


def correlation_statistics(x: Sequence[float],
                           y: Sequence[float],
                           methods: Optional[Iterable[Union[str, CorrelationMethod]]] = None) -> CorrelationResult:
    """
    Compute correlation, significance and regression for two series.

    Positions where either value is non-finite are dropped pairwise.
    Fewer than three valid pairs yields a result with `error` set rather
    than an exception.

    Args:
        x: First series
        y: Second series
        methods: Correlation methods to compute (default Pearson and Spearman)

    Returns:
        CorrelationResult
    """
    requested = resolve_methods(methods)
    x_clean, y_clean = valid_pairs(x, y)
    n = len(x_clean)

    if n < MIN_VALID_PAIRS:
        return CorrelationResult(
            n=n,
            error=f"Not enough valid data points: {n} (need at least {MIN_VALID_PAIRS})"
        )

    fields: Dict[str, Any] = {'n': n}

    if CorrelationMethod.PEARSON in requested:
        r = pearson(x_clean, y_clean)
        fields['pearson_r'] = r
        fields['pearson_p'] = correlation_p_value(r, n)

    if CorrelationMethod.SPEARMAN in requested:
        rho = pearson(ordinal_ranks(x_clean), ordinal_ranks(y_clean))
        fields['spearman_r'] = rho
        fields['spearman_p'] = correlation_p_value(rho, n)

    fields.update(linear_regression(x_clean, y_clean))

    return CorrelationResult(**fields)


def descriptive_stats(values: Sequence[float]) -> Dict[str, Any]:
    """
    Summary statistics for a single series.

    Args:
        values: Series (non-finite values are ignored)

    Returns:
        Dictionary of descriptive statistics

    Raises:
        InsufficientDataError: If the series has no finite values
    """
    data = np.array(values, dtype=float)
    clean = data[np.isfinite(data)]

    if clean.size == 0:
        raise InsufficientDataError("No valid data points",
                                    valid_counts={'values': (0, int(data.size))})

    mean = float(np.mean(clean))
    variance = float(np.var(clean, ddof=1)) if clean.size > 1 else 0.0
    std = math.sqrt(variance)

    if std > 0:
        z = (clean - mean) / std
        skewness = float(np.mean(z ** 3))
        kurtosis = float(np.mean(z ** 4) - 3.0)
    else:
        skewness = 0.0
        kurtosis = 0.0

    q25, q75 = (float(q) for q in np.percentile(clean, [25, 75]))
    iqr = q75 - q25
    lower = q25 - 1.5 * iqr
    upper = q75 + 1.5 * iqr
    outliers = [float(v) for v in clean if v < lower or v > upper]

    return {
        'n': int(clean.size),
        'mean': mean,
        'median': float(np.median(clean)),
        'std': std,
        'variance': variance,
        'skewness': skewness,
        'kurtosis': kurtosis,
        'q25': q25,
        'q75': q75,
        'outliers': outliers,
        'is_normal': abs(skewness) < 1 and abs(kurtosis) < 3
    }
