"""
Exhaustive pairwise scan for geochemmath.

Every pair of analysis axes is run through the correlation engine,
flagged against significance thresholds and ranked. An axis is either a
raw variable or a ratio of two raw variables.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from itertools import combinations, islice
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from geochemmath.math.stats import (
    CorrelationMethod, CorrelationResult, correlation_statistics, resolve_methods
)
from geochemmath.utils.general import column_values, distinct

logger = logging.getLogger(__name__)


DEFAULT_CHUNK_SIZE = 500
TOP_RESULTS = 10


@dataclass(frozen=True)
class Axis:
    """A raw variable, or the ratio numerator/denominator of two variables."""

    numerator: str
    denominator: Optional[str] = None

    @property
    def is_ratio(self) -> bool:
        return self.denominator is not None

    @property
    def label(self) -> str:
        if self.denominator is None:
            return self.numerator
        return f"{self.numerator}/{self.denominator}"

    def columns(self) -> Tuple[str, ...]:
        if self.denominator is None:
            return (self.numerator,)
        return (self.numerator, self.denominator)

    def evaluate(self, columns: Mapping[str, np.ndarray]) -> np.ndarray:
        """
        Evaluate the axis from pre-extracted columns.

        Rows with a zero or missing denominator become NaN and are dropped
        later by the pairwise filter.

        Args:
            columns: Mapping of column name to float array

        Returns:
            Float array of axis values
        """
        numerator = columns[self.numerator]
        if self.denominator is None:
            return numerator

        denominator = columns[self.denominator]
        with np.errstate(divide='ignore', invalid='ignore'):
            ratio = numerator / denominator
        ratio[~np.isfinite(denominator) | (denominator == 0)] = np.nan
        return ratio

    def axis_values(self, rows: Sequence[Mapping[str, Any]]) -> np.ndarray:
        """Evaluate the axis directly from sample rows."""
        return self.evaluate({name: column_values(rows, name) for name in self.columns()})

    def __str__(self) -> str:
        return self.label


AxisLike = Union[str, Axis]


def as_axis(value: AxisLike) -> Axis:
    """Convert a column name into an Axis; Axis instances pass through."""
    if isinstance(value, Axis):
        return value
    return Axis(str(value))


class AxisMode(Enum):
    """How axes are generated from the variable list."""

    SINGLE = 'single'
    RATIO = 'ratio'


@dataclass(frozen=True)
class ScanThresholds:
    """Significance thresholds for a scan."""

    corr: float = 0.5
    p: float = 0.05


@dataclass(frozen=True)
class ScanEntry:
    """One scanned pair of axes."""

    x: Axis
    y: Axis
    result: CorrelationResult
    is_significant: bool

    @property
    def pair(self) -> Tuple[str, str]:
        return (self.x.label, self.y.label)

    @property
    def ranking_corr(self) -> float:
        return abs(self.result.pearson_r) if self.result.pearson_r is not None else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'x': self.x.label,
            'y': self.y.label,
            'is_significant': self.is_significant,
            'statistics': self.result.to_dict()
        }


@dataclass(frozen=True)
class ScanSummary:
    """Aggregate view of a finished scan."""

    total_combinations: int
    significant_combinations: int
    top_results: Tuple[ScanEntry, ...]
    execution_time: float
    entries: Tuple[ScanEntry, ...] = field(repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_combinations': self.total_combinations,
            'significant_combinations': self.significant_combinations,
            'execution_time': self.execution_time,
            'top_results': [entry.to_dict() for entry in self.top_results],
            'entries': [entry.to_dict() for entry in self.entries]
        }


def is_significant(result: CorrelationResult,
                   methods: Sequence[CorrelationMethod],
                   thresholds: ScanThresholds) -> bool:
    """
    Check whether any requested method crosses both thresholds.

    Args:
        result: Statistics for the pair
        methods: Methods that were requested
        thresholds: Correlation and p-value thresholds

    Returns:
        True if |corr| >= thresholds.corr and p <= thresholds.p for any method
    """
    if not result.ok:
        return False

    for method in methods:
        corr = result.coefficient(method)
        p = result.p_value(method)
        if corr is None or p is None:
            continue
        if abs(corr) >= thresholds.corr and p <= thresholds.p:
            return True
    return False


def build_axes(variables: Sequence[str],
               axis_mode: Union[AxisMode, str] = AxisMode.SINGLE,
               denominator: Optional[str] = None) -> List[Axis]:
    """
    Generate the analysis axes for a scan.

    Args:
        variables: Raw variable names
        axis_mode: SINGLE for raw variables, RATIO to divide every other
            variable by `denominator`
        denominator: Common denominator for RATIO mode

    Returns:
        List of axes
    """
    mode = AxisMode(axis_mode) if not isinstance(axis_mode, AxisMode) else axis_mode
    names = distinct(variables)

    if mode is AxisMode.SINGLE:
        return [Axis(name) for name in names]

    if denominator is None:
        raise ValueError("Ratio axis mode requires a denominator variable")
    return [Axis(name, denominator) for name in names if name != denominator]


def _scan_pair(x: Axis,
               y: Axis,
               columns: Mapping[str, np.ndarray],
               methods: Tuple[CorrelationMethod, ...],
               thresholds: ScanThresholds) -> ScanEntry:
    result = correlation_statistics(x.evaluate(columns), y.evaluate(columns), methods)
    return ScanEntry(x=x, y=y, result=result,
                     is_significant=is_significant(result, methods, thresholds))


def _prepare(rows: Sequence[Mapping[str, Any]], axes: Iterable[Axis]) -> Dict[str, np.ndarray]:
    needed = distinct(name for axis in axes for name in axis.columns())
    return {name: column_values(rows, name) for name in needed}


def iter_scan_pairs(rows: Sequence[Mapping[str, Any]],
                    pairs: Iterable[Tuple[AxisLike, AxisLike]],
                    thresholds: Optional[ScanThresholds] = None,
                    methods: Optional[Iterable[Union[str, CorrelationMethod]]] = None,
                    chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[List[ScanEntry]]:
    """
    Scan explicit axis pairs, yielding unsorted entries in chunks.

    Nothing runs until the generator is advanced; dropping the generator
    abandons the scan.

    Args:
        rows: Sample rows
        pairs: Pairs of axes (or column names)
        thresholds: Significance thresholds
        methods: Correlation methods
        chunk_size: Number of pairs per yielded chunk

    Yields:
        Lists of ScanEntry
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    thresholds = thresholds or ScanThresholds()
    requested = resolve_methods(methods if methods is not None else [CorrelationMethod.PEARSON])
    axis_pairs = [(as_axis(x), as_axis(y)) for x, y in pairs]
    columns = _prepare(rows, (axis for pair in axis_pairs for axis in pair))

    iterator = iter(axis_pairs)
    while True:
        chunk = list(islice(iterator, chunk_size))
        if not chunk:
            return
        yield [_scan_pair(x, y, columns, requested, thresholds) for x, y in chunk]


def iter_scan(rows: Sequence[Mapping[str, Any]],
              variables: Sequence[str],
              thresholds: Optional[ScanThresholds] = None,
              methods: Optional[Iterable[Union[str, CorrelationMethod]]] = None,
              axis_mode: Union[AxisMode, str] = AxisMode.SINGLE,
              denominator: Optional[str] = None,
              chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[List[ScanEntry]]:
    """
    Scan every unordered pair of axes built from `variables`, in chunks.

    Args:
        rows: Sample rows
        variables: Raw variable names
        thresholds: Significance thresholds
        methods: Correlation methods (default Pearson)
        axis_mode: SINGLE or RATIO
        denominator: Common denominator for RATIO mode
        chunk_size: Number of pairs per yielded chunk

    Yields:
        Lists of unsorted ScanEntry
    """
    axes = build_axes(variables, axis_mode, denominator)
    return iter_scan_pairs(rows, combinations(axes, 2), thresholds, methods, chunk_size)


def rank_entries(entries: Iterable[ScanEntry]) -> List[ScanEntry]:
    """
    Order entries: significant first, then by descending |pearson r|.

    The sort is stable, so ties keep scan order.
    """
    return sorted(entries, key=lambda e: (not e.is_significant, -e.ranking_corr))


def scan(rows: Sequence[Mapping[str, Any]],
         variables: Sequence[str],
         thresholds: Optional[ScanThresholds] = None,
         methods: Optional[Iterable[Union[str, CorrelationMethod]]] = None,
         axis_mode: Union[AxisMode, str] = AxisMode.SINGLE,
         denominator: Optional[str] = None,
         chunk_size: int = DEFAULT_CHUNK_SIZE) -> List[ScanEntry]:
    """
    Run a full pairwise scan and return ranked entries.

    Args:
        rows: Sample rows
        variables: Raw variable names
        thresholds: Significance thresholds (default corr 0.5, p 0.05)
        methods: Correlation methods (default Pearson)
        axis_mode: SINGLE or RATIO
        denominator: Common denominator for RATIO mode
        chunk_size: Number of pairs computed per chunk

    Returns:
        Ranked list of ScanEntry
    """
    entries = []
    for chunk in iter_scan(rows, variables, thresholds, methods, axis_mode, denominator, chunk_size):
        entries.extend(chunk)
    return rank_entries(entries)


def scan_pairs(rows: Sequence[Mapping[str, Any]],
               pairs: Iterable[Tuple[AxisLike, AxisLike]],
               thresholds: Optional[ScanThresholds] = None,
               methods: Optional[Iterable[Union[str, CorrelationMethod]]] = None) -> List[ScanEntry]:
    """
    Scan an explicit list of axis pairs and return ranked entries.
    """
    entries = []
    for chunk in iter_scan_pairs(rows, pairs, thresholds, methods):
        entries.extend(chunk)
    return rank_entries(entries)


def summarize_scan(rows: Sequence[Mapping[str, Any]],
                   variables: Sequence[str],
                   thresholds: Optional[ScanThresholds] = None,
                   methods: Optional[Iterable[Union[str, CorrelationMethod]]] = None,
                   axis_mode: Union[AxisMode, str] = AxisMode.SINGLE,
                   denominator: Optional[str] = None,
                   chunk_size: int = DEFAULT_CHUNK_SIZE) -> ScanSummary:
    """
    Run a scan and summarize it.

    Returns:
        ScanSummary with totals, the top significant entries and timing
    """
    start_time = time.time()
    entries = []
    for chunk in iter_scan(rows, variables, thresholds, methods, axis_mode, denominator, chunk_size):
        entries.extend(chunk)
        logger.debug(f"Scanned {len(entries)} pairs")

    ranked = rank_entries(entries)
    significant = [e for e in ranked if e.is_significant]
    elapsed = time.time() - start_time

    logger.info(f"Scan finished in {elapsed:.2f}s: {len(significant)}/{len(ranked)} significant pairs")

    return ScanSummary(
        total_combinations=len(ranked),
        significant_combinations=len(significant),
        top_results=tuple(significant[:TOP_RESULTS]),
        execution_time=elapsed,
        entries=tuple(ranked)
    )
