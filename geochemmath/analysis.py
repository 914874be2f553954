"""
High-level analysis entry point for geochemmath.

`GeochemAnalysis` binds a sample matrix to a configuration and exposes the
engines with configured defaults. It keeps no results between calls.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from geochemmath.components.config import Config, ConfigManager
from geochemmath.errors import InsufficientDataError
from geochemmath.math.clusters import ClusteringOptions
from geochemmath.math.corr import correlation_matrix_from_rows, strongest_pairs
from geochemmath.math.grouping import VariableGroupSuggestion, suggest_pca_groups
from geochemmath.math.named_matrix import NamedMatrix
from geochemmath.math.pca import PCAResult, cluster_pca_result, run_pca
from geochemmath.math.scan import (
    AxisLike, AxisMode, ScanEntry, ScanSummary, ScanThresholds, as_axis, scan, scan_pairs, summarize_scan
)
from geochemmath.math.stats import CorrelationMethod, CorrelationResult, correlation_statistics, descriptive_stats
from geochemmath.utils.general import as_rows, identifier_columns, numeric_columns

logger = logging.getLogger(__name__)


class GeochemAnalysis:
    """
    Analyses over one geochemical sample matrix.
    """

    def __init__(self, samples: Any, config: Optional[Config] = None):
        """
        Initialize the analysis.

        Args:
            samples: Sample rows (list of dicts or DataFrame)
            config: Configuration (the shared instance if omitted)
        """
        self.rows = as_rows(samples)
        self.config = config or ConfigManager.get_config()

    @property
    def seed(self) -> Optional[int]:
        return self.config.get('random-seed')

    def thresholds(self,
                   corr: Optional[float] = None,
                   p: Optional[float] = None) -> ScanThresholds:
        """Scan thresholds, falling back to configured values."""
        return ScanThresholds(
            corr=corr if corr is not None else self.config.get('scan.corr-threshold', 0.5),
            p=p if p is not None else self.config.get('scan.p-threshold', 0.05)
        )

    def clustering_options(self) -> ClusteringOptions:
        """Clustering settings from the configuration."""
        return ClusteringOptions(
            max_k=self.config.get('clustering.max-k', 8),
            max_iters=self.config.get('clustering.max-iters', 100),
            min_silhouette=self.config.get('clustering.min-silhouette', 0.15),
            favored_k=self.config.get('clustering.favored-k', 3),
            favor_margin=self.config.get('clustering.favor-margin', 0.05)
        )

    def variables(self, exclude_identifiers: Optional[bool] = None) -> List[str]:
        """
        Numeric columns of the sample matrix.

        Args:
            exclude_identifiers: Drop ID/sequence columns (configured default)

        Returns:
            Variable names in first-seen order
        """
        names = numeric_columns(self.rows)
        if exclude_identifiers is None:
            exclude_identifiers = self.config.get('scan.exclude-identifiers', True)
        if exclude_identifiers:
            excluded = set(identifier_columns(names))
            if excluded:
                logger.info(f"Excluding identifier columns: {sorted(excluded)}")
            names = [name for name in names if name not in excluded]
        return names

    def _methods(self, methods: Optional[Iterable[Union[str, CorrelationMethod]]]):
        return methods if methods is not None else self.config.get('scan.methods', ['pearson'])

    def correlation(self,
                    x: AxisLike,
                    y: AxisLike,
                    methods: Optional[Iterable[Union[str, CorrelationMethod]]] = None) -> CorrelationResult:
        """
        Correlation statistics for two axes (column names or ratios).
        """
        x_axis, y_axis = as_axis(x), as_axis(y)
        return correlation_statistics(x_axis.axis_values(self.rows), y_axis.axis_values(self.rows), methods)

    def correlation_matrix(self, variables: Optional[Sequence[str]] = None) -> NamedMatrix:
        """Pearson correlation matrix over the given (or detected) variables."""
        return correlation_matrix_from_rows(self.rows, list(variables or self.variables()))

    def strongest_pairs(self,
                        variables: Optional[Sequence[str]] = None,
                        limit: int = 10) -> List[Dict[str, Any]]:
        """Most strongly correlated variable pairs, by descending |r|."""
        return strongest_pairs(self.correlation_matrix(variables), limit)

    def scan(self,
             variables: Optional[Sequence[str]] = None,
             corr_threshold: Optional[float] = None,
             p_threshold: Optional[float] = None,
             methods: Optional[Iterable[Union[str, CorrelationMethod]]] = None,
             axis_mode: Union[AxisMode, str] = AxisMode.SINGLE,
             denominator: Optional[str] = None) -> List[ScanEntry]:
        """
        Ranked pairwise scan.

        Args:
            variables: Variables to scan (detected if omitted)
            corr_threshold: Minimum |r|
            p_threshold: Maximum p-value
            methods: Correlation methods
            axis_mode: SINGLE or RATIO
            denominator: Common denominator for RATIO mode

        Returns:
            Ranked ScanEntry list
        """
        return scan(self.rows, list(variables or self.variables()),
                    self.thresholds(corr_threshold, p_threshold), self._methods(methods),
                    axis_mode, denominator, self.config.get('scan.chunk-size', 500))

    def scan_pairs(self,
                   pairs: Iterable[Tuple[AxisLike, AxisLike]],
                   corr_threshold: Optional[float] = None,
                   p_threshold: Optional[float] = None,
                   methods: Optional[Iterable[Union[str, CorrelationMethod]]] = None) -> List[ScanEntry]:
        """Ranked scan over explicit axis pairs."""
        return scan_pairs(self.rows, pairs, self.thresholds(corr_threshold, p_threshold), self._methods(methods))

    def summarize_scan(self,
                       variables: Optional[Sequence[str]] = None,
                       corr_threshold: Optional[float] = None,
                       p_threshold: Optional[float] = None,
                       methods: Optional[Iterable[Union[str, CorrelationMethod]]] = None,
                       axis_mode: Union[AxisMode, str] = AxisMode.SINGLE,
                       denominator: Optional[str] = None) -> ScanSummary:
        """Pairwise scan with totals, top results and timing."""
        return summarize_scan(self.rows, list(variables or self.variables()),
                              self.thresholds(corr_threshold, p_threshold), self._methods(methods),
                              axis_mode, denominator, self.config.get('scan.chunk-size', 500))

    def pca(self,
            variables: Sequence[str],
            n_components: Optional[int] = None,
            cluster: bool = True) -> PCAResult:
        """
        Run PCA on the given variables, optionally clustering the scores.

        Args:
            variables: Variables to analyze
            n_components: Components requested (configured default)
            cluster: Whether to cluster the scores afterwards

        Returns:
            PCAResult
        """
        result = run_pca(
            self.rows, variables,
            n_components if n_components is not None else self.config.get('pca.n-components'),
            max_iters=self.config.get('eigen.max-iters', 100),
            tol=self.config.get('eigen.tolerance', 1e-8),
            noise_floor=self.config.get('eigen.noise-floor', 1e-10),
            seed=self.seed
        )
        if not cluster:
            return result
        return cluster_pca_result(result, self.clustering_options(), self.seed)

    def suggest_groups(self,
                       variables: Optional[Sequence[str]] = None,
                       threshold: Optional[float] = None) -> List[VariableGroupSuggestion]:
        """
        Suggest variable groups for PCA from the correlation matrix.
        """
        names = list(variables or self.variables())
        if threshold is None:
            threshold = self.config.get('pca.group-threshold', 0.6)
        return suggest_pca_groups(self.correlation_matrix(names), names, threshold)

    def describe(self, variables: Optional[Sequence[str]] = None) -> Dict[str, Dict[str, Any]]:
        """
        Descriptive statistics per variable.

        Variables without any numeric value are skipped and logged.
        """
        result = {}
        for name in variables or self.variables():
            try:
                result[name] = descriptive_stats(as_axis(name).axis_values(self.rows))
            except InsufficientDataError as e:
                logger.warning(f"Skipping {name}: {e}")
        return result
