"""
PCA (Principal Component Analysis) implementation for geochemmath.

This module admits sample rows, imputes missing values, standardizes the
data, and extracts principal components with the power-iteration
eigen-decomposer. Loadings are the raw unit eigenvectors and scores are
standardized rows projected onto them; the two are never rescaled by
sqrt(eigenvalue).

Clustering of the scores is a separate step (`cluster_pca_result`).
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from geochemmath.errors import InsufficientDataError
from geochemmath.math.clusters import ClusterAssignment, ClusteringOptions, cluster_points
from geochemmath.math.eigen import (
    DEFAULT_MAX_ITERS, DEFAULT_NOISE_FLOOR, DEFAULT_TOLERANCE, top_eigen_pairs
)
from geochemmath.math.named_matrix import NamedMatrix
from geochemmath.utils.general import as_rows, extract_columns, valid_counts

logger = logging.getLogger(__name__)


ROW_ADMISSION_RATIO = 0.8
MIN_VALID_FIELDS = 2
MIN_RETAINED_ROWS = 3
MIN_VARIABLES = 2
DEFAULT_COMPONENTS = 2


@dataclass(frozen=True)
class PCAResult:
    """
    Result of a PCA run.

    `scores` and `clusters` are aligned to the original row order; rows
    that failed admission have zero scores, `retained` False and cluster
    -1. `clusters` is None until the result has been clustered.
    """

    variable_names: Tuple[str, ...]
    scores: np.ndarray
    loadings: np.ndarray
    eigenvalues: np.ndarray
    explained_variance: np.ndarray
    cumulative_variance: np.ndarray
    n_components: int
    retained: np.ndarray
    clusters: Optional[np.ndarray] = None
    cluster_assignment: Optional[ClusterAssignment] = field(default=None, repr=False)

    @property
    def retained_scores(self) -> np.ndarray:
        """Scores of the rows used in the fit."""
        return self.scores[self.retained]

    def loadings_matrix(self) -> NamedMatrix:
        """Loadings as a NamedMatrix (components x variables)."""
        return NamedMatrix(self.loadings,
                           rownames=[f"PC{i + 1}" for i in range(self.n_components)],
                           colnames=list(self.variable_names))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'variable_names': list(self.variable_names),
            'scores': self.scores.tolist(),
            'loadings': self.loadings.tolist(),
            'eigenvalues': self.eigenvalues.tolist(),
            'explained_variance': self.explained_variance.tolist(),
            'cumulative_variance': self.cumulative_variance.tolist(),
            'n_components': self.n_components,
            'retained': self.retained.tolist(),
            'clusters': None if self.clusters is None else self.clusters.tolist(),
            'cluster_assignment': None if self.cluster_assignment is None else self.cluster_assignment.to_dict()
        }


def min_valid_fields(n_variables: int) -> int:
    """Number of parseable fields a row needs to be admitted."""
    return max(MIN_VALID_FIELDS, math.ceil(ROW_ADMISSION_RATIO * n_variables))


def prepare_matrix(rows: Sequence[Mapping[str, Any]],
                   variable_names: Sequence[str]) -> Tuple[np.ndarray, np.ndarray, Dict[str, Tuple[int, int]]]:
    """
    Admit rows and impute missing values.

    A row is admitted when enough of its fields parse. Missing fields in
    admitted rows are filled with the column mean over every parseable
    value in the input (0 if the column has none).

    Args:
        rows: Sample rows
        variable_names: Variables to use

    Returns:
        Tuple of (imputed matrix of retained rows, retained mask,
        per-variable (valid, total) counts)
    """
    columns = extract_columns(rows, variable_names)
    raw = np.column_stack([columns[name] for name in variable_names]) if variable_names else np.zeros((len(rows), 0))

    valid = np.isfinite(raw)
    counts = valid_counts(rows, variable_names)

    col_means = np.array([
        float(np.mean(raw[valid[:, j], j])) if valid[:, j].any() else 0.0
        for j in range(raw.shape[1])
    ])

    retained = valid.sum(axis=1) >= min_valid_fields(len(variable_names))
    filled = np.where(valid, raw, col_means)

    return filled[retained], retained, counts


def standardize(data: np.ndarray) -> np.ndarray:
    """
    Column-wise z-scores with the n-1 standard deviation.

    Columns with zero variance become all zeros.

    Args:
        data: Data matrix (rows x variables)

    Returns:
        Standardized matrix
    """
    means = data.mean(axis=0)
    stds = data.std(axis=0, ddof=1)
    centered = data - means
    safe = np.where(stds > 0, stds, 1.0)
    return np.where(stds > 0, centered / safe, 0.0)


def covariance_matrix(standardized: np.ndarray) -> np.ndarray:
    """
    Covariance X^T X / (n - 1) of standardized data.

    On z-scored data this is the correlation matrix of the retained rows.
    """
    n = standardized.shape[0]
    return standardized.T @ standardized / (n - 1)


def run_pca(samples: Any,
            variable_names: Sequence[str],
            n_components: Optional[int] = None,
            max_iters: int = DEFAULT_MAX_ITERS,
            tol: float = DEFAULT_TOLERANCE,
            noise_floor: float = DEFAULT_NOISE_FLOOR,
            seed: Optional[int] = None) -> PCAResult:
    """
    Run PCA on the selected variables of a sample matrix.

    Args:
        samples: Sample rows (list of dicts or DataFrame)
        variable_names: Variables to analyze
        n_components: Components requested (default 2)
        max_iters: Power-iteration cap per component
        tol: Power-iteration convergence tolerance
        noise_floor: Eigenvalues at or below this are discarded
        seed: Optional seed for the power-iteration start vectors

    Returns:
        PCAResult without clusters

    Raises:
        ValueError: If n_components is given and smaller than 1
        InsufficientDataError: With fewer than 2 variables or fewer than 3
            admitted rows
    """
    if n_components is not None and n_components < 1:
        raise ValueError(f"n_components must be at least 1, got {n_components}")

    rows = as_rows(samples)
    names = list(variable_names)

    data, retained, counts = prepare_matrix(rows, names)
    n_retained = data.shape[0]

    if len(names) < MIN_VARIABLES:
        raise InsufficientDataError(
            f"PCA needs at least {MIN_VARIABLES} variables, got {len(names)}",
            valid_counts=counts, retained_rows=n_retained)

    if n_retained < MIN_RETAINED_ROWS:
        raise InsufficientDataError(
            f"PCA needs at least {MIN_RETAINED_ROWS} usable rows, "
            f"{n_retained} of {len(rows)} rows had {min_valid_fields(len(names))} or more valid values",
            valid_counts=counts, retained_rows=n_retained)

    logger.info(f"Running PCA on {n_retained}/{len(rows)} rows and {len(names)} variables")

    standardized = standardize(data)
    cov = covariance_matrix(standardized)

    pairs = top_eigen_pairs(cov, len(names), max_iters=max_iters, tol=tol,
                            noise_floor=noise_floor, seed=seed)
    if not pairs:
        raise InsufficientDataError(
            "PCA found no informative components (all variables constant?)",
            valid_counts=counts, retained_rows=n_retained)

    requested = n_components if n_components is not None else DEFAULT_COMPONENTS
    n_comps = min(requested, len(names), n_retained - 1, len(pairs))
    if n_comps < requested:
        logger.info(f"Reduced component count from {requested} to {n_comps}")

    all_eigenvalues = np.array([p.eigenvalue for p in pairs])
    eigenvalues = all_eigenvalues[:n_comps]
    loadings = np.vstack([p.eigenvector for p in pairs[:n_comps]])

    explained = eigenvalues / all_eigenvalues.sum() * 100.0
    cumulative = np.cumsum(explained)

    scores = np.zeros((len(rows), n_comps))
    scores[retained] = standardized @ loadings.T

    return PCAResult(
        variable_names=tuple(names),
        scores=scores,
        loadings=loadings,
        eigenvalues=eigenvalues,
        explained_variance=explained,
        cumulative_variance=cumulative,
        n_components=n_comps,
        retained=retained
    )


def cluster_pca_result(result: PCAResult,
                       options: Optional[ClusteringOptions] = None,
                       seed: Optional[int] = None) -> PCAResult:
    """
    Cluster the retained rows on their first two score dimensions.

    Args:
        result: PCA result
        options: Clustering settings
        seed: Optional seed

    Returns:
        A new PCAResult with `clusters` (-1 for excluded rows) and
        `cluster_assignment` set
    """
    assignment = cluster_points(result.retained_scores[:, :2], options, seed)

    clusters = np.full(result.scores.shape[0], -1, dtype=int)
    clusters[result.retained] = assignment.labels

    return replace(result, clusters=clusters, cluster_assignment=assignment)


def pca_with_clusters(samples: Any,
                      variable_names: Sequence[str],
                      n_components: Optional[int] = None,
                      options: Optional[ClusteringOptions] = None,
                      seed: Optional[int] = None,
                      **pca_kwargs) -> PCAResult:
    """
    Run PCA and then cluster the scores.

    Args:
        samples: Sample rows
        variable_names: Variables to analyze
        n_components: Components requested
        options: Clustering settings
        seed: Optional seed used by both steps
        **pca_kwargs: Extra arguments for run_pca

    Returns:
        Clustered PCAResult
    """
    result = run_pca(samples, variable_names, n_components, seed=seed, **pca_kwargs)
    return cluster_pca_result(result, options, seed)
