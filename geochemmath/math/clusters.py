"""
K-means clustering implementation for geochemmath.

This module clusters PCA score points with Lloyd's algorithm seeded by
greedy farthest-point selection, scores partitions with the silhouette
coefficient and within-cluster sum of squares, and picks the number of
clusters with a silhouette/elbow heuristic.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from scipy.spatial.distance import cdist, pdist, squareform

logger = logging.getLogger(__name__)


# Only the first two dimensions take part in distance calculations
CLUSTER_DIMS = 2
MAX_CANDIDATE_K = 6


class Cluster:
    """
    Represents a cluster in K-means clustering.
    """

    def __init__(self,
                 center: np.ndarray,
                 members: Optional[List[int]] = None,
                 id: Optional[int] = None):
        """
        Initialize a cluster with a center and optional members.

        Args:
            center: The center of the cluster
            members: Indices of members belonging to the cluster
            id: Cluster id
        """
        self.center = np.array(center, dtype=float)
        self.members = [] if members is None else list(members)
        self.id = id

    def update_center(self, data: np.ndarray) -> None:
        """
        Move the center to the mean of the members.

        A cluster without members keeps its current center.

        Args:
            data: Data matrix containing all points
        """
        if not self.members:
            return
        self.center = np.mean(data[self.members], axis=0)

    def __repr__(self) -> str:
        """String representation of the cluster."""
        return f"Cluster(id={self.id}, members={len(self.members)})"


@dataclass(frozen=True)
class ClusteringOptions:
    """
    Settings for choosing k and running k-means.

    `favored_k` is a product preference rather than part of the silhouette
    criterion: when its silhouette is within `favor_margin` of the best
    candidate it wins. Set it to None for the unbiased heuristic.
    """

    max_k: int = 8
    max_iters: int = 100
    min_silhouette: float = 0.15
    favored_k: Optional[int] = 3
    favor_margin: float = 0.05


@dataclass(frozen=True)
class KCandidate:
    """Quality measures for one candidate k."""

    k: int
    wcss: float
    silhouette: float


@dataclass(frozen=True)
class ClusterAssignment:
    """Per-point cluster ids with the chosen k and its silhouette."""

    labels: np.ndarray
    k: int
    score: float
    candidates: Dict[int, KCandidate] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'labels': self.labels.tolist(),
            'k': self.k,
            'score': self.score,
            'candidates': {
                k: {'wcss': c.wcss, 'silhouette': c.silhouette}
                for k, c in self.candidates.items()
            }
        }


def as_points(points: Any) -> np.ndarray:
    """
    Copy points into a 2-D float array restricted to the clustering dims.

    Args:
        points: Sequence of coordinate sequences

    Returns:
        Array of shape (n, <= 2)
    """
    data = np.array(points, dtype=float)
    if data.size == 0:
        return np.zeros((0, CLUSTER_DIMS))
    if data.ndim == 1:
        data = data.reshape(-1, 1)
    return data[:, :CLUSTER_DIMS]


def init_clusters(data: np.ndarray,
                  k: int,
                  rng: Optional[np.random.Generator] = None) -> List[Cluster]:
    """
    Seed k clusters by greedy farthest-point selection.

    The first center is a random point; each following center is the point
    whose distance to its nearest chosen center is largest.

    Args:
        data: Data matrix
        k: Number of clusters
        rng: Random generator for the first center

    Returns:
        List of seeded clusters
    """
    n_points = data.shape[0]
    rng = rng if rng is not None else np.random.default_rng()

    first_idx = int(rng.integers(0, n_points))
    chosen = [first_idx]
    min_dists = np.linalg.norm(data - data[first_idx], axis=1)

    for _ in range(1, k):
        candidates = np.where(np.isin(np.arange(n_points), chosen), -np.inf, min_dists)
        next_idx = int(np.argmax(candidates))
        chosen.append(next_idx)
        min_dists = np.minimum(min_dists, np.linalg.norm(data - data[next_idx], axis=1))

    return [Cluster(data[idx], [], i) for i, idx in enumerate(chosen)]


def assign_points(data: np.ndarray, clusters: List[Cluster]) -> np.ndarray:
    """
    Label each point with its nearest cluster (lowest id on ties).

    Args:
        data: Data matrix
        clusters: Current clusters

    Returns:
        Array of cluster ids
    """
    centers = np.vstack([cluster.center for cluster in clusters])
    return np.argmin(cdist(data, centers), axis=1)


def kmeans(points: Any,
           k: int,
           max_iters: int = 100,
           seed: Optional[int] = None,
           rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """
    Perform K-means clustering on the first two dimensions of the points.

    Stops when a full pass reassigns no point or after `max_iters` passes.
    With no more points than clusters every point gets its own cluster.
    Clusters left empty (duplicate points can seed two centers on the same
    spot) are dropped and the remaining ids renumbered from 0.

    Args:
        points: Sequence of points
        k: Number of clusters
        max_iters: Maximum number of assignment passes
        seed: Optional seed for the first center
        rng: Optional random generator (takes precedence over seed)

    Returns:
        Array of cluster ids in [0, k), contiguous
    """
    if k < 1:
        raise ValueError(f"k must be at least 1, got {k}")

    data = as_points(points)
    n_points = data.shape[0]

    if n_points == 0:
        return np.zeros(0, dtype=int)

    if n_points <= k:
        return np.arange(n_points)

    rng = rng if rng is not None else np.random.default_rng(seed)
    clusters = init_clusters(data, k, rng)
    labels = np.full(n_points, -1, dtype=int)

    for i in range(max_iters):
        new_labels = assign_points(data, clusters)
        if np.array_equal(new_labels, labels):
            logger.debug(f"K-means (k={k}) converged after {i} passes")
            break

        labels = new_labels
        for cluster in clusters:
            cluster.members = np.flatnonzero(labels == cluster.id).tolist()
            cluster.update_center(data)
    else:
        logger.debug(f"K-means (k={k}) stopped at the {max_iters} iteration cap")

    _, labels = np.unique(labels, return_inverse=True)
    return labels.reshape(-1)


def distance_matrix(data: np.ndarray) -> np.ndarray:
    """
    Calculate the matrix of pairwise Euclidean distances.

    Args:
        data: Data matrix

    Returns:
        Square matrix of distances
    """
    if data.shape[0] < 2:
        return np.zeros((data.shape[0], data.shape[0]))
    return squareform(pdist(data))


def silhouette(points: Any, labels: Sequence[int]) -> float:
    """
    Calculate the mean silhouette coefficient of a partition.

    For each point, a is the mean distance to the other members of its
    cluster (0 for a singleton) and b the smallest mean distance to another
    cluster (0 if there is none). The point's value is (b - a) / max(a, b),
    or 0 when both are 0.

    Args:
        points: Sequence of points
        labels: Cluster id per point

    Returns:
        Silhouette coefficient between -1 and 1
    """
    data = as_points(points)
    labels = np.asarray(labels, dtype=int)
    n_points = data.shape[0]

    if n_points == 0:
        return 0.0

    dists = distance_matrix(data)
    cluster_ids = np.unique(labels)
    values = np.zeros(n_points)

    for i in range(n_points):
        same = labels == labels[i]
        same[i] = False
        a = float(np.mean(dists[i, same])) if np.any(same) else 0.0

        b_values = [float(np.mean(dists[i, labels == c])) for c in cluster_ids if c != labels[i]]
        b = min(b_values) if b_values else 0.0

        if a == 0 and b == 0:
            values[i] = 0.0
        else:
            values[i] = (b - a) / max(a, b)

    return float(np.mean(values))


def wcss(points: Any, labels: Sequence[int]) -> float:
    """
    Within-cluster sum of squared distances to the cluster means.

    Args:
        points: Sequence of points
        labels: Cluster id per point

    Returns:
        Total within-cluster sum of squares
    """
    data = as_points(points)
    labels = np.asarray(labels, dtype=int)
    total = 0.0
    for c in np.unique(labels):
        members = data[labels == c]
        total += float(np.sum((members - members.mean(axis=0)) ** 2))
    return total


def candidate_ks(n_points: int, max_k: int) -> List[int]:
    """
    Candidate cluster counts: 2 .. min(max_k, n_points // 2, 6).
    """
    upper = min(max_k, n_points // 2, MAX_CANDIDATE_K)
    return list(range(2, upper + 1))


def elbow_k(candidates: Dict[int, KCandidate]) -> int:
    """
    Pick the elbow of the WCSS curve (largest second difference).

    Args:
        candidates: Evaluated candidates

    Returns:
        The elbow k (the smallest candidate when the curve is too short)
    """
    ks = sorted(candidates)
    if len(ks) < 3:
        return ks[0]

    values = [candidates[k].wcss for k in ks]
    second_diffs = [values[i - 1] - 2 * values[i] + values[i + 1] for i in range(1, len(values) - 1)]
    return ks[1 + int(np.argmax(second_diffs))]


def select_k(candidates: Dict[int, KCandidate], options: ClusteringOptions) -> int:
    """
    Choose k from evaluated candidates.

    The best silhouette at or above `min_silhouette` wins, unless the
    favored k is within `favor_margin` of it. With no qualifying candidate
    the favored k (if any) or the WCSS elbow is used.

    Args:
        candidates: Evaluated candidates
        options: Selection settings

    Returns:
        Chosen k
    """
    qualifying = [c for c in candidates.values() if c.silhouette >= options.min_silhouette]
    favored = candidates.get(options.favored_k) if options.favored_k is not None else None

    if qualifying:
        best = max(qualifying, key=lambda c: (c.silhouette, -c.k))
        if favored is not None and favored.silhouette >= best.silhouette - options.favor_margin:
            return favored.k
        return best.k

    if favored is not None:
        return favored.k
    return elbow_k(candidates)


def evaluate_candidates(points: Any,
                        options: Optional[ClusteringOptions] = None,
                        seed: Optional[int] = None) -> Dict[int, KCandidate]:
    """
    Run k-means for every candidate k and measure WCSS and silhouette.

    Args:
        points: Sequence of points
        options: Clustering settings
        seed: Optional seed

    Returns:
        Mapping of k to KCandidate (empty when there are too few points)
    """
    options = options or ClusteringOptions()
    data = as_points(points)
    rng = np.random.default_rng(seed)

    candidates = {}
    for k in candidate_ks(data.shape[0], options.max_k):
        labels = kmeans(data, k, options.max_iters, rng=rng)
        non_empty = len(np.unique(labels))
        if non_empty < k:
            logger.debug(f"Skipping k={k}: only {non_empty} clusters are non-empty")
            continue
        candidates[k] = KCandidate(k=k, wcss=wcss(data, labels), silhouette=silhouette(data, labels))
    return candidates


def choose_optimal_k(points: Any,
                     options: Optional[ClusteringOptions] = None,
                     seed: Optional[int] = None) -> int:
    """
    Choose the number of clusters for a set of points.

    Args:
        points: Sequence of points
        options: Clustering settings (max_k, thresholds, favored k)
        seed: Optional seed

    Returns:
        Chosen k (2 when there are too few points to compare candidates)
    """
    options = options or ClusteringOptions()
    candidates = evaluate_candidates(points, options, seed)
    if not candidates:
        return 2
    return select_k(candidates, options)


def cluster_points(points: Any,
                   options: Optional[ClusteringOptions] = None,
                   seed: Optional[int] = None) -> ClusterAssignment:
    """
    Choose k and cluster the points.

    Args:
        points: Sequence of points
        options: Clustering settings
        seed: Optional seed for reproducible runs

    Returns:
        ClusterAssignment
    """
    options = options or ClusteringOptions()
    data = as_points(points)
    candidates = evaluate_candidates(data, options, seed)
    k = select_k(candidates, options) if candidates else 2

    labels = kmeans(data, k, options.max_iters, seed=seed)
    if labels.size:
        k = int(len(np.unique(labels)))
    score = silhouette(data, labels)

    logger.info(f"Clustered {data.shape[0]} points into k={k} (silhouette {score:.3f})")

    return ClusterAssignment(labels=labels, k=k, score=score, candidates=candidates)
