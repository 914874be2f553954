"""
Tests for the clustering module.
"""

import pytest
import numpy as np
import sys
import os
from sklearn.metrics import silhouette_score

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from geochemmath.math.clusters import (
    Cluster, ClusteringOptions, KCandidate, as_points, init_clusters,
    assign_points, kmeans, distance_matrix, silhouette, wcss, candidate_ks, elbow_k,
    select_k, evaluate_candidates, choose_optimal_k, cluster_points
)


# Set random seed for reproducibility
np.random.seed(42)


def blobs(centers, n_per=20, scale=0.3, seed=0):
    rng = np.random.RandomState(seed)
    points = np.vstack([rng.normal(loc=c, scale=scale, size=(n_per, 2)) for c in centers])
    truth = np.repeat(np.arange(len(centers)), n_per)
    return points, truth


def same_partition(labels, truth):
    """Check that two labelings group the points identically."""
    mapping = {}
    for label, expected in zip(labels, truth):
        if mapping.setdefault(expected, label) != label:
            return False
    return len(set(mapping.values())) == len(mapping)


class TestCluster:
    """Tests for the Cluster class."""

    def test_init(self):
        """Test Cluster initialization."""
        cluster = Cluster(np.array([1.0, 2.0]), [1, 3], 0)
        assert np.array_equal(cluster.center, [1.0, 2.0])
        assert cluster.members == [1, 3]
        assert cluster.id == 0

        cluster_default = Cluster([0.0, 0.0])
        assert cluster_default.members == []
        assert cluster_default.id is None

    def test_update_center(self):
        """Test moving a center to its members' mean."""
        data = np.array([[1.0, 1.0], [2.0, 2.0], [3.0, 3.0]])
        cluster = Cluster(np.array([0.0, 0.0]), [0, 1])
        cluster.update_center(data)
        assert np.allclose(cluster.center, [1.5, 1.5])

    def test_empty_cluster_keeps_center(self):
        """A cluster without members keeps its center."""
        cluster = Cluster(np.array([5.0, 5.0]))
        cluster.update_center(np.zeros((3, 2)))
        assert np.allclose(cluster.center, [5.0, 5.0])


class TestHelpers:
    """Tests for the helper functions."""

    def test_as_points(self):
        """Points are restricted to the first two dimensions."""
        points = as_points([[1, 2, 3], [4, 5, 6]])
        assert points.shape == (2, 2)
        assert as_points([1.0, 2.0]).shape == (2, 1)
        assert as_points([]).shape == (0, 2)

    def test_farthest_point_seeding(self):
        """Later seeds are the points farthest from earlier ones."""
        data = np.array([[0.0, 0.0], [0.1, 0.0], [10.0, 0.0], [5.0, 0.0]])
        clusters = init_clusters(data, 3, np.random.default_rng(0))
        centers = {tuple(c.center) for c in clusters}

        assert len(clusters) == 3
        assert [c.id for c in clusters] == [0, 1, 2]
        assert (10.0, 0.0) in centers or (0.0, 0.0) in centers
        assert (5.0, 0.0) in centers

    def test_assign_points(self):
        """Points go to their nearest center."""
        clusters = [Cluster([0.0, 0.0], id=0), Cluster([10.0, 0.0], id=1)]
        labels = assign_points(np.array([[1.0, 0.0], [9.0, 1.0], [4.0, 0.0]]), clusters)
        assert labels.tolist() == [0, 1, 0]

    def test_distance_matrix(self):
        """Test the pairwise distance matrix."""
        dists = distance_matrix(np.array([[0.0, 0.0], [3.0, 4.0]]))
        assert np.allclose(dists, [[0.0, 5.0], [5.0, 0.0]])
        assert distance_matrix(np.array([[1.0, 1.0]])).shape == (1, 1)


class TestKMeans:
    """Tests for k-means."""

    def test_identity_assignment(self):
        """With no more points than clusters, every point is its own cluster."""
        assert kmeans([[0, 0], [5, 5]], 3).tolist() == [0, 1]
        assert kmeans([[0, 0], [5, 5], [9, 9]], 3).tolist() == [0, 1, 2]

    def test_empty(self):
        """No points give no labels."""
        assert kmeans([], 2).tolist() == []

    def test_invalid_k(self):
        """k must be positive."""
        with pytest.raises(ValueError):
            kmeans([[0, 0], [1, 1]], 0)

    def test_separated_blobs(self):
        """Well separated blobs are recovered exactly."""
        points, truth = blobs([(0, 0), (10, 0), (0, 10)])
        labels = kmeans(points, 3, seed=1)

        assert set(labels.tolist()) == {0, 1, 2}
        assert same_partition(labels, truth)

    def test_label_range(self):
        """Labels always lie in [0, k)."""
        points = np.random.normal(size=(50, 2))
        for k in (1, 2, 4, 7):
            labels = kmeans(points, k, seed=k)
            assert labels.min() >= 0
            assert labels.max() < k

    def test_only_first_two_dimensions(self):
        """Extra dimensions do not affect the clustering."""
        points, truth = blobs([(0, 0), (10, 10)])
        noisy = np.column_stack([points, np.random.normal(scale=100, size=len(points))])
        assert same_partition(kmeans(noisy, 2, seed=0), truth)

    def test_duplicate_points_leave_no_gaps(self):
        """Centers seeded on the same spot do not leave empty cluster ids."""
        points = [[0.0, 0.0]] * 10 + [[1.0, 1.0]] * 2
        labels = kmeans(points, 3, seed=0)

        assert set(labels.tolist()) == {0, 1}
        assert labels[0] != labels[-1]

    def test_seeded_runs_repeat(self):
        """The same seed gives the same labels."""
        points = np.random.normal(size=(40, 2))
        assert np.array_equal(kmeans(points, 3, seed=5), kmeans(points, 3, seed=5))


class TestQuality:
    """Tests for silhouette and WCSS."""

    def test_silhouette_matches_sklearn(self):
        """Test against sklearn on a partition without singletons."""
        points, truth = blobs([(0, 0), (3, 0), (0, 3)], scale=1.0, seed=4)
        labels = kmeans(points, 3, seed=0)
        assert np.isclose(silhouette(points, labels), silhouette_score(points, labels))
        assert np.isclose(silhouette(points, truth), silhouette_score(points, truth))

    def test_silhouette_bounds(self):
        """Silhouette lies in [-1, 1]."""
        points = np.random.normal(size=(30, 2))
        labels = np.random.randint(0, 3, size=30)
        assert -1.0 <= silhouette(points, labels) <= 1.0

    def test_silhouette_singletons(self):
        """A singleton has a = 0, and identical points score 0."""
        points = np.array([[0.0, 0.0], [0.0, 1.0], [10.0, 0.0]])
        value = silhouette(points, [0, 0, 1])
        assert 0 < value <= 1
        assert silhouette(np.zeros((3, 2)), [0, 0, 1]) == 0.0

    def test_silhouette_empty(self):
        """No points give 0."""
        assert silhouette([], []) == 0.0

    def test_wcss(self):
        """Test the within-cluster sum of squares."""
        points = np.array([[0.0, 0.0], [2.0, 0.0], [10.0, 10.0]])
        assert np.isclose(wcss(points, [0, 0, 1]), 2.0)
        assert np.isclose(wcss(points, [0, 1, 2]), 0.0)


class TestChooseK:
    """Tests for choosing the number of clusters."""

    def test_candidate_ks(self):
        """Candidates run from 2 to min(max_k, n // 2, 6)."""
        assert candidate_ks(100, 8) == [2, 3, 4, 5, 6]
        assert candidate_ks(10, 8) == [2, 3, 4, 5]
        assert candidate_ks(20, 3) == [2, 3]
        assert candidate_ks(3, 8) == []

    def test_elbow(self):
        """The elbow is the largest second difference of WCSS."""
        candidates = {k: KCandidate(k, w, 0.0) for k, w in zip([2, 3, 4, 5], [100.0, 30.0, 25.0, 22.0])}
        assert elbow_k(candidates) == 3

    def test_best_silhouette(self):
        """Without a favored k the best silhouette wins."""
        candidates = {2: KCandidate(2, 10, 0.70), 3: KCandidate(3, 5, 0.68), 4: KCandidate(4, 3, 0.40)}
        assert select_k(candidates, ClusteringOptions(favored_k=None)) == 2

    def test_favored_within_margin(self):
        """The favored k wins when close enough to the best."""
        candidates = {2: KCandidate(2, 10, 0.70), 3: KCandidate(3, 5, 0.68), 4: KCandidate(4, 3, 0.40)}
        assert select_k(candidates, ClusteringOptions()) == 3

    def test_favored_outside_margin(self):
        """The favored k loses when clearly worse."""
        candidates = {2: KCandidate(2, 10, 0.80), 3: KCandidate(3, 5, 0.60)}
        assert select_k(candidates, ClusteringOptions()) == 2

    def test_no_qualifying_candidate(self):
        """Weak structure falls back to the favored k, then the elbow."""
        candidates = {k: KCandidate(k, w, 0.05) for k, w in zip([2, 3, 4, 5], [100.0, 90.0, 40.0, 35.0])}
        assert select_k(candidates, ClusteringOptions()) == 3
        assert select_k(candidates, ClusteringOptions(favored_k=None)) == 4

    def test_too_few_points(self):
        """Too few points to compare candidates give k = 2."""
        assert evaluate_candidates([[0, 0], [1, 1], [2, 2]]) == {}
        assert choose_optimal_k([[0, 0], [1, 1], [2, 2]]) == 2

    def test_two_populations(self):
        """Two distant populations give k = 2, with or without the preference."""
        points, _ = blobs([(0, 0), (20, 0)], seed=2)
        assert choose_optimal_k(points, seed=0) == 2
        assert choose_optimal_k(points, ClusteringOptions(favored_k=None), seed=0) == 2

    def test_four_populations(self):
        """Four distant populations give k = 4 without the preference."""
        points, _ = blobs([(0, 0), (20, 0), (0, 20), (20, 20)], seed=3)
        assert choose_optimal_k(points, ClusteringOptions(favored_k=None), seed=0) == 4


class TestClusterPoints:
    """Tests for the combined clustering step."""

    def test_assignment(self):
        """Test the assignment for three populations."""
        points, truth = blobs([(0, 0), (12, 0), (6, 10)], seed=6)
        assignment = cluster_points(points, seed=0)

        assert assignment.k == 3
        assert same_partition(assignment.labels, truth)
        assert np.isclose(assignment.score, silhouette(points, assignment.labels))
        assert 3 in assignment.candidates
        assert set(assignment.candidates) <= {2, 3, 4, 5, 6}

    def test_to_dict(self):
        """Test plain-data conversion."""
        points, _ = blobs([(0, 0), (12, 0)], n_per=5, seed=1)
        data = cluster_points(points, seed=0).to_dict()
        assert len(data['labels']) == 10
        assert data['k'] == 2
        assert 2 in data['candidates']
        assert set(data['candidates']) <= {2, 3, 4, 5}

    def test_duplicate_points(self):
        """The reported k matches the clusters that actually hold points."""
        points = [[0.0, 0.0]] * 10 + [[1.0, 1.0]] * 2
        assignment = cluster_points(points, seed=0)

        assert assignment.k == 2
        assert set(assignment.labels.tolist()) == {0, 1}
        assert set(assignment.candidates) == {2}
        assert np.isclose(assignment.score, 1.0)

    def test_identical_points(self):
        """Points at one location form a single cluster."""
        assignment = cluster_points([[2.0, 2.0]] * 8, seed=0)
        assert assignment.k == 1
        assert assignment.labels.tolist() == [0] * 8
