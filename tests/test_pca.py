"""
Tests for the PCA module.
"""

import pytest
import numpy as np
import pandas as pd
import sys
import os
from sklearn.decomposition import PCA

# Add the parent directory to the path to import the module
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from geochemmath.errors import InsufficientDataError
from geochemmath.math.clusters import ClusteringOptions
from geochemmath.math.pca import (
    PCAResult, min_valid_fields, prepare_matrix, standardize, covariance_matrix,
    run_pca, cluster_pca_result, pca_with_clusters
)


# Set random seed for reproducibility
np.random.seed(42)


def make_rows(data, names):
    return [{name: float(value) for name, value in zip(names, row)} for row in data]


def structured_data(n=60, seed=5):
    """Two latent factors spread over four variables."""
    rng = np.random.RandomState(seed)
    f = rng.normal(size=n)
    g = rng.normal(size=n)
    data = np.column_stack([
        f,
        f + 0.2 * rng.normal(size=n),
        g,
        g + 0.6 * rng.normal(size=n),
    ])
    return data, ['SiO2', 'Al2O3', 'MgO', 'FeO']


def grouped_rows(seed=11):
    """Three well separated sample populations."""
    rng = np.random.RandomState(seed)
    centers = [(0, 0, 0), (8, 8, 0), (0, 8, 8)]
    data = np.vstack([rng.normal(loc=c, scale=0.4, size=(15, 3)) for c in centers])
    return make_rows(data, ['a', 'b', 'c']), ['a', 'b', 'c']


class TestPreparation:
    """Tests for row admission, imputation and standardization."""

    def test_min_valid_fields(self):
        """Rows need 80% of fields and never fewer than two."""
        assert min_valid_fields(2) == 2
        assert min_valid_fields(3) == 3
        assert min_valid_fields(5) == 4
        assert min_valid_fields(10) == 8

    def test_admission_and_imputation(self):
        """Sparse rows are dropped and gaps are filled with column means."""
        names = ['a', 'b', 'c', 'd', 'e']
        rows = [
            {'a': 1, 'b': 2, 'c': 3, 'd': 4, 'e': 5},
            {'a': 3, 'b': 'bdl', 'c': 5, 'd': 6, 'e': 7},
            {'a': 100, 'b': 200, 'c': None},
            {'a': 5, 'b': 6, 'c': 7, 'd': 8, 'e': 9},
        ]
        data, retained, counts = prepare_matrix(rows, names)

        assert retained.tolist() == [True, True, False, True]
        assert data.shape == (3, 5)
        # Mean of b over every parseable value, excluded row included
        assert np.isclose(data[1, 1], (2 + 200 + 6) / 3)
        assert counts['b'] == (3, 4)
        assert counts['d'] == (3, 4)

    def test_standardize(self):
        """Test z-scores with the n-1 standard deviation."""
        data = np.array([[1.0, 5.0], [2.0, 5.0], [3.0, 5.0]])
        z = standardize(data)
        assert np.allclose(z[:, 0], [-1.0, 0.0, 1.0])
        assert np.allclose(z[:, 1], 0.0)

    def test_covariance_is_correlation(self):
        """The covariance of z-scores is the correlation matrix."""
        data, _ = structured_data()
        cov = covariance_matrix(standardize(data))
        assert np.allclose(cov, np.corrcoef(data, rowvar=False))


class TestRunPCA:
    """Tests for the PCA run."""

    def test_correlated_pair_dominates(self):
        """Two perfectly correlated variables and one independent give PC1 > 66%."""
        rng = np.random.RandomState(0)
        x = rng.normal(size=40)
        z = rng.normal(size=40)
        rows = make_rows(np.column_stack([x, 2 * x, z]), ['x', 'y', 'z'])

        result = run_pca(rows, ['x', 'y', 'z'], seed=0)
        assert result.explained_variance[0] > 66.0

    def test_matches_sklearn(self):
        """Variance shares and scores match sklearn on standardized data."""
        data, names = structured_data()
        result = run_pca(make_rows(data, names), names, n_components=2,
                         max_iters=2000, tol=1e-14, seed=0)

        z = (data - data.mean(axis=0)) / data.std(axis=0, ddof=1)
        reference = PCA().fit(z)

        assert np.allclose(result.explained_variance / 100.0,
                           reference.explained_variance_ratio_[:2], atol=1e-4)
        assert np.allclose(result.eigenvalues, reference.explained_variance_[:2], atol=1e-4)
        assert np.allclose(np.abs(result.loadings), np.abs(reference.components_[:2]), atol=1e-3)
        assert np.allclose(np.abs(result.scores), np.abs(reference.transform(z)[:, :2]), atol=1e-2)

    def test_variance_invariants(self):
        """Eigenvalues descend and cumulative variance stays within 100%."""
        data, names = structured_data(seed=9)
        result = run_pca(make_rows(data, names), names, n_components=4)

        assert list(result.eigenvalues) == sorted(result.eigenvalues, reverse=True)
        assert np.all(result.eigenvalues > 0)
        assert np.all(np.diff(result.cumulative_variance) >= 0)
        assert result.cumulative_variance[-1] <= 100.0 + 1e-9
        assert np.allclose(result.cumulative_variance, np.cumsum(result.explained_variance))

    def test_loadings_are_unit_vectors(self):
        """Loadings are raw unit eigenvectors."""
        data, names = structured_data()
        result = run_pca(make_rows(data, names), names)
        assert result.loadings.shape == (2, 4)
        assert np.allclose(np.linalg.norm(result.loadings, axis=1), 1.0)

    def test_component_count(self):
        """Component count is capped by variables and retained rows."""
        data, names = structured_data()
        rows = make_rows(data, names)

        assert run_pca(rows, names).n_components == 2
        assert run_pca(rows, names, n_components=10).n_components <= 4

        small = run_pca(rows[:3], names[:3], n_components=3)
        assert small.n_components <= 2

    def test_excluded_rows(self):
        """Excluded rows keep their position with zero scores."""
        data, names = structured_data()
        rows = make_rows(data, names)
        rows[4] = {'SiO2': 1.0, 'MgO': 'n.d.'}

        result = run_pca(rows, names)
        assert result.scores.shape == (len(rows), 2)
        assert not result.retained[4]
        assert np.all(result.scores[4] == 0)
        assert result.retained.sum() == len(rows) - 1
        assert result.retained_scores.shape == (len(rows) - 1, 2)

    def test_dataframe_input(self):
        """DataFrames are accepted."""
        data, names = structured_data()
        result = run_pca(pd.DataFrame(data, columns=names), names)
        assert result.variable_names == tuple(names)

    def test_too_few_variables(self):
        """Fewer than two variables raise with counts."""
        data, names = structured_data()
        with pytest.raises(InsufficientDataError) as excinfo:
            run_pca(make_rows(data, names), ['SiO2'])
        assert 'SiO2' in excinfo.value.valid_counts

    def test_too_few_rows(self):
        """Fewer than three usable rows raise with a per-variable breakdown."""
        rows = [
            {'Fe': 1, 'Mg': 2},
            {'Fe': 2, 'Mg': 'bdl'},
            {'Fe': 3, 'Mg': 4},
            {'Fe': None, 'Mg': 5},
        ]
        with pytest.raises(InsufficientDataError) as excinfo:
            run_pca(rows, ['Fe', 'Mg'])

        error = excinfo.value
        assert error.retained_rows == 2
        assert error.valid_counts == {'Fe': (3, 4), 'Mg': (3, 4)}
        assert 'Fe: 3/4 valid' in str(error)

    @pytest.mark.parametrize('n_components', [0, -2])
    def test_invalid_component_count(self, n_components):
        """Component counts below one are rejected up front."""
        data, names = structured_data()
        with pytest.raises(ValueError, match='n_components must be at least 1'):
            run_pca(make_rows(data, names), names, n_components=n_components)

    def test_constant_variables(self):
        """All-constant data has no informative components."""
        rows = [{'a': 1, 'b': 2} for _ in range(5)]
        with pytest.raises(InsufficientDataError):
            run_pca(rows, ['a', 'b'])

    def test_to_dict(self):
        """Test plain-data conversion."""
        data, names = structured_data()
        result = run_pca(make_rows(data, names), names)
        data_dict = result.to_dict()

        assert data_dict['variable_names'] == names
        assert data_dict['n_components'] == 2
        assert data_dict['clusters'] is None
        assert len(data_dict['scores']) == len(data)

    def test_loadings_matrix(self):
        """Loadings are available with component and variable names."""
        data, names = structured_data()
        loadings = run_pca(make_rows(data, names), names).loadings_matrix()
        assert loadings.rownames() == ['PC1', 'PC2']
        assert loadings.colnames() == names


class TestClusteredPCA:
    """Tests for clustering PCA scores."""

    def test_cluster_result(self):
        """Clusters align with rows and excluded rows get -1."""
        rows, names = grouped_rows()
        rows.append({'a': 1.0})

        result = run_pca(rows, names, seed=0)
        clustered = cluster_pca_result(result, seed=0)

        assert result.clusters is None
        assert clustered.clusters.shape == (len(rows),)
        assert clustered.clusters[-1] == -1
        k = clustered.cluster_assignment.k
        assert set(clustered.clusters[:-1]) == set(range(k))

    def test_separated_populations(self):
        """Three separated populations are recovered."""
        rows, names = grouped_rows()
        clustered = pca_with_clusters(rows, names, options=ClusteringOptions(favored_k=None), seed=0)

        assert clustered.cluster_assignment.k == 3
        labels = clustered.clusters
        for start in (0, 15, 30):
            assert len(set(labels[start:start + 15])) == 1
        assert len(set(labels)) == 3

    def test_to_dict_with_clusters(self):
        """Cluster information is included once clustered."""
        rows, names = grouped_rows()
        data = pca_with_clusters(rows, names, seed=0).to_dict()
        assert len(data['clusters']) == len(rows)
        assert data['cluster_assignment']['k'] == 3
