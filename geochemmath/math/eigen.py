"""
Eigen-decomposition by power iteration for geochemmath.

This module extracts the leading eigenpairs of a symmetric matrix using
power iteration with Rayleigh-quotient convergence and Hotelling
deflation.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import numpy as np

logger = logging.getLogger(__name__)


DEFAULT_MAX_ITERS = 100
DEFAULT_TOLERANCE = 1e-8
DEFAULT_NOISE_FLOOR = 1e-10
SYMMETRY_TOLERANCE = 1e-8
RESIDUAL_TOLERANCE = 1e-3


@dataclass(frozen=True)
class EigenPair:
    """An eigenvalue and its unit-length eigenvector."""

    eigenvalue: float
    eigenvector: np.ndarray

    def to_dict(self) -> Dict[str, Any]:
        return {
            'eigenvalue': self.eigenvalue,
            'eigenvector': self.eigenvector.tolist()
        }


def normalize_vector(v: np.ndarray) -> np.ndarray:
    """
    Normalize a vector to unit length.

    Args:
        v: Vector to normalize

    Returns:
        Normalized vector (the zero vector is returned unchanged)
    """
    norm = np.linalg.norm(v)
    if norm == 0:
        return v
    return v / norm


def orient_vector(v: np.ndarray) -> np.ndarray:
    """
    Flip the sign of v so its largest-magnitude component is positive.

    Eigenvectors are only defined up to sign; this makes the output
    independent of the random start vector.
    """
    if v.size == 0:
        return v
    if v[np.argmax(np.abs(v))] < 0:
        return -v
    return v


def rayleigh_quotient(matrix: np.ndarray, v: np.ndarray) -> float:
    """
    Calculate v^T A v / v^T v.

    Args:
        matrix: Symmetric matrix A
        v: Vector

    Returns:
        Rayleigh quotient
    """
    denom = np.dot(v, v)
    if denom == 0:
        return 0.0
    return float(np.dot(v, matrix @ v) / denom)


def rand_starting_vec(n: int, rng: np.random.Generator) -> np.ndarray:
    """
    Generate a random starting vector for power iteration.

    Args:
        n: Dimension
        rng: Random generator

    Returns:
        Random unit vector
    """
    return normalize_vector(rng.uniform(-0.5, 0.5, size=n))


def power_iteration(matrix: np.ndarray,
                    iters: int = DEFAULT_MAX_ITERS,
                    tol: float = DEFAULT_TOLERANCE,
                    start_vector: Optional[np.ndarray] = None,
                    rng: Optional[np.random.Generator] = None) -> EigenPair:
    """
    Find the dominant eigenpair of a symmetric matrix.

    Iterates v <- normalize(A v) until the Rayleigh quotient changes by
    less than `tol` or `iters` iterations have run. Reaching the cap is not
    an error; the last estimate is returned.

    Args:
        matrix: Symmetric matrix
        iters: Maximum number of iterations
        tol: Convergence tolerance on the Rayleigh quotient
        start_vector: Initial vector (random if omitted)
        rng: Random generator used when no start vector is given

    Returns:
        EigenPair (eigenvalue 0 if A v vanishes)
    """
    n = matrix.shape[0]

    if start_vector is None:
        rng = rng if rng is not None else np.random.default_rng()
        vector = rand_starting_vec(n, rng)
    else:
        vector = normalize_vector(np.array(start_vector, dtype=float))

    eigval = 0.0
    for i in range(iters):
        product = matrix @ vector
        if np.linalg.norm(product) < DEFAULT_NOISE_FLOOR:
            # The start vector lies in the null space of what is left
            return EigenPair(eigenvalue=0.0, eigenvector=vector)

        vector = normalize_vector(product)
        new_eigval = rayleigh_quotient(matrix, vector)

        if abs(new_eigval - eigval) < tol:
            eigval = new_eigval
            logger.debug(f"Power iteration converged after {i + 1} iterations (eigenvalue {eigval:.6g})")
            break
        eigval = new_eigval
    else:
        logger.debug(f"Power iteration stopped at the {iters} iteration cap (eigenvalue {eigval:.6g})")

    return EigenPair(eigenvalue=eigval, eigenvector=vector)


def residual_norm(matrix: np.ndarray, pair: EigenPair) -> float:
    """Norm of A v - lambda v; zero for an exact eigenpair."""
    v = pair.eigenvector
    return float(np.linalg.norm(matrix @ v - pair.eigenvalue * v))


def gershgorin_bound(matrix: np.ndarray) -> float:
    """Upper bound on |lambda| for every eigenvalue: the largest absolute row sum."""
    if matrix.size == 0:
        return 0.0
    return float(np.max(np.sum(np.abs(matrix), axis=1)))


def dominant_pair(matrix: np.ndarray,
                  iters: int = DEFAULT_MAX_ITERS,
                  tol: float = DEFAULT_TOLERANCE,
                  rng: Optional[np.random.Generator] = None) -> EigenPair:
    """
    Power iteration that survives eigenvalues of equal magnitude and opposite sign.

    When +lambda and -lambda dominate together the iterate alternates
    between two vectors and the Rayleigh quotient settles on a value that
    is not an eigenvalue. A large residual detects this; the iteration is
    then rerun on A + sI, with s the Gershgorin bound, whose dominant
    eigenvalue is the largest algebraic eigenvalue of A shifted by s.

    Args:
        matrix: Symmetric matrix
        iters: Maximum number of iterations per run
        tol: Convergence tolerance on the Rayleigh quotient
        rng: Random generator for start vectors

    Returns:
        EigenPair of the original matrix
    """
    pair = power_iteration(matrix, iters, tol, rng=rng)
    scale = gershgorin_bound(matrix)
    residual = residual_norm(matrix, pair)
    if residual <= RESIDUAL_TOLERANCE * max(scale, 1.0):
        return pair

    logger.debug(f"Residual {residual:.3g} after power iteration, retrying with shift {scale:.6g}")
    shifted = power_iteration(matrix + scale * np.eye(matrix.shape[0]), iters, tol, rng=rng)
    vector = shifted.eigenvector
    candidate = EigenPair(eigenvalue=rayleigh_quotient(matrix, vector), eigenvector=vector)

    if residual_norm(matrix, candidate) < residual:
        return candidate
    return pair


def deflate(matrix: np.ndarray, pair: EigenPair) -> np.ndarray:
    """
    Remove an eigenpair from a matrix: A - lambda v v^T.

    Args:
        matrix: Symmetric matrix
        pair: Eigenpair to remove

    Returns:
        New deflated matrix
    """
    v = pair.eigenvector
    return matrix - pair.eigenvalue * np.outer(v, v)


def check_symmetric(matrix: Any) -> np.ndarray:
    """
    Validate and copy a square symmetric matrix.

    Raises:
        ValueError: If the matrix is not square, not finite or not symmetric
    """
    a = np.array(matrix, dtype=float)
    if a.ndim != 2 or a.shape[0] != a.shape[1]:
        raise ValueError(f"Expected a square matrix, got shape {a.shape}")
    if not np.all(np.isfinite(a)):
        raise ValueError("Matrix contains non-finite values")
    if not np.allclose(a, a.T, atol=SYMMETRY_TOLERANCE):
        raise ValueError("Matrix is not symmetric")
    return a


def top_eigen_pairs(matrix: Any,
                    k: int,
                    max_iters: int = DEFAULT_MAX_ITERS,
                    tol: float = DEFAULT_TOLERANCE,
                    noise_floor: float = DEFAULT_NOISE_FLOOR,
                    seed: Optional[int] = None) -> List[EigenPair]:
    """
    Extract up to k leading eigenpairs of a symmetric matrix.

    Each dominant pair is found by `dominant_pair` and then deflated out.
    Extraction stops when an eigenvalue falls within `noise_floor` of zero;
    negative eigenvalues are deflated but not reported. Fewer than k pairs
    may be returned and callers must cope with that.

    Args:
        matrix: Symmetric matrix
        k: Number of eigenpairs requested (1 <= k <= dimension)
        max_iters: Iteration cap per eigenpair
        tol: Rayleigh-quotient convergence tolerance
        noise_floor: Eigenvalues with |lambda| <= noise_floor are discarded
        seed: Optional seed for the random start vectors

    Returns:
        Eigenpairs sorted by descending eigenvalue
    """
    work = check_symmetric(matrix)
    n = work.shape[0]

    if k < 1 or k > n:
        raise ValueError(f"k must be between 1 and {n}, got {k}")

    rng = np.random.default_rng(seed)
    pairs = []

    # Negative eigenvalues use up extraction attempts, so allow up to n
    for _ in range(n):
        if len(pairs) >= k:
            break

        pair = dominant_pair(work, max_iters, tol, rng=rng)
        if abs(pair.eigenvalue) <= noise_floor:
            break

        work = deflate(work, pair)
        if pair.eigenvalue > 0:
            pairs.append(EigenPair(eigenvalue=pair.eigenvalue,
                                   eigenvector=orient_vector(pair.eigenvector)))
        else:
            logger.debug(f"Skipping negative eigenvalue {pair.eigenvalue:.6g}")

    pairs.sort(key=lambda p: p.eigenvalue, reverse=True)

    if len(pairs) < k:
        logger.debug(f"Requested {k} eigenpairs, found {len(pairs)} informative ones")

    return pairs
