import autograd.numpy as np
import numpy.random as npr
from scipy.optimize import linear_sum_assignment


class DimensionMismatch(ValueError):
    """
    The observations, observation matrices and evolution matrices do
    not describe a consistent problem.
    """
    pass


class InvalidDistributionParameter(ValueError):
    """
    A distribution was requested with parameters for which the
    quantity of interest (e.g. a mode) is not defined.
    """
    pass


def check_dimensions(Y, F_specs, G_specs):
    """
    Check the problem dimensions and return them.

    Parameters
    ----------
    Y : array_like (T, n * nreps)
        Observations. Column block l holds the l-th replicate.

    F_specs : list of array_like (n, p_j)
        Observational matrices, one per cluster.

    G_specs : list of array_like (p_j, p_j)
        Evolutional matrices, one per cluster.

    Returns
    -------
    n : int
        Observational dimension.

    nreps : int
        Number of replicates.

    p : list of int
        State dimension of each cluster.

    T : int
        Number of time steps.

    k : int
        Number of clusters.

    index_map : list of slice
        index_map[l] selects the columns of Y belonging to replicate l.
    """
    # Number of clusters
    k = len(F_specs)
    if len(G_specs) != k:
        raise DimensionMismatch("F_specs' length does not match G_specs'.")
    if k == 0:
        raise DimensionMismatch("At least one cluster specification is required.")

    # Observational dimensions
    if any(np.ndim(F) != 2 for F in F_specs):
        raise DimensionMismatch("Matrices in F_specs should be two dimensional.")
    n = np.shape(F_specs[0])[0]
    for F in F_specs[1:]:
        if np.shape(F)[0] != n:
            raise DimensionMismatch("F_specs present inconsistent observational dimensions.")

    # Evolutional dimensions
    p = []
    for F, G in zip(F_specs, G_specs):
        if np.ndim(G) != 2 or np.shape(G)[0] != np.shape(G)[1]:
            raise DimensionMismatch("Matrices in G_specs should be square.")
        if np.shape(F)[1] != np.shape(G)[0]:
            raise DimensionMismatch("F_specs present inconsistent state dimensions.")
        p.append(np.shape(G)[0])

    # Number of replicates
    if np.ndim(Y) != 2:
        raise DimensionMismatch("Y should be a (T, n * nreps) matrix.")
    nreps, remainder = divmod(np.shape(Y)[1], n)
    if remainder != 0:
        raise DimensionMismatch("Invalid implicit number of replicates")

    # Time window length
    T = np.shape(Y)[0]

    index_map = [slice(n * l, n * l + n) for l in range(nreps)]

    return n, nreps, p, T, k, index_map


def check_discounts(deltas, size=None):
    """
    Make sure the discount factors lie in (0, 1].
    """
    deltas = np.atleast_1d(np.asarray(deltas, dtype=float))
    if size is not None and deltas.shape != (size,):
        raise ValueError("Expected {} discount factors, got {}.".format(size, deltas.shape))
    if np.any(deltas <= 0) or np.any(deltas > 1):
        raise ValueError("Discount factors must lie in (0, 1]. Got {}.".format(deltas))
    return deltas


def ensure_rng(rng=None):
    """
    Return a numpy Generator. Seeds and None are turned into new
    generators; generators are passed through untouched.
    """
    if isinstance(rng, npr.Generator):
        return rng
    return npr.default_rng(rng)


def find_assignment(scores):
    """
    Given a (K, K) matrix of scores (higher is better) with rows indexing
    models and columns indexing candidates, return perm such that
    model j is assigned candidate perm[j] and the total score is maximal.
    """
    scores = np.asarray(scores)
    assert scores.ndim == 2 and scores.shape[0] == scores.shape[1]
    rows, cols = linear_sum_assignment(-scores)
    perm = np.zeros(scores.shape[0], dtype=int)
    perm[rows] = cols
    return perm


def replicate_blocks(Y, n):
    """
    Reshape a (T, n * nreps) observation matrix into (T, nreps, n).
    """
    T, D = Y.shape
    assert D % n == 0
    return np.reshape(Y, (T, D // n, n))
