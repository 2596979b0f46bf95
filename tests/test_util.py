import numpy as np
import pytest

from dynmix.util import DimensionMismatch, check_dimensions, check_discounts, \
    ensure_rng, find_assignment


def make_problem(k=3, n=3, p=(1, 2, 3), nreps=4, T=10):
    Y = np.ones((T, n * nreps))
    F = [np.ones((n, p[j])) for j in range(k)]
    G = [np.ones((p[j], p[j])) for j in range(k)]
    return Y, F, G


def test_check_dimensions():
    Y, F, G = make_problem()
    n, nreps, p, T, k, index_map = check_dimensions(Y, F, G)

    assert k == 3
    assert n == 3
    assert p == [1, 2, 3]
    assert nreps == 4
    assert T == 10
    assert index_map == [slice(0, 3), slice(3, 6), slice(6, 9), slice(9, 12)]


def test_index_map_partitions_columns():
    Y, F, G = make_problem(k=2, n=2, p=(2, 2), nreps=5, T=4)
    n, nreps, _, _, _, index_map = check_dimensions(Y, F, G)

    cols = np.concatenate([np.arange(Y.shape[1])[s] for s in index_map])
    assert n * nreps == Y.shape[1]
    assert np.array_equal(cols, np.arange(Y.shape[1]))


def test_cluster_count_mismatch():
    Y, F, G = make_problem()
    with pytest.raises(DimensionMismatch):
        check_dimensions(Y, F, G[:2])


def test_inconsistent_observational_dimensions():
    Y, F, G = make_problem()
    F[1] = np.ones((2, 2))
    with pytest.raises(DimensionMismatch):
        check_dimensions(Y, F, G)


def test_non_square_evolution():
    Y, F, G = make_problem()
    G[2] = np.ones((3, 2))
    with pytest.raises(DimensionMismatch):
        check_dimensions(Y, F, G)


def test_inconsistent_state_dimensions():
    Y, F, G = make_problem()
    F[0] = np.ones((3, 2))
    with pytest.raises(DimensionMismatch):
        check_dimensions(Y, F, G)


def test_invalid_number_of_replicates():
    Y, F, G = make_problem()
    with pytest.raises(DimensionMismatch, match="replicates"):
        check_dimensions(Y[:, :11], F, G)


def test_other_arithmetic_errors_propagate():
    Y, F, G = make_problem(k=1, n=0, p=(1,))
    with pytest.raises(ZeroDivisionError):
        check_dimensions(Y, F, G)


def test_check_discounts():
    assert np.allclose(check_discounts([0.5, 1.0]), [0.5, 1.0])
    with pytest.raises(ValueError):
        check_discounts([0.5, 0.0])
    with pytest.raises(ValueError):
        check_discounts([1.2])
    with pytest.raises(ValueError):
        check_discounts([0.5, 0.5], size=3)


def test_ensure_rng():
    rng = np.random.default_rng(0)
    assert ensure_rng(rng) is rng
    assert ensure_rng(1).random() == np.random.default_rng(1).random()


def test_find_assignment():
    scores = np.array([[0., 5., 1.],
                       [4., 0., 0.],
                       [0., 1., 3.]])
    assert np.array_equal(find_assignment(scores), [1, 0, 2])
