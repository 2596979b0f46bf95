import numpy as np
import pytest

from dynmix import dlm
from dynmix.util import DimensionMismatch


def local_level(T=40, level=5., sigma=0., nreps=1, seed=0):
    rng = np.random.default_rng(seed)
    return level + sigma * rng.standard_normal((T, nreps))


def test_kalman_filter_shapes_and_discount():
    F = np.array([[1., 0.]])
    G = np.array([[1., 1.], [0., 1.]])
    Y = local_level(T=25, sigma=1.)
    filtered = dlm.kalman_filter(Y, F, G, np.eye(1), 0.8)

    assert filtered["a"].shape == (25, 2)
    assert filtered["m"].shape == (25, 2)
    assert filtered["R"].shape == (25, 2, 2)
    assert filtered["C"].shape == (25, 2, 2)
    # W_t = P_t (1 - delta) / delta and R_t = P_t / delta
    assert np.allclose(filtered["W"], 0.2 * filtered["R"])


def test_estimate_constant_series():
    F, G = np.eye(1), np.eye(1)
    theta, V = dlm.estimate(local_level(), F, G, 0.7)

    assert theta.shape == (40, 1)
    assert V.shape == (1, 1)
    assert np.allclose(theta[5:], 5., atol=1e-3)
    assert V[0, 0] < 1e-2


def test_estimate_noise_variance():
    F, G = np.eye(1), np.eye(1)
    Y = local_level(T=500, level=0., sigma=2., seed=1)
    _, V = dlm.estimate(Y, F, G, 0.99)
    assert 1. < V[0, 0] < 8.


def test_estimate_respects_weights():
    F, G = np.eye(1), np.eye(1)
    Y = np.column_stack((local_level(level=0.), local_level(level=10.)))
    weights = np.column_stack((np.ones(40), np.zeros(40)))
    theta, _ = dlm.estimate(Y, F, G, 0.7, weights=weights)
    assert np.allclose(theta[10:], 0., atol=1e-2)

    theta, _ = dlm.estimate(Y, F, G, 0.7)
    assert np.allclose(theta[10:], 5., atol=1e-2)


def test_zero_weight_skips_update():
    F, G = np.eye(1), np.eye(1)
    Y = local_level(T=10, sigma=1.)
    weights = np.ones((10, 1))
    weights[4] = 0
    filtered = dlm.kalman_filter(Y, F, G, np.eye(1), 0.9, weights=weights)

    assert np.allclose(filtered["m"][4], filtered["a"][4])
    assert np.allclose(filtered["C"][4], filtered["R"][4])
    assert np.all(np.isfinite(filtered["m"]))


def test_smoother_matches_filter_at_the_end():
    F = np.array([[1., 0.]])
    G = np.array([[1., 1.], [0., 1.]])
    Y = local_level(T=30, sigma=0.5, seed=3)
    filtered = dlm.kalman_filter(Y, F, G, 0.25 * np.eye(1), 0.9)
    s, S = dlm.kalman_smoother(filtered, G)

    assert np.allclose(s[-1], filtered["m"][-1])
    assert np.allclose(S[-1], filtered["C"][-1])
    assert np.all(np.diagonal(S, axis1=1, axis2=2) <= np.diagonal(filtered["C"], axis1=1, axis2=2) + 1e-10)


def test_evolutional_covariances():
    F = np.array([[1., 0.], [0., 1.]])
    G = np.eye(2)
    Y = np.tile(local_level(T=15, sigma=1.), (1, 4))
    W = dlm.evolutional_covariances(Y, F, G, np.eye(2), np.ones((15, 2)), 0.7)

    assert W.shape == (15, 2, 2)
    assert np.allclose(W, np.swapaxes(W, 1, 2))
    assert np.all(np.linalg.eigvalsh(W) >= -1e-10)


def test_dimension_checks():
    F, G = np.ones((2, 1)), np.eye(1)
    with pytest.raises(DimensionMismatch):
        dlm.estimate(np.ones((10, 3)), F, G, 0.7)
    with pytest.raises(DimensionMismatch):
        dlm.estimate(np.ones((10, 4)), F, np.eye(2), 0.7)
    with pytest.raises(DimensionMismatch):
        dlm.estimate(np.ones((10, 4)), F, G, 0.7, weights=np.ones((10, 3)))


def test_invalid_discount():
    with pytest.raises(ValueError):
        dlm.kalman_filter(np.ones((5, 1)), np.eye(1), np.eye(1), np.eye(1), 1.5)


def test_accepts_nested_lists():
    F, G = np.eye(1), np.eye(1)
    Y = local_level(T=20, sigma=0.5)
    theta, V = dlm.estimate(Y, F, G, 0.8)
    theta_list, V_list = dlm.estimate(Y.tolist(), F.tolist(), G.tolist(), 0.8)
    assert np.allclose(theta, theta_list)
    assert np.allclose(V, V_list)

    filtered = dlm.kalman_filter(Y.tolist(), F, G, np.eye(1), 0.8)
    assert np.allclose(filtered["m"], dlm.kalman_filter(Y, F, G, np.eye(1), 0.8)["m"])
