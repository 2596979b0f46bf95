"""
Discounted Dirichlet evolutional process for time-varying probability
vectors, after Fonseca & Ferreira (2017).

The filtered concentrations follow

    c_1 = delta * c_0 + Z_1,    c_t = delta * c_{t-1} + Z_t

where Z_t are one-hot (multinomial) observations. Retrospectively,
eta_t given eta_{t+1} is a Mod-Dirichlet: a Dirichlet((1 - delta) c_t)
vector affinely mapped into the box [S eta_{t+1}, (1 - S) + S eta_{t+1}],
with S ~ Beta(delta sum(c_t), (1 - delta) sum(c_t)).

forward_filter and backward_estimator accept arrays with leading batch
axes, (..., T, K), so that many Monte Carlo draws can be processed at
once. backward_sampler works on a single (T, K) path.
"""
import autograd.numpy as np

from dynmix.util import InvalidDistributionParameter, ensure_rng

DEFAULT_PRIOR_CONCENTRATION = 0.1


def forward_filter(Z, delta, c0=None):
    """
    Forward filtering for a Dirichlet evolutional process.

    Parameters
    ----------
    Z : array_like (..., T, K)
        One-hot (or multinomial count) observations.

    delta : float in (0, 1]
        Discount factor.

    c0 : array_like (K,), optional
        Prior concentration. Defaults to 0.1 for every component.

    Returns
    -------
    c : array_like (..., T, K)
        Online Dirichlet parameters c_1, ..., c_T.
    """
    Z = np.asarray(Z)
    T, K = Z.shape[-2:]
    c0 = DEFAULT_PRIOR_CONCENTRATION * np.ones(K) if c0 is None else np.asarray(c0, dtype=float)
    assert c0.shape == (K,)

    c = np.zeros(Z.shape, dtype=float)
    c[..., 0, :] = delta * c0 + Z[..., 0, :]
    for t in range(1, T):
        c[..., t, :] = delta * c[..., t-1, :] + Z[..., t, :]
    return c


def backward_sampler(c, delta, rng=None):
    """
    Draw eta_1, ..., eta_T from the posterior of a Dirichlet evolutional
    process given its filtered concentrations.

    Parameters
    ----------
    c : array_like (T, K)
        Output of forward_filter.

    delta : float in (0, 1]
        Discount factor used to produce c.

    rng : numpy.random.Generator, seed or None

    Returns
    -------
    eta : array_like (T, K)
    """
    rng = ensure_rng(rng)
    c = np.asarray(c, dtype=float)
    assert c.ndim == 2
    T = c.shape[0]
    eta = np.zeros_like(c)

    eta[T-1] = rng.dirichlet(c[T-1])
    for t in range(T-2, -1, -1):
        if delta == 1:
            # Full persistence: S ~ Beta(c_sum, 0) is a point mass at one
            eta[t] = eta[t+1]
            continue
        c_sum = np.sum(c[t])
        S = rng.beta(delta * c_sum, (1 - delta) * c_sum)
        u = rng.dirichlet((1 - delta) * c[t])
        eta[t] = S * eta[t+1] + (1 - S) * u
    return eta


def moddirichlet_mode(alpha, beta):
    """
    Mode of S ~ Beta(alpha, beta), elementwise.

    Both parameters below one make the density bimodal (at 0 and 1), so no
    mode is defined and InvalidDistributionParameter is raised.
    """
    alpha = np.asarray(alpha, dtype=float)
    beta = np.asarray(beta, dtype=float)
    if np.any((alpha < 1) & (beta < 1)):
        raise InvalidDistributionParameter("Invalid mode for S")

    # Only evaluated where alpha > 1 and beta > 1
    interior = (alpha - 1) / np.where((alpha > 1) & (beta > 1), alpha + beta - 2, 1.)
    return np.where(alpha <= 1, 0., np.where(beta <= 1, 1., interior))


def moddirichlet_params(c, delta, eta):
    """
    Parameters (c', a, b) of the Mod-Dirichlet distribution of eta_t given
    a known eta_{t+1}, evaluated at the mode of S.

    Parameters
    ----------
    c : array_like (..., K)
        Filtered concentration at time t.

    delta : float in (0, 1]

    eta : array_like (..., K)
        The (estimated) probability vector at time t+1.
    """
    c_sum = np.sum(c, axis=-1, keepdims=True)
    S = moddirichlet_mode(delta * c_sum, (1 - delta) * c_sum)

    c = (1 - delta) * c
    a = S * eta
    b = (1 - S) + S * eta
    return c, a, b


def moddirichlet_mean(c, a, b):
    """
    Mean of a Mod-Dirichlet: a Dirichlet(c) vector mapped into [a, b].
    """
    c_sum = np.sum(c, axis=-1, keepdims=True)
    # With delta == 1 there is no innovation left and the box collapses to a
    weights = c / np.where(c_sum > 0, c_sum, 1.)
    return (b - a) * weights + a


def backward_estimator(c, delta):
    """
    Like backward_sampler, but propagates Mod-Dirichlet means evaluated at
    the mode of S instead of samples, giving a deterministic estimate of
    eta_1, ..., eta_T.

    Parameters
    ----------
    c : array_like (..., T, K)
        Output of forward_filter.

    delta : float in (0, 1]

    Returns
    -------
    eta : array_like (..., T, K)
    """
    c = np.asarray(c, dtype=float)
    T, K = c.shape[-2:]
    eta = np.zeros_like(c)

    # eta_T | D_T is a known Dirichlet(c_T)
    eta[..., T-1, :] = moddirichlet_mean(c[..., T-1, :], np.zeros(K), np.ones(K))
    for t in range(T-2, -1, -1):
        eta[..., t, :] = moddirichlet_mean(*moddirichlet_params(c[..., t, :], delta, eta[..., t+1, :]))
    return eta
