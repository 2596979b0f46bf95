"""
Dynamic linear models with discounted evolution covariances.

    y_{t,i} = F theta_t + v_{t,i},        v_{t,i} ~ N(0, V / w_{t,i})
    theta_t = G theta_{t-1} + w_t,        w_t ~ N(0, W_t)

W_t is never specified directly. Following West & Harrison, it is
implied by a discount factor: the prior covariance R_t is the
propagated posterior covariance P_t = G C_{t-1} G^T inflated by
1 / discount, so that W_t = P_t (1 - discount) / discount.

Replicates enter through optional weights w_{t,i} >= 0, so that a
cluster's model can be fit to all replicates at once, each one
contributing in proportion to its membership weight.
"""
import autograd.numpy as np

from dynmix.util import DimensionMismatch, check_discounts, replicate_blocks

DEFAULT_PRIOR_VARIANCE = 1e3


def _check_args(Y, F, G, weights):
    if np.ndim(F) != 2 or np.ndim(G) != 2 or G.shape[0] != G.shape[1] or F.shape[1] != G.shape[0]:
        raise DimensionMismatch("F ({}) and G ({}) are not consistent.".format(np.shape(F), np.shape(G)))
    n = F.shape[0]
    if np.ndim(Y) != 2 or Y.shape[1] % n != 0:
        raise DimensionMismatch("Y should have a multiple of {} columns.".format(n))
    T, nreps = Y.shape[0], Y.shape[1] // n

    weights = np.ones((T, nreps)) if weights is None else np.asarray(weights, dtype=float)
    if weights.ndim == 1:
        weights = weights[:, None]
    if weights.shape != (T, nreps):
        raise DimensionMismatch("Expected weights of shape {}, got {}.".format((T, nreps), weights.shape))
    assert np.all(weights >= 0)
    return n, nreps, T, weights


def _weighted_observations(Y, n, weights):
    """
    Collapse the replicates at each time into their weighted mean and
    the total weight, which acts as a precision multiplier.
    """
    blocks = replicate_blocks(Y, n)
    totals = np.sum(weights, axis=1)
    safe = np.where(totals > 0, totals, 1.)
    ybar = np.sum(weights[:, :, None] * blocks, axis=1) / safe[:, None]
    return ybar, totals


def kalman_filter(Y, F, G, V, discount, weights=None, m0=None, C0=None):
    """
    Forward filtering for a discounted DLM.

    Parameters
    ----------
    Y : array_like (T, n * nreps)
        Observations of nreps replicates.

    F : array_like (n, p)

    G : array_like (p, p)

    V : array_like (n, n)
        Observational covariance of a replicate with unit weight.

    discount : float in (0, 1]

    weights : array_like (T, nreps), optional
        Nonnegative replicate weights. Defaults to ones.

    m0, C0 : array_like (p,) and (p, p), optional
        Prior mean and covariance of theta_0.

    Returns
    -------
    filtered : dict
        Prior moments a (T, p), R (T, p, p), posterior moments m (T, p),
        C (T, p, p), and the implied evolution covariances W (T, p, p).
    """
    discount = check_discounts(discount, size=1)[0]
    Y = np.asarray(Y, dtype=float)
    F, G, V = np.asarray(F, dtype=float), np.asarray(G, dtype=float), np.asarray(V, dtype=float)
    n, nreps, T, weights = _check_args(Y, F, G, weights)
    p = G.shape[0]
    assert V.shape == (n, n)

    m = np.zeros(p) if m0 is None else np.asarray(m0, dtype=float)
    C = DEFAULT_PRIOR_VARIANCE * np.eye(p) if C0 is None else np.asarray(C0, dtype=float)

    ybar, totals = _weighted_observations(Y, n, weights)

    a_s, R_s, m_s, C_s, W_s = [], [], [], [], []
    for t in range(T):
        # Prior at t
        a = G @ m
        P = G @ C @ G.T
        R = P / discount
        W = P * (1 - discount) / discount

        # Posterior at t; the replicates act as a single observation of
        # their weighted mean with covariance V / sum(w)
        if totals[t] > 0:
            f = F @ a
            Q = F @ R @ F.T + V / totals[t]
            A = np.linalg.solve(Q, F @ R).T
            m = a + A @ (ybar[t] - f)
            C = R - A @ Q @ A.T
            C = (C + C.T) / 2
        else:
            m, C = a, R

        a_s.append(a)
        R_s.append(R)
        m_s.append(m)
        C_s.append(C)
        W_s.append(W)

    return dict(a=np.array(a_s), R=np.array(R_s),
                m=np.array(m_s), C=np.array(C_s),
                W=np.array(W_s))


def kalman_smoother(filtered, G):
    """
    Rauch-Tung-Striebel backward pass.

    Parameters
    ----------
    filtered : dict
        Output of kalman_filter.

    G : array_like (p, p)

    Returns
    -------
    s : array_like (T, p)
        Smoothed means of theta_t given all the data.

    S : array_like (T, p, p)
        Smoothed covariances.
    """
    a, R, m, C = filtered["a"], filtered["R"], filtered["m"], filtered["C"]
    T = m.shape[0]

    s = np.zeros_like(m)
    S = np.zeros_like(C)
    s[T-1], S[T-1] = m[T-1], C[T-1]
    for t in range(T-2, -1, -1):
        # B_t = C_t G^T R_{t+1}^{-1}; R is symmetric
        B = np.linalg.solve(R[t+1], G @ C[t]).T
        s[t] = m[t] + B @ (s[t+1] - a[t+1])
        S[t] = C[t] + B @ (S[t+1] - R[t+1]) @ B.T
        S[t] = (S[t] + S[t].T) / 2
    return s, S


def estimate(Y, F, G, discount, weights=None, num_iters=50, tolerance=1e-6, m0=None, C0=None):
    """
    Estimate the state trajectory and observational covariance of a
    discounted DLM.

    Alternates between smoothing the states for a fixed V and setting V
    to the weighted expected residual covariance, until V stops changing.

    Parameters
    ----------
    Y : array_like (T, n * nreps)

    F : array_like (n, p)

    G : array_like (p, p)

    discount : float in (0, 1]

    weights : array_like (T, nreps), optional
        Replicate weights, e.g. cluster membership probabilities.

    num_iters : int
        Maximum number of alternations.

    tolerance : float
        Stop when the largest absolute change in V is below this value.

    Returns
    -------
    theta : array_like (T, p)
        Smoothed state trajectory.

    V : array_like (n, n)
        Estimated observational covariance.
    """
    Y = np.asarray(Y, dtype=float)
    F, G = np.asarray(F, dtype=float), np.asarray(G, dtype=float)
    n, nreps, T, weights = _check_args(Y, F, G, weights)
    blocks = replicate_blocks(Y, n)
    total = np.sum(weights)
    assert total > 0, "All replicate weights are zero."

    V = np.eye(n)
    for itr in range(num_iters):
        filtered = kalman_filter(Y, F, G, V, discount, weights=weights, m0=m0, C0=C0)
        s, S = kalman_smoother(filtered, G)

        resid = blocks - (s @ F.T)[:, None, :]
        sqerr = np.einsum('ti,tia,tib->ab', weights, resid, resid)
        sqerr += np.einsum('t,tab->ab', np.sum(weights, axis=1), F @ S @ F.T)
        V_new = sqerr / total + 1e-8 * np.eye(n)
        V_new = (V_new + V_new.T) / 2

        converged = np.max(np.abs(V_new - V)) < tolerance
        V = V_new
        if converged:
            break

    # Report the trajectory that goes with the final V
    s, _ = kalman_smoother(kalman_filter(Y, F, G, V, discount, weights=weights, m0=m0, C0=C0), G)
    return s, V


def evolutional_covariances(Y, F, G, V, weights, discount, m0=None, C0=None):
    """
    Evolution covariances W_1, ..., W_T implied by the discount factor
    for a known observational covariance V.

    Returns
    -------
    W : array_like (T, p, p)
    """
    filtered = kalman_filter(Y, F, G, V, discount, weights=weights, m0=m0, C0=C0)
    return filtered["W"]
