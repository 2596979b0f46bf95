import warnings

import autograd.numpy as np
from autograd.scipy.special import logsumexp


def diagonal_gaussian_logpdf(data, mus, sigmasqs, mask=None):
    """
    Compute the log probability density of a Gaussian distribution with
    a diagonal covariance.  This will broadcast as long as data, mus,
    sigmas have the same (or at least be broadcast compatible along the)
    leading dimensions.

    Parameters
    ----------
    data : array_like (..., D) observations

    mus : array_like (..., D) mean(s) of the Gaussian distribution(s)

    sigmasqs : array_like (..., D) diagonal variances of the Gaussian distribution(s)

    mask : array_like (..., D) bool
        Optional mask indicating which entries in the data are observed

    Returns
    -------
    lps : array_like (..., )
        Log probabilities under the Gaussian distribution(s).
    """
    D = data.shape[-1]
    assert mus.shape[-1] == D
    assert sigmasqs.shape[-1] == D

    # Check mask
    mask = mask if mask is not None else np.ones_like(data, dtype=bool)
    assert mask.shape == data.shape

    normalizer = -0.5 * np.log(2 * np.pi * sigmasqs)
    return np.sum((normalizer - 0.5 * (data - mus)**2 / sigmasqs) * mask, axis=-1)


def log_normalize(log_ps, axis=-1):
    """
    Exponentiate and normalize log weights along `axis`.

    Slices whose weights are all -inf (or otherwise not finite) carry no
    information; they are replaced by the uniform distribution and a
    RuntimeWarning is issued.
    """
    log_ps = np.asarray(log_ps, dtype=float)
    K = log_ps.shape[axis]

    degenerate = ~np.any(np.isfinite(log_ps), axis=axis, keepdims=True)
    if np.any(degenerate):
        warnings.warn("{} rows of log weights had no finite entry; "
                      "flooring them to the uniform distribution."
                      .format(int(np.sum(degenerate))), RuntimeWarning)
        log_ps = np.where(degenerate, 0.0, log_ps)

    # nan entries alongside finite ones get zero weight
    log_ps = np.where(np.isnan(log_ps), -np.inf, log_ps)
    ps = np.exp(log_ps - logsumexp(log_ps, axis=axis, keepdims=True))
    assert ps.shape[axis] == K
    return ps


def sample_one_hot(ps, rng):
    """
    Draw one-hot vectors Z[..., :] ~ Multinomial(1, ps[..., :]).

    Parameters
    ----------
    ps : array_like (..., K) probability vectors

    rng : numpy.random.Generator

    Returns
    -------
    Z : array_like (..., K) of ints, exactly one unit entry per vector.
    """
    return rng.multinomial(1, ps)
