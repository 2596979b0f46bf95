from collections import namedtuple

from tqdm.auto import trange

import autograd.numpy as np
from autograd.scipy.special import logsumexp

from dynmix import dlm
from dynmix.dirichlet import forward_filter, backward_estimator
from dynmix.stats import diagonal_gaussian_logpdf, log_normalize, sample_one_hot
from dynmix.util import DimensionMismatch, check_dimensions, check_discounts, \
    ensure_rng, find_assignment, replicate_blocks

# Discount factor for the state evolution of every cluster's DLM
PARAM_DISCOUNT = 0.7

MixtureParams = namedtuple("MixtureParams", ["theta", "phi", "eta"])


def log_likelihoods(Y, F_specs, G_specs, theta, phi):
    """
    log N(Y[t, index_map[i]] | F_j theta_j[t], diag(1 / phi_j)) for every
    time t, replicate i and cluster j, as a (T, nreps, k) array.
    """
    n, nreps, p, T, k, _ = check_dimensions(Y, F_specs, G_specs)
    assert len(theta) == k and len(phi) == k
    blocks = replicate_blocks(np.asarray(Y, dtype=float), n)

    lls = []
    for F, theta_j, phi_j, p_j in zip(F_specs, theta, phi, p):
        assert theta_j.shape == (T, p_j)
        mus = theta_j @ np.asarray(F).T
        sigmasqs = np.broadcast_to(1. / np.asarray(phi_j), (T, n))
        lls.append(diagonal_gaussian_logpdf(blocks, mus[:, None, :], sigmasqs[:, None, :]))
    return np.stack(lls, axis=-1)


def compute_weights(Y, F_specs, G_specs, theta, phi, eta=None):
    """
    E-step of the dynamic mixture: posterior membership probabilities of
    every replicate in every cluster at every time.

    Parameters
    ----------
    Y : array_like (T, n * nreps)

    F_specs, G_specs : lists of cluster matrices

    theta : list of array_like (T, p_j)
        State trajectories.

    phi : list of array_like (n,)
        Observational precisions.

    eta : array_like (T, nreps, k), optional
        Previous membership weights. Only its shape is checked; the new
        weights depend on theta and phi alone.

    Returns
    -------
    eta : array_like (T, nreps, k)
    """
    _, nreps, _, T, k, _ = check_dimensions(Y, F_specs, G_specs)
    if eta is not None and np.shape(eta) != (T, nreps, k):
        raise DimensionMismatch("Expected eta of shape {}, got {}."
                                .format((T, nreps, k), np.shape(eta)))
    return log_normalize(log_likelihoods(Y, F_specs, G_specs, theta, phi), axis=-1)


def log_likelihood(Y, F_specs, G_specs, params):
    """
    Log likelihood of the observations when each replicate is drawn from
    the clusters' DLMs in proportion to its membership weights.
    """
    lls = log_likelihoods(Y, F_specs, G_specs, params.theta, params.phi)
    with np.errstate(divide="ignore"):
        log_eta = np.log(params.eta)
    return np.sum(logsumexp(log_eta + lls, axis=-1))


def select_centroids(Y, n, nreps, k, rng=None):
    """
    Pick k distinct replicates with a K-means++ style scheme on the whole
    (T, n) series: the first uniformly, each next one with probability
    proportional to its largest L1 distance to the centroids so far.
    """
    rng = ensure_rng(rng)
    if k > nreps:
        raise ValueError("Cannot pick {} centroids out of {} replicates.".format(k, nreps))
    blocks = replicate_blocks(np.asarray(Y, dtype=float), n)

    centroids = [int(rng.integers(nreps))]
    candidates = list(range(nreps))
    max_distances = np.zeros(nreps)
    for _ in range(1, k):
        candidates.remove(centroids[-1])

        # Distance of every replicate to the most recent centroid
        distances = np.sum(np.abs(blocks - blocks[:, centroids[-1]][:, None, :]), axis=(0, 2))
        max_distances = np.maximum(max_distances, distances)

        weights = max_distances[candidates]
        if np.sum(weights) > 0:
            nxt = rng.choice(candidates, p=weights / np.sum(weights))
        else:
            nxt = rng.choice(candidates)
        centroids.append(int(nxt))
    return centroids


def _identical_specs(F_specs, G_specs):
    return all(np.shape(F) == np.shape(F_specs[0]) and np.allclose(F, F_specs[0]) and
               np.shape(G) == np.shape(G_specs[0]) and np.allclose(G, G_specs[0])
               for F, G in zip(F_specs, G_specs))


def initialize(Y, F_specs, G_specs, rng=None, discount=PARAM_DISCOUNT, match_centroids=True):
    """
    Initial state trajectories, precisions and membership weights.

    The precisions start at one so that no cluster is favored by a bad
    relative scale of its observational variances.

    When the clusters have different specifications, the pairing of
    centroids and clusters matters: every cluster's DLM is fit to every
    centroid and the pairing with the highest total log likelihood wins.
    """
    n, nreps, p, T, k, index_map = check_dimensions(Y, F_specs, G_specs)
    rng = ensure_rng(rng)
    Y = np.asarray(Y, dtype=float)

    phi = [np.ones(n) for _ in range(k)]
    centroids = select_centroids(Y, n, nreps, k, rng=rng)

    if not match_centroids or _identical_specs(F_specs, G_specs):
        theta = [dlm.estimate(Y[:, index_map[c]], F, G, discount)[0]
                 for F, G, c in zip(F_specs, G_specs, centroids)]
    else:
        fits = [[dlm.estimate(Y[:, index_map[c]], F, G, discount)[0] for c in centroids]
                for F, G in zip(F_specs, G_specs)]
        scores = np.zeros((k, k))
        for j, (F, fits_j) in enumerate(zip(F_specs, fits)):
            for l, (c, theta_jl) in enumerate(zip(centroids, fits_j)):
                scores[j, l] = np.sum(diagonal_gaussian_logpdf(
                    Y[:, index_map[c]], theta_jl @ np.asarray(F).T, np.ones((T, n))))
        perm = find_assignment(scores)
        theta = [fits[j][perm[j]] for j in range(k)]

    eta = compute_weights(Y, F_specs, G_specs, theta, phi)
    return MixtureParams(theta, phi, eta)


def stochastic_m_step(eta, deltas, M, rng, prior_concentration=None):
    """
    Monte Carlo refinement of the membership paths.

    For every replicate, draw M one-hot cluster paths from eta, run them
    through the Dirichlet forward filter and backward estimator, and
    average the resulting estimates.

    Parameters
    ----------
    eta : array_like (T, nreps, k)

    deltas : array_like (nreps,)
        Discount factor of each replicate's Dirichlet process.

    M : int
        Number of Monte Carlo draws per replicate.

    rng : numpy.random.Generator

    prior_concentration : array_like (k,), optional
        Defaults to ones.

    Returns
    -------
    eta : array_like (T, nreps, k)
        New membership weights; the input is left untouched.
    """
    T, nreps, k = eta.shape
    rng = ensure_rng(rng)
    if M < 1:
        raise ValueError("M must be a positive integer.")
    c0 = np.ones(k) if prior_concentration is None else np.asarray(prior_concentration, dtype=float)

    # One stream per replicate, so the result does not depend on the
    # order in which replicates are visited.
    streams = rng.spawn(nreps)

    new_eta = np.zeros_like(eta)
    for i, stream in enumerate(streams):
        Z = sample_one_hot(np.broadcast_to(eta[:, i, :], (M, T, k)), stream)
        c = forward_filter(Z, deltas[i], c0)
        new_eta[:, i, :] = np.mean(backward_estimator(c, deltas[i]), axis=0)
    return new_eta


def parameter_m_step(Y, F_specs, G_specs, eta, discount=PARAM_DISCOUNT, **kwargs):
    """
    Refit every cluster's DLM with the replicates weighted by their
    membership. Returns the new trajectories and precisions.
    """
    theta, phi = [], []
    for j, (F, G) in enumerate(zip(F_specs, G_specs)):
        theta_j, V_j = dlm.estimate(Y, F, G, discount, weights=eta[:, :, j], **kwargs)
        theta.append(theta_j)
        phi.append(1. / np.diag(V_j))
    return theta, phi


class DynamicMixture(object):
    """
    Dynamic mixture of dynamic linear models for replicated time series.
    """
    def __init__(self, F_specs, G_specs, deltas,
                 param_discount=PARAM_DISCOUNT,
                 prior_concentration=None):
        """
        Construct a dynamic mixture.

        Parameters
        ----------
        F_specs : list of array_like (n, p_j)
            Observational matrix of each cluster.

        G_specs : list of array_like (p_j, p_j)
            Evolutional matrix of each cluster.

        deltas : array_like (nreps,)
            Discount factor of each replicate's membership process.

        param_discount : float in (0, 1]
            Discount factor of the clusters' state evolution.

        prior_concentration : array_like (k,), optional
            Prior Dirichlet concentration of the membership processes.
            Defaults to ones.
        """
        self.F_specs = [np.asarray(F, dtype=float) for F in F_specs]
        self.G_specs = [np.asarray(G, dtype=float) for G in G_specs]
        self.deltas = check_discounts(deltas)
        self.param_discount = check_discounts(param_discount, size=1)[0]
        self.prior_concentration = prior_concentration

        self.params = None
        self.W = None

    @property
    def num_clusters(self):
        return len(self.F_specs)

    def check_dimensions(self, Y):
        dims = check_dimensions(Y, self.F_specs, self.G_specs)
        nreps = dims[1]
        if self.deltas.shape != (nreps,):
            raise ValueError("Expected {} discount factors, got {}."
                             .format(nreps, self.deltas.shape))
        return dims

    def initialize(self, Y, rng=None, **kwargs):
        """
        Initialize theta, phi and eta from the data.
        """
        self.check_dimensions(Y)
        self.params = initialize(Y, self.F_specs, self.G_specs, rng=rng,
                                 discount=self.param_discount, **kwargs)
        return self.params

    def compute_weights(self, Y, params=None):
        params = self.params if params is None else params
        return compute_weights(Y, self.F_specs, self.G_specs,
                               params.theta, params.phi, params.eta)

    def log_likelihood(self, Y, params=None):
        params = self.params if params is None else params
        return log_likelihood(Y, self.F_specs, self.G_specs, params)

    def evolutional_covariances(self, Y, params=None):
        """
        Evolution covariances implied by the discount factor for every
        cluster, given its estimated precisions and membership weights.
        """
        params = self.params if params is None else params
        return [dlm.evolutional_covariances(Y, F, G, np.diag(1. / phi_j),
                                            params.eta[:, :, j], self.param_discount)
                for j, (F, G, phi_j) in enumerate(zip(self.F_specs, self.G_specs, params.phi))]

    def _fit_sem(self, Y, params, rng, numit=10, M=200, verbose=True, **kwargs):
        """
        Fit the parameters with stochastic expectation maximization.

        E step: membership weights from the current cluster DLMs;
        stochastic M step: Monte Carlo estimate of the membership paths
        under the Dirichlet evolutional process;
        M step: refit every cluster's DLM to the weighted replicates.
        """
        lls = [self.log_likelihood(Y, params)]

        pbar = trange(numit, disable=not verbose)
        pbar.set_description("LP: {:.1f}".format(lls[-1]))
        for itr in pbar:
            eta = self.compute_weights(Y, params)
            eta = stochastic_m_step(eta, self.deltas, M, rng, self.prior_concentration)
            theta, phi = parameter_m_step(Y, self.F_specs, self.G_specs, eta,
                                          discount=self.param_discount, **kwargs)
            params = MixtureParams(theta, phi, eta)

            # Store progress
            lls.append(self.log_likelihood(Y, params))
            pbar.set_description("LP: {:.1f}".format(lls[-1]))

        return params, lls

    def fit(self, Y, numit=10, M=200, rng=None, initialize=True, verbose=True, **kwargs):
        """
        Fit the model to a matrix of replicated observations.

        Parameters
        ----------
        Y : array_like (T, n * nreps)

        numit : int
            Number of SEM iterations.

        M : int
            Number of Monte Carlo draws in the stochastic M step.

        rng : numpy.random.Generator, seed or None

        initialize : bool
            Whether to (re)initialize the parameters first. If False, the
            current params are used as the starting point.

        verbose : bool
            Show a progress bar.

        Returns
        -------
        lls : list of float
            Log likelihood after initialization and after each iteration.
        """
        Y = np.asarray(Y, dtype=float)
        self.check_dimensions(Y)
        rng = ensure_rng(rng)

        if initialize or self.params is None:
            self.initialize(Y, rng=rng)

        self.params, lls = self._fit_sem(Y, self.params, rng, numit=numit, M=M,
                                         verbose=verbose, **kwargs)
        self.W = self.evolutional_covariances(Y)
        return lls


def dynamic_mixture(Y, F_specs, G_specs, deltas, numit=10, M=200, rng=None, **kwargs):
    """
    Use stochastic expectation maximization to estimate a dynamic mixture
    of dynamic linear models.

    Parameters
    ----------
    Y : array_like (T, n * nreps)
        Observations; column block i holds replicate i.

    F_specs : list of array_like (n, p_j)
        Observational matrices.

    G_specs : list of array_like (p_j, p_j)
        Evolutional matrices.

    deltas : array_like (nreps,)
        Discount factor of each replicate.

    numit : int
        Number of iterations.

    M : int
        Number of simulations in the stochastic step.

    rng : numpy.random.Generator, seed or None

    Returns
    -------
    eta : array_like (T, nreps, k)
        Membership weights.

    theta : list of array_like (T, p_j)
        State trajectories.

    phi : list of array_like (n,)
        Observational precisions.

    W : list of array_like (T, p_j, p_j)
        Implied evolution covariances.
    """
    model = DynamicMixture(F_specs, G_specs, deltas)
    model.fit(Y, numit=numit, M=M, rng=rng, **kwargs)
    theta, phi, eta = model.params
    return eta, theta, phi, model.W
