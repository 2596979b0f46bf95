"""
This package clusters replicated time series with dynamic mixtures of
dynamic linear models (DLMs).

Each of k clusters follows its own DLM

    y_t = F_j theta_{j,t} + v_t,    v_t ~ N(0, diag(1 / phi_j))
    theta_{j,t} = G_j theta_{j,t-1} + w_{j,t}

and every replicate may move between clusters over time. The membership
probabilities eta of a replicate evolve as a discounted Dirichlet process
(Fonseca & Ferreira, 2017). Parameters are estimated with stochastic
expectation maximization (SEM):

    E step               membership weights from the cluster likelihoods
    stochastic M step    Monte Carlo smoothing of the membership paths
    M step               weighted refit of every cluster's DLM

The data is a single matrix Y with one row per time step. The columns hold
nreps contiguous blocks of width n, one block per replicate:

    Y : array_like (time_bins, n * nreps)

Cluster models are given as two lists of matrices:

    F_specs : [array_like (n, p_j) for j in range(k)]
    G_specs : [array_like (p_j, p_j) for j in range(k)]

Sampling functions take an `rng` argument, which may be a
numpy.random.Generator, an integer seed or None.
"""
from dynmix.core import DynamicMixture, MixtureParams, dynamic_mixture, \
    compute_weights, initialize
from dynmix.dirichlet import forward_filter, backward_sampler, backward_estimator
from dynmix.util import DimensionMismatch, InvalidDistributionParameter, check_dimensions
