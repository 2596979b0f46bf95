import numpy as np
import numpy.random as npr

import matplotlib.pyplot as plt

from dynmix import DynamicMixture

rng = npr.default_rng(0)

# Set the parameters of the mixture
T = 100                   # number of time bins
nreps = 8                 # number of replicates
observation_dim = 1       # observations per replicate and time bin
sigma = 1.0               # observational noise

# Two clusters: a local level drifting around 0 and a linear trend
F_specs = [np.array([[1.]]), np.array([[1., 0.]])]
G_specs = [np.array([[1.]]), np.array([[1., 1.], [0., 1.]])]

level = np.cumsum(0.1 * rng.standard_normal(T))
trend = 0.2 * np.arange(T) - 5.

# The first half of the replicates follow the level, the second half the
# trend. The last replicate switches from the level to the trend half way.
means = np.column_stack([level] * (nreps // 2) + [trend] * (nreps // 2))
means[:T // 2, -1] = level[:T // 2]
Y = means + sigma * rng.standard_normal((T, nreps * observation_dim))

# Fit the model
deltas = 0.9 * np.ones(nreps)
model = DynamicMixture(F_specs, G_specs, deltas)
lls = model.fit(Y, numit=10, M=100, rng=rng)
theta, phi, eta = model.params

# Plot the data and the estimated cluster means
fig, axs = plt.subplots(3, 1, figsize=(10, 9))

plt.sca(axs[0])
plt.plot(Y, color="gray", lw=0.5)
for j, (F, theta_j) in enumerate(zip(F_specs, theta)):
    plt.plot(theta_j @ F.T, lw=2, label="cluster {}".format(j))
plt.legend(loc="upper left")
plt.title("observations and cluster means")

# Plot the membership probabilities of the first cluster
plt.sca(axs[1])
plt.imshow(eta[:, :, 0].T, aspect="auto", cmap="viridis", vmin=0, vmax=1)
plt.ylabel("replicate")
plt.xlabel("time")
plt.title("P(cluster 0)")
plt.colorbar()

# Plot the log likelihood over the iterations
plt.sca(axs[2])
plt.plot(lls, marker="o")
plt.xlabel("SEM iteration")
plt.ylabel("log likelihood")

plt.tight_layout()
plt.show()
