"""
AneuHMM emission model

All copy-number states share one negative binomial family:

    k-somy state:    NB(x; size * k, prob)
    nullsomy:        Geom(x; null_prob)                (NB with size 1)
    zero-inflation:  zero_mass * delta_0(x) + (1 - zero_mass) * Geom(x; null_prob)

Scaling the NB size with the copy number keeps the variance-to-mean ratio
identical across states and makes the mean proportional to the copy number,
so only two parameters (size per copy, prob) describe every k-somy state.
Densities are evaluated in log space.
"""

from dataclasses import dataclass, replace
from typing import Optional, Tuple

import numpy as np
from scipy import optimize
from scipy.special import gammaln
from scipy.stats import nbinom

from aneuhmm.core.states import StateKind, StateSet

# Bounds used when clipping probabilities and searching the NB size
PROB_FLOOR = 1e-10
LOG_SIZE_BOUNDS = (np.log(1e-3), np.log(1e6))
# Posterior mass below which a state counts as unvisited
MIN_MASS = 1e-8


@dataclass(frozen=True)
class EmissionParams:
    """Parameters of the shared count distribution."""
    size: float        # NB size per copy
    prob: float        # NB success probability, shared by all k-somy states
    null_prob: float   # geometric parameter of nullsomy / zero-inflation base
    zero_mass: float   # point-mass weight of the zero-inflation state

    @property
    def mean_per_copy(self) -> float:
        return self.size * (1.0 - self.prob) / self.prob

    @property
    def var_per_copy(self) -> float:
        return self.mean_per_copy / self.prob

    def state_mean(self, multiplier: int, kind: StateKind) -> float:
        if kind == StateKind.SOMY:
            return multiplier * self.mean_per_copy
        null_mean = (1.0 - self.null_prob) / self.null_prob
        if kind == StateKind.NULLSOMY:
            return null_mean
        return (1.0 - self.zero_mass) * null_mean

    def to_dict(self) -> dict:
        return {'size': self.size, 'prob': self.prob,
                'null_prob': self.null_prob, 'zero_mass': self.zero_mass}

    @classmethod
    def from_dict(cls, d: dict) -> 'EmissionParams':
        return cls(size=float(d['size']), prob=float(d['prob']),
                   null_prob=float(d['null_prob']), zero_mass=float(d['zero_mass']))

    @classmethod
    def from_mean_var(cls, mean: float, var: float, multiplier: int,
                      null_prob: float, zero_mass: float) -> 'EmissionParams':
        """Build parameters from the mean/variance of one k-somy state."""
        var = max(var, mean * 1.01)
        prob = mean / var
        size = mean * prob / (1.0 - prob) / multiplier
        return cls(size=size, prob=prob, null_prob=null_prob, zero_mass=zero_mass)


class EmissionModel:
    """
    Per-state count densities and their re-estimation.

    Args:
        states: the model's StateSet
    """

    def __init__(self, states: StateSet):
        self.states = states
        self.multipliers = np.array(states.multipliers, dtype=float)
        self.somy_idx = np.array(states.indices_of(StateKind.SOMY), dtype=int)
        self.null_idx = np.array(states.indices_of(StateKind.NULLSOMY), dtype=int)
        self.zero_idx = np.array(states.indices_of(StateKind.ZERO_INFLATION), dtype=int)

    # ------------------------------------------------------------------
    # Densities
    # ------------------------------------------------------------------

    def logpmf_matrix(self, counts: np.ndarray, params: EmissionParams) -> np.ndarray:
        """
        Log density of every count under every state.

        Args:
            counts: (T,) non-negative counts
            params: emission parameters

        Returns:
            (T, K) log probabilities
        """
        x = np.asarray(counts, dtype=float)
        logp = np.empty((len(x), len(self.states)))

        if len(self.somy_idx) > 0:
            sizes = params.size * self.multipliers[self.somy_idx]
            logp[:, self.somy_idx] = nbinom.logpmf(x[:, np.newaxis], sizes[np.newaxis, :],
                                                   params.prob)

        if len(self.null_idx) > 0 or len(self.zero_idx) > 0:
            log_geom = nbinom.logpmf(x, 1, params.null_prob)
            for i in self.null_idx:
                logp[:, i] = log_geom
            if len(self.zero_idx) > 0:
                with np.errstate(divide='ignore'):
                    log_point = np.where(x == 0, np.log(params.zero_mass), -np.inf)
                    log_base = np.log1p(-params.zero_mass) + log_geom
                log_zi = np.logaddexp(log_point, log_base)
                for i in self.zero_idx:
                    logp[:, i] = log_zi

        return logp

    def density(self, count: float, state: str, params: EmissionParams) -> float:
        """Probability of a single count under the state labelled `state`."""
        logp = self.logpmf_matrix(np.array([count]), params)
        return float(np.exp(logp[0, self.states.index(state)]))

    # ------------------------------------------------------------------
    # Initialisation
    # ------------------------------------------------------------------

    def initial_params(self, counts: np.ndarray,
                       rng: Optional[np.random.Generator] = None,
                       randomize: bool = False) -> EmissionParams:
        """
        Starting parameters for one EM trial.

        The most-frequent state's mean is seeded from the mean of the non-zero
        counts. Later trials (randomize=True) scale it by a random factor and
        draw a random variance-to-mean ratio.
        """
        x = np.asarray(counts, dtype=float)
        nonzero = x[x > 0]
        if len(nonzero) > 0:
            mean = float(np.mean(nonzero))
            var = float(np.var(nonzero))
        else:
            mean, var = 1.0, 2.0

        if randomize:
            if rng is None:
                rng = np.random.default_rng()
            mean *= rng.uniform(0.5, 1.5)
            var = mean * rng.uniform(1.05, 4.0)
        var = max(var, mean * 1.05)

        mfs = self.states[self.states.most_frequent_index]
        mean_per_copy = mean / mfs.multiplier
        null_mean = max(0.1 * mean_per_copy, 1e-3)
        null_prob = 1.0 / (1.0 + null_mean)
        return EmissionParams.from_mean_var(mean, var, mfs.multiplier,
                                            null_prob=null_prob, zero_mass=0.9)

    # ------------------------------------------------------------------
    # Re-estimation (M-step)
    # ------------------------------------------------------------------

    def reestimate(self, counts: np.ndarray, posteriors: np.ndarray,
                   params: EmissionParams) -> EmissionParams:
        """
        Update emission parameters from state posteriors.

        The shared NB prob has a closed form for a given size; the size is
        found by a bounded scalar search of the posterior-weighted
        log-likelihood, and the previous size is kept if the search does not
        improve on it. Geometric and zero-mass parameters are closed form.
        Parameters whose states carry no posterior mass are left unchanged.

        Args:
            counts: (T,) counts
            posteriors: (T, K) state posteriors
            params: current parameters

        Returns:
            New EmissionParams
        """
        x = np.asarray(counts, dtype=float)
        size, prob = self._reestimate_nbinom(x, posteriors, params)
        null_prob, zero_mass = self._reestimate_zero_states(x, posteriors, params)
        return replace(params, size=size, prob=prob,
                       null_prob=null_prob, zero_mass=zero_mass)

    def _reestimate_nbinom(self, x: np.ndarray, posteriors: np.ndarray,
                           params: EmissionParams) -> Tuple[float, float]:
        if len(self.somy_idx) == 0:
            return params.size, params.prob
        gamma = posteriors[:, self.somy_idx]
        if gamma.sum() < MIN_MASS:
            return params.size, params.prob

        # Pool posterior weight per distinct count value
        values, inverse = np.unique(x, return_inverse=True)
        weight = np.zeros((len(values), gamma.shape[1]))
        np.add.at(weight, inverse, gamma)

        mult = self.multipliers[self.somy_idx]
        weighted_copies = float(np.sum(weight * mult[np.newaxis, :]))
        weighted_counts = float(np.sum(weight.sum(axis=1) * values))
        total_weight = weight.sum(axis=0)

        def best_prob(size):
            total = size * weighted_copies
            p = total / (total + weighted_counts)
            return float(np.clip(p, PROB_FLOOR, 1.0 - PROB_FLOOR))

        def neg_q(log_size):
            size = np.exp(log_size)
            p = best_prob(size)
            r = size * mult
            ll = (np.sum(weight * gammaln(values[:, np.newaxis] + r[np.newaxis, :]))
                  - np.sum(total_weight * gammaln(r))
                  + weighted_copies * size * np.log(p)
                  + weighted_counts * np.log1p(-p))
            return -float(ll)

        current = np.log(params.size)
        current_value = neg_q(current)
        sol = optimize.minimize_scalar(neg_q, bounds=LOG_SIZE_BOUNDS, method='bounded')
        if sol.success and sol.fun < current_value:
            size = float(np.exp(sol.x))
        else:
            size = params.size
        return size, best_prob(size)

    def _reestimate_zero_states(self, x: np.ndarray, posteriors: np.ndarray,
                                params: EmissionParams) -> Tuple[float, float]:
        zero_mass = params.zero_mass
        null_prob = params.null_prob

        # Geometric component weights: nullsomy plus the non-point-mass share
        # of the zero-inflation state
        geom_weight = np.zeros(len(x))
        if len(self.null_idx) > 0:
            geom_weight += posteriors[:, self.null_idx].sum(axis=1)

        if len(self.zero_idx) > 0:
            gamma_zi = posteriors[:, self.zero_idx].sum(axis=1)
            point = params.zero_mass
            base_at_zero = (1.0 - params.zero_mass) * params.null_prob
            from_point = np.where(x == 0, point / (point + base_at_zero), 0.0)
            if gamma_zi.sum() >= MIN_MASS:
                zero_mass = float(np.sum(gamma_zi * from_point) / np.sum(gamma_zi))
                zero_mass = float(np.clip(zero_mass, PROB_FLOOR, 1.0 - PROB_FLOOR))
            geom_weight += gamma_zi * (1.0 - from_point)

        n_geom = float(np.sum(geom_weight))
        if n_geom >= MIN_MASS:
            null_prob = n_geom / (n_geom + float(np.sum(geom_weight * x)))
            null_prob = float(np.clip(null_prob, PROB_FLOOR, 1.0 - PROB_FLOOR))

        return null_prob, zero_mass
