"""
AneuHMM HMM module

Provides:
1. Numba-compiled forward-backward and Viterbi kernels for K-state HMMs
   operating on a precomputed (T, K) log-emission matrix
2. CopyNumberHMM: start/transition parameters, E-step, decoding and
   transition-only Baum-Welch (emissions fixed)
3. fit_hmm / HMMFitter: multi-trial Baum-Welch with a shared negative
   binomial emission model, eps / max_iter / max_time budgets

Chromosomes are passed as separate sequences (`lengths`); every sequence
restarts from the start distribution, so no transition links the last bin of
one chromosome to the first bin of the next.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from numba import jit
from tqdm import tqdm

from aneuhmm.core.config import ConfigurationError, SegmentationConfig
from aneuhmm.core.data import Model, bin_counts, sequence_lengths, validate_bins
from aneuhmm.core.emission import EmissionModel, EmissionParams
from aneuhmm.core.states import StateSet

logger = logging.getLogger(__name__)

PROB_FLOOR = 1e-10
MIN_MASS = 1e-8


# =============================================================================
# Numba JIT-compiled HMM algorithms
# =============================================================================

@jit(nopython=True, cache=False)
def _logsumexp_vec(a):
    """Log-sum-exp of a 1D array; -inf if every entry is -inf."""
    m = -np.inf
    for i in range(a.shape[0]):
        if a[i] > m:
            m = a[i]
    if m == -np.inf:
        return -np.inf
    s = 0.0
    for i in range(a.shape[0]):
        s += np.exp(a[i] - m)
    return m + np.log(s)


@jit(nopython=True, cache=False)
def _forward_numba(log_emission, log_startprob, log_transmat):
    """
    Forward algorithm in log space.

    Args:
        log_emission: (T, K) log emission probabilities
        log_startprob: (K,) log start probabilities
        log_transmat: (K, K) log transition matrix

    Returns:
        alpha: (T, K) forward log probabilities
        log_prob: log probability of the sequence
    """
    T, K = log_emission.shape
    alpha = np.empty((T, K))
    tmp = np.empty(K)

    for j in range(K):
        alpha[0, j] = log_startprob[j] + log_emission[0, j]

    for t in range(1, T):
        for j in range(K):
            for i in range(K):
                tmp[i] = alpha[t - 1, i] + log_transmat[i, j]
            alpha[t, j] = _logsumexp_vec(tmp) + log_emission[t, j]

    log_prob = _logsumexp_vec(alpha[T - 1])
    return alpha, log_prob


@jit(nopython=True, cache=False)
def _backward_numba(log_emission, log_transmat):
    """Backward algorithm in log space. Returns beta, shape (T, K)."""
    T, K = log_emission.shape
    beta = np.empty((T, K))
    tmp = np.empty(K)

    for j in range(K):
        beta[T - 1, j] = 0.0

    for t in range(T - 2, -1, -1):
        for i in range(K):
            for j in range(K):
                tmp[j] = log_transmat[i, j] + log_emission[t + 1, j] + beta[t + 1, j]
            beta[t, i] = _logsumexp_vec(tmp)

    return beta


@jit(nopython=True, cache=False)
def _baum_welch_estep_numba(log_emission, log_startprob, log_transmat):
    """
    Full E-step for one sequence: forward, backward, and expected counts.

    Returns:
        posteriors: (T, K) state posteriors
        start_counts: (K,) posterior of the first bin
        trans_counts: (K, K) expected transition counts
        log_prob: log probability of the sequence
    """
    T, K = log_emission.shape
    alpha, log_prob = _forward_numba(log_emission, log_startprob, log_transmat)
    beta = _backward_numba(log_emission, log_transmat)

    posteriors = np.empty((T, K))
    for t in range(T):
        for j in range(K):
            posteriors[t, j] = np.exp(alpha[t, j] + beta[t, j] - log_prob)

    start_counts = np.empty(K)
    for j in range(K):
        start_counts[j] = posteriors[0, j]

    trans_counts = np.zeros((K, K))
    for t in range(T - 1):
        for i in range(K):
            a = alpha[t, i]
            if a == -np.inf:
                continue
            for j in range(K):
                trans_counts[i, j] += np.exp(a + log_transmat[i, j] + log_emission[t + 1, j]
                                             + beta[t + 1, j] - log_prob)

    return posteriors, start_counts, trans_counts, log_prob


@jit(nopython=True, cache=False)
def _viterbi_numba(log_emission, log_startprob, log_transmat):
    """
    Viterbi decoding. Ties go to the state with the lower index.

    Returns:
        path: (T,) most likely state sequence
        log_prob: log probability of the path
    """
    T, K = log_emission.shape
    delta = np.empty((T, K))
    backpointer = np.zeros((T, K), dtype=np.int64)

    for j in range(K):
        delta[0, j] = log_startprob[j] + log_emission[0, j]

    for t in range(1, T):
        for j in range(K):
            best = delta[t - 1, 0] + log_transmat[0, j]
            arg = 0
            for i in range(1, K):
                v = delta[t - 1, i] + log_transmat[i, j]
                if v > best:
                    best = v
                    arg = i
            delta[t, j] = best + log_emission[t, j]
            backpointer[t, j] = arg

    path = np.empty(T, dtype=np.int64)
    best = delta[T - 1, 0]
    arg = 0
    for j in range(1, K):
        if delta[T - 1, j] > best:
            best = delta[T - 1, j]
            arg = j
    path[T - 1] = arg
    log_prob = best

    for t in range(T - 2, -1, -1):
        path[t] = backpointer[t + 1, path[t + 1]]

    return path, log_prob


# =============================================================================
# HMM with externally supplied emissions
# =============================================================================

class TrainingMonitor:
    """Tracks training progress."""
    def __init__(self):
        self.history = []


class CopyNumberHMM:
    """
    K-state HMM whose emissions are supplied as a (T, K) log-probability matrix.

    Holds the start distribution and transition matrix; uses log
    probabilities throughout for numerical stability.
    """

    def __init__(self, n_states: int):
        self.n_states = n_states
        self.startprob_: Optional[np.ndarray] = None
        self.transmat_: Optional[np.ndarray] = None

        self._log_startprob: Optional[np.ndarray] = None
        self._log_transmat: Optional[np.ndarray] = None

        self.monitor_: Optional[TrainingMonitor] = None

    def _compute_log_probs(self):
        """Convert probabilities to log space."""
        with np.errstate(divide='ignore'):
            self._log_startprob = np.log(np.asarray(self.startprob_, dtype=float))
            self._log_transmat = np.ascontiguousarray(np.log(np.asarray(self.transmat_, dtype=float)))

    def _sequences(self, log_emission: np.ndarray, lengths: Optional[Sequence[int]]):
        log_emission = np.ascontiguousarray(log_emission, dtype=float)
        if lengths is None:
            lengths = [len(log_emission)]
        idx = 0
        for length in lengths:
            if length > 0:
                yield idx, log_emission[idx:idx + length]
            idx += length

    def _estep(self, log_emission: np.ndarray,
               lengths: Optional[Sequence[int]] = None
               ) -> Tuple[np.ndarray, np.ndarray, np.ndarray, float]:
        """
        E-step over all sequences.

        Returns:
            (posteriors, start_counts, trans_counts, log_prob)
        """
        K = self.n_states
        posteriors = np.empty(log_emission.shape)
        start_counts = np.zeros(K)
        trans_counts = np.zeros((K, K))
        log_prob_total = 0.0

        for idx, seq in self._sequences(log_emission, lengths):
            post, sc, tc, lp = _baum_welch_estep_numba(seq, self._log_startprob,
                                                      self._log_transmat)
            posteriors[idx:idx + len(seq)] = post
            start_counts += sc
            trans_counts += tc
            log_prob_total += lp

        return posteriors, start_counts, trans_counts, log_prob_total

    def _mstep(self, start_counts: np.ndarray, trans_counts: np.ndarray):
        """Update start and transition probabilities from expected counts."""
        self.startprob_ = start_counts / start_counts.sum()
        self.startprob_ = np.clip(self.startprob_, PROB_FLOOR, 1.0)
        self.startprob_ /= self.startprob_.sum()

        # Unvisited states keep their previous row
        trans_sums = trans_counts.sum(axis=1, keepdims=True)
        visited = trans_sums[:, 0] >= MIN_MASS
        new_transmat = np.array(self.transmat_, dtype=float)
        new_transmat[visited] = trans_counts[visited] / trans_sums[visited]
        new_transmat = np.clip(new_transmat, PROB_FLOOR, 1.0)
        new_transmat /= new_transmat.sum(axis=1, keepdims=True)
        self.transmat_ = new_transmat

        self._compute_log_probs()

    def predict(self, log_emission: np.ndarray,
                lengths: Optional[Sequence[int]] = None) -> np.ndarray:
        """Most likely state sequence (Viterbi), decoded per sequence."""
        self._compute_log_probs()
        path = np.empty(len(log_emission), dtype=np.int64)
        for idx, seq in self._sequences(log_emission, lengths):
            seq_path, _ = _viterbi_numba(seq, self._log_startprob, self._log_transmat)
            path[idx:idx + len(seq)] = seq_path
        return path

    def predict_proba(self, log_emission: np.ndarray,
                      lengths: Optional[Sequence[int]] = None) -> np.ndarray:
        """Posterior probabilities P(state | observations), shape (T, K)."""
        self._compute_log_probs()
        posteriors, _, _, _ = self._estep(log_emission, lengths)
        return posteriors

    def score(self, log_emission: np.ndarray,
              lengths: Optional[Sequence[int]] = None) -> float:
        """Log probability of the observations."""
        self._compute_log_probs()
        total = 0.0
        for _, seq in self._sequences(log_emission, lengths):
            _, lp = _forward_numba(seq, self._log_startprob, self._log_transmat)
            total += lp
        return total

    def fit_transitions(self, log_emission: np.ndarray,
                        lengths: Optional[Sequence[int]] = None,
                        n_iter: int = 1000, tol: float = 1e-4,
                        max_time: Optional[float] = None) -> Tuple[np.ndarray, float, bool]:
        """
        Baum-Welch on start and transition probabilities only.

        Emission probabilities are fixed.

        Returns:
            (posteriors, log_prob, converged)
        """
        self._compute_log_probs()
        self.monitor_ = TrainingMonitor()
        start_time = time.monotonic()

        posteriors, sc, tc, log_prob = self._estep(log_emission, lengths)
        self.monitor_.history.append(log_prob)
        converged = False

        for _ in range(n_iter):
            if _time_exceeded(start_time, max_time):
                break
            self._mstep(sc, tc)
            posteriors, sc, tc, new_log_prob = self._estep(log_emission, lengths)
            self.monitor_.history.append(new_log_prob)
            improvement = new_log_prob - log_prob
            log_prob = new_log_prob
            if improvement < tol:
                converged = True
                break

        return posteriors, log_prob, converged


def _time_exceeded(start_time: float, max_time: Optional[float]) -> bool:
    if max_time is None or max_time <= 0:
        return False
    return time.monotonic() - start_time > max_time


def initial_transmat(n_states: int, rng: Optional[np.random.Generator] = None,
                     randomize: bool = False) -> np.ndarray:
    """Diagonal-heavy starting transition matrix; random for later trials."""
    if n_states == 1:
        return np.ones((1, 1))
    if not randomize:
        stay = 0.9
        transmat = np.full((n_states, n_states), (1.0 - stay) / (n_states - 1))
        np.fill_diagonal(transmat, stay)
        return transmat

    transmat = np.zeros((n_states, n_states))
    for i in range(n_states):
        stay = rng.uniform(0.8, 0.99)
        leave = rng.dirichlet(np.ones(n_states - 1)) * (1.0 - stay)
        transmat[i] = np.insert(leave, i, stay)
    return transmat


# =============================================================================
# Multi-trial fitting
# =============================================================================

@dataclass
class TrialResult:
    """Outcome of one EM run."""
    trial: int
    startprob: np.ndarray
    transmat: np.ndarray
    params: EmissionParams
    posteriors: np.ndarray
    log_prob: float
    converged: bool
    n_iter: int
    history: List[float] = field(default_factory=list)


def run_trial(counts: np.ndarray, lengths: Sequence[int], emission_model: EmissionModel,
              trial: int = 0, rng: Optional[np.random.Generator] = None,
              eps: float = 0.1, max_iter: int = 5000,
              max_time: Optional[float] = 60.0) -> TrialResult:
    """
    One Baum-Welch run from (randomized) initial parameters.

    The run stops when the log-likelihood improves by less than `eps`
    (converged), after `max_iter` iterations, or once `max_time` seconds have
    passed; the time budget is checked between iterations.
    """
    if rng is None:
        rng = np.random.default_rng(trial)
    randomize = trial > 0
    n_states = len(emission_model.states)

    params = emission_model.initial_params(counts, rng=rng, randomize=randomize)
    hmm = CopyNumberHMM(n_states)
    hmm.startprob_ = np.full(n_states, 1.0 / n_states)
    hmm.transmat_ = initial_transmat(n_states, rng=rng, randomize=randomize)
    hmm._compute_log_probs()
    hmm.monitor_ = TrainingMonitor()

    start_time = time.monotonic()
    log_emission = emission_model.logpmf_matrix(counts, params)
    posteriors, sc, tc, log_prob = hmm._estep(log_emission, lengths)
    hmm.monitor_.history.append(log_prob)

    converged = False
    n_iter = 0
    while n_iter < max_iter:
        if _time_exceeded(start_time, max_time):
            logger.debug(f"Trial {trial}: time budget of {max_time}s exhausted")
            break

        # M-step
        hmm._mstep(sc, tc)
        params = emission_model.reestimate(counts, posteriors, params)

        # E-step
        log_emission = emission_model.logpmf_matrix(counts, params)
        posteriors, sc, tc, new_log_prob = hmm._estep(log_emission, lengths)
        hmm.monitor_.history.append(new_log_prob)
        n_iter += 1

        improvement = new_log_prob - log_prob
        log_prob = new_log_prob
        if improvement < eps:
            converged = True
            break

    return TrialResult(trial=trial, startprob=hmm.startprob_, transmat=hmm.transmat_,
                       params=params, posteriors=posteriors, log_prob=log_prob,
                       converged=converged, n_iter=n_iter,
                       history=list(hmm.monitor_.history))


def fit_hmm(bins: pd.DataFrame, states: Sequence[str], most_frequent_state: str,
            eps: float = 0.1, max_iter: int = 5000, max_time: Optional[float] = 60.0,
            num_trials: int = 15, seed: int = 0, id: Optional[str] = None,
            count_column: Optional[str] = None, verbose: bool = False) -> Model:
    """
    Fit a univariate copy-number HMM to one sample.

    Runs `num_trials` independent EM runs and keeps the one with the highest
    log-likelihood (ties: lowest trial index). The returned model keeps that
    run's convergence flag, and has its posteriors, Viterbi path and segments
    attached.

    Args:
        bins: bin table (see aneuhmm.core.data)
        states: ordered state labels
        most_frequent_state: label of the state used to seed the initial mean
        eps: convergence threshold on the log-likelihood improvement
        max_iter: maximum EM iterations per trial
        max_time: wall-clock budget per trial in seconds (None/<=0: unlimited)
        num_trials: number of EM runs
        seed: seed for trial initialisation
        id: sample identifier
        count_column: count column to use (default: counts_corrected or counts)
        verbose: show a progress bar over trials

    Returns:
        Model

    Raises:
        ConfigurationError: empty bins, invalid states or most_frequent_state
    """
    state_set = StateSet(states, most_frequent_state)
    if num_trials < 1:
        raise ConfigurationError("'num_trials' must be >= 1")
    if eps <= 0:
        raise ConfigurationError("'eps' must be > 0")
    if count_column is None:
        bins = validate_bins(bins)
    elif bins is None or len(bins) == 0:
        raise ConfigurationError("Observation sequence is empty (no bins).")
    else:
        bins = bins.reset_index(drop=True)

    counts = bin_counts(bins, count_column)
    lengths = sequence_lengths(bins)
    emission_model = EmissionModel(state_set)

    seeds = np.random.SeedSequence(seed).spawn(num_trials)
    best: Optional[TrialResult] = None

    pbar = tqdm(range(num_trials), desc=f"Fitting {id or 'sample'}",
                disable=not verbose, leave=False)
    for trial in pbar:
        rng = np.random.default_rng(seeds[trial])
        result = run_trial(counts, lengths, emission_model, trial=trial, rng=rng,
                           eps=eps, max_iter=max_iter, max_time=max_time)
        logger.debug(f"{id}: trial {trial} loglik={result.log_prob:.4f} "
                     f"iterations={result.n_iter} converged={result.converged}")
        if best is None or result.log_prob > best.log_prob:
            best = result
        pbar.set_postfix({'best_loglik': f'{best.log_prob:.2f}'})

    if not best.converged:
        logger.warning(f"{id}: best trial did not converge within the "
                       f"max_iter/max_time budget (loglik={best.log_prob:.4f})")

    weights = best.posteriors.mean(axis=0)
    weights = weights / weights.sum()

    model = Model(
        id=str(id) if id is not None else 'sample',
        states=state_set,
        startprob=best.startprob,
        transition=best.transmat,
        emission=best.params,
        weights=weights,
        loglik=float(best.log_prob),
        converged=bool(best.converged),
        n_iter=best.n_iter,
        trial=best.trial,
        loglik_history=best.history,
        bins=bins,
        posteriors=best.posteriors,
    )

    from aneuhmm.inference.decoder import segments_from_path, viterbi_path
    model.path = viterbi_path(model, bins, count_column=count_column)
    model.segment_list = segments_from_path(bins, model.path, state_set.labels, counts)
    return model


class HMMFitter:
    """
    Fits univariate models with settings from a SegmentationConfig.

    Args:
        config: segmentation settings
        verbose: show progress bars
    """

    def __init__(self, config: Optional[SegmentationConfig] = None, verbose: bool = False):
        self.config = config if config is not None else SegmentationConfig()
        self.verbose = verbose

    def fit(self, bins: pd.DataFrame, id: Optional[str] = None,
            most_frequent_state: Optional[str] = None,
            count_column: Optional[str] = None) -> Model:
        config = self.config
        return fit_hmm(
            bins,
            states=config.states,
            most_frequent_state=most_frequent_state or config.most_frequent_state,
            eps=config.eps,
            max_iter=config.max_iter,
            max_time=config.max_time,
            num_trials=config.num_trials,
            seed=config.seed,
            id=id,
            count_column=count_column,
            verbose=self.verbose,
        )
