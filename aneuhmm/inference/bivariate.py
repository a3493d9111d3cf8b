"""
Bivariate (Strand-seq) segmentation.

Each strand series is fitted with a univariate model; the joint model runs
over the product of the strand states and reuses the strand emissions
unchanged, so only its start and transition probabilities are trained.
Candidate sister-chromatid exchanges are bin boundaries where the minus and
plus strand copy numbers move in opposite directions.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from aneuhmm.core.config import DEFAULT_STATES
from aneuhmm.core.data import (
    BivariateModel,
    SCEEvent,
    bin_counts,
    chromosome_slices,
    sequence_lengths,
    validate_bins,
)
from aneuhmm.core.emission import EmissionModel
from aneuhmm.core.hmm import CopyNumberHMM, fit_hmm, initial_transmat
from aneuhmm.core.states import JOINT_SEPARATOR, StateSet

logger = logging.getLogger(__name__)


def joint_state_pairs(states: StateSet) -> List[Tuple[int, int]]:
    """
    (minus, plus) state index pairs of the joint model.

    Combinations whose total copy number exceeds the largest multiplier of
    the strand states are left out.
    """
    mult = states.multipliers
    max_mult = max(mult)
    return [(i, j) for i in range(len(states)) for j in range(len(states))
            if mult[i] + mult[j] <= max_mult]


def joint_labels(minus: StateSet, plus: StateSet,
                 pairs: Sequence[Tuple[int, int]]) -> List[str]:
    return [f'{minus.labels[i]}{JOINT_SEPARATOR}{plus.labels[j]}' for i, j in pairs]


def joint_log_emission(model: BivariateModel, bins: pd.DataFrame) -> np.ndarray:
    """Joint log density: sum of the two strands' log densities."""
    em = EmissionModel(model.minus.states).logpmf_matrix(
        bin_counts(bins, 'mcounts'), model.minus.emission)
    ep = EmissionModel(model.plus.states).logpmf_matrix(
        bin_counts(bins, 'pcounts'), model.plus.emission)
    idx_m = np.array([i for i, _ in model.joint_pairs], dtype=int)
    idx_p = np.array([j for _, j in model.joint_pairs], dtype=int)
    return np.ascontiguousarray(em[:, idx_m] + ep[:, idx_p])


def fit_bivariate(bins: pd.DataFrame, states: Sequence[str] = DEFAULT_STATES,
                  most_frequent_state: str = 'monosomy',
                  eps: float = 0.1, max_iter: int = 5000,
                  max_time: Optional[float] = 60.0, num_trials: int = 15,
                  seed: int = 0, id: Optional[str] = None,
                  verbose: bool = False) -> BivariateModel:
    """
    Fit a joint two-strand model to a Strand-seq bin table.

    Args:
        bins: bin table with 'mcounts' and 'pcounts'
        states: per-strand state labels
        most_frequent_state: most frequent per-strand state
        eps, max_iter, max_time, num_trials, seed: EM settings, see fit_hmm
        id: sample identifier
        verbose: show progress bars

    Returns:
        BivariateModel with segments and candidate SCE events attached
    """
    bins = validate_bins(bins, bivariate=True)
    sample_id = str(id) if id is not None else 'sample'

    logger.info(f"{sample_id}: fitting strand models")
    fit_args = dict(states=states, most_frequent_state=most_frequent_state, eps=eps,
                    max_iter=max_iter, max_time=max_time, num_trials=num_trials,
                    seed=seed, verbose=verbose)
    minus = fit_hmm(bins, id=f'{sample_id}-minus', count_column='mcounts', **fit_args)
    plus = fit_hmm(bins, id=f'{sample_id}-plus', count_column='pcounts', **fit_args)

    pairs = joint_state_pairs(minus.states)
    labels = joint_labels(minus.states, plus.states, pairs)
    n_joint = len(pairs)
    joint_states = StateSet(labels, most_frequent=_joint_most_frequent(minus, plus, pairs, labels))

    model = BivariateModel(
        id=sample_id,
        states=joint_states,
        startprob=np.full(n_joint, 1.0 / n_joint),
        transition=initial_transmat(n_joint),
        emission=None,
        weights=np.zeros(n_joint),
        loglik=float('-inf'),
        converged=False,
        bins=bins,
        minus=minus,
        plus=plus,
        joint_pairs=pairs,
    )

    # Emissions are fixed; train start and transition probabilities only
    logger.info(f"{sample_id}: fitting joint model over {n_joint} states")
    log_emission = joint_log_emission(model, bins)
    lengths = sequence_lengths(bins)
    hmm = CopyNumberHMM(n_joint)
    hmm.startprob_ = model.startprob
    hmm.transmat_ = model.transition
    posteriors, log_prob, converged = hmm.fit_transitions(
        log_emission, lengths, n_iter=max_iter, tol=eps, max_time=max_time)

    weights = posteriors.mean(axis=0)
    model.startprob = hmm.startprob_
    model.transition = hmm.transmat_
    model.weights = weights / weights.sum()
    model.loglik = float(log_prob)
    model.converged = bool(converged)
    model.n_iter = len(hmm.monitor_.history) - 1
    model.loglik_history = list(hmm.monitor_.history)
    model.posteriors = posteriors
    model.path = hmm.predict(log_emission, lengths)

    if not converged:
        logger.warning(f"{sample_id}: joint model did not converge within the "
                       f"max_iter/max_time budget")

    from aneuhmm.inference.decoder import decode
    model.segment_list = decode(model, bins)
    model.sce = find_breakpoints(model)
    return model


def _joint_most_frequent(minus, plus, pairs, labels) -> str:
    """Joint state pairing the two strands' most frequent states, if allowed."""
    target = (minus.states.most_frequent_index, plus.states.most_frequent_index)
    if target in pairs:
        return labels[pairs.index(target)]
    mult_m = minus.states.multipliers
    mult_p = plus.states.multipliers
    for label, (i, j) in zip(labels, pairs):
        if mult_m[i] + mult_p[j] > 0:
            return label
    return labels[0]


def _run_bounds(chrom_path: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Start and end (exclusive) of the run containing each position."""
    n = len(chrom_path)
    breaks = np.flatnonzero(chrom_path[1:] != chrom_path[:-1]) + 1
    run_starts = np.concatenate([[0], breaks])
    run_ends = np.concatenate([breaks, [n]])
    run_id = np.repeat(np.arange(len(run_starts)), run_ends - run_starts)
    return run_starts[run_id], run_ends[run_id]


def find_breakpoints(model: BivariateModel,
                     bins: Optional[pd.DataFrame] = None) -> List[SCEEvent]:
    """
    Candidate SCE events of a decoded bivariate model.

    An event is emitted at every boundary inside a chromosome where the
    minus and plus strand copy numbers change in opposite directions.

    Args:
        model: fitted BivariateModel with a Viterbi path
        bins: bin table the path was decoded on (defaults to model.bins)

    Returns:
        List of SCEEvent ordered by position
    """
    if bins is None:
        bins = model.bins
    if bins is None or len(bins) == 0 or model.path is None:
        return []

    path = np.asarray(model.path)
    mult = model.strand_multipliers()
    labels = model.states.labels
    starts = bins['start'].to_numpy()
    ends = bins['end'].to_numpy()

    events = []
    for chrom, first, last in chromosome_slices(bins):
        chrom_path = path[first:last]
        if len(chrom_path) < 2:
            continue
        run_start, run_end = _run_bounds(chrom_path)
        for t in np.flatnonzero(chrom_path[1:] != chrom_path[:-1]):
            a, b = chrom_path[t], chrom_path[t + 1]
            dm = mult[b, 0] - mult[a, 0]
            dp = mult[b, 1] - mult[a, 1]
            if dm * dp >= 0:
                continue
            start, end = int(starts[first + t]), int(ends[first + t + 1])
            events.append(SCEEvent(
                chromosome=chrom,
                start=start,
                end=end,
                bin_index=int(first + t + 1),
                bin_start=int(first + run_start[t]),
                bin_end=int(first + run_end[t + 1]),
                resolution=end - start,
                left_state=labels[a],
                right_state=labels[b],
            ))
    return events
