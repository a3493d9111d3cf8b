"""
Viterbi decoding of fitted models into copy-number segments.
"""

from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from aneuhmm.core.data import (
    Model,
    Segment,
    SegmentationKind,
    bin_counts,
    chromosome_slices,
    sequence_lengths,
)
from aneuhmm.core.emission import EmissionModel
from aneuhmm.core.hmm import CopyNumberHMM


def log_emission_matrix(model: Model, bins: pd.DataFrame,
                        count_column: Optional[str] = None) -> np.ndarray:
    """(T, K) log emission probabilities of a bin table under a model."""
    if model.kind == SegmentationKind.BIVARIATE:
        from aneuhmm.inference.bivariate import joint_log_emission
        return joint_log_emission(model, bins)
    counts = bin_counts(bins, count_column)
    return EmissionModel(model.states).logpmf_matrix(counts, model.emission)


def viterbi_path(model: Model, bins: pd.DataFrame,
                 count_column: Optional[str] = None) -> np.ndarray:
    """Most likely state index of every bin, decoded per chromosome."""
    if bins is None or len(bins) == 0:
        return np.empty(0, dtype=np.int64)
    hmm = CopyNumberHMM(len(model.states))
    hmm.startprob_ = model.startprob
    hmm.transmat_ = model.transition
    log_emission = log_emission_matrix(model, bins, count_column)
    return hmm.predict(log_emission, sequence_lengths(bins))


def segments_from_path(bins: pd.DataFrame, path: np.ndarray, labels: Sequence[str],
                       counts: np.ndarray,
                       mstates: Optional[Sequence[str]] = None,
                       pstates: Optional[Sequence[str]] = None,
                       copy_states: Optional[Sequence[int]] = None) -> List[Segment]:
    """
    Collapse a state path into segments.

    Consecutive bins of one chromosome with the same state form one segment;
    segments never cross chromosome boundaries.

    Args:
        bins: bin table the path was decoded from
        path: (T,) state indices
        labels: state label per index
        counts: (T,) counts used for the segments' mean_count
        mstates, pstates, copy_states: optional per-index strand labels and
            total copy numbers (bivariate models)
    """
    segments = []
    starts = bins['start'].to_numpy()
    ends = bins['end'].to_numpy()
    counts = np.asarray(counts, dtype=float)

    for chrom, first, last in chromosome_slices(bins):
        chrom_path = path[first:last]
        breaks = np.flatnonzero(chrom_path[1:] != chrom_path[:-1]) + 1
        run_starts = np.concatenate([[0], breaks]) + first
        run_ends = np.concatenate([breaks, [last - first]]) + first

        for s, e in zip(run_starts, run_ends):
            state = int(path[s])
            segments.append(Segment(
                chromosome=chrom,
                start=int(starts[s]),
                end=int(ends[e - 1]),
                state=labels[state],
                num_bins=int(e - s),
                mean_count=float(np.mean(counts[s:e])),
                mstate=mstates[state] if mstates is not None else None,
                pstate=pstates[state] if pstates is not None else None,
                copy_state=int(copy_states[state]) if copy_states is not None else None,
            ))
    return segments


def decode(model: Model, bins: Optional[pd.DataFrame] = None,
           count_column: Optional[str] = None) -> List[Segment]:
    """
    Viterbi-decode a bin table and collapse the path into segments.

    Ties between equally likely states go to the lower state index.

    Args:
        model: fitted model
        bins: bin table (defaults to the bins the model was fitted on)
        count_column: count column for univariate models

    Returns:
        List of Segment, ordered by chromosome and start; [] for empty input
    """
    if bins is None:
        bins = model.bins
    if bins is None or len(bins) == 0:
        return []
    bins = bins.reset_index(drop=True)

    path = viterbi_path(model, bins, count_column)
    labels = model.states.labels

    if model.kind == SegmentationKind.BIVARIATE:
        counts = (bins['mcounts'].to_numpy(dtype=float)
                  + bins['pcounts'].to_numpy(dtype=float))
        mlabels = model.minus.states.labels
        plabels = model.plus.states.labels
        mstates = [mlabels[i] for i, _ in model.joint_pairs]
        pstates = [plabels[j] for _, j in model.joint_pairs]
        copy_states = model.strand_multipliers().sum(axis=1)
        return segments_from_path(bins, path, labels, counts,
                                  mstates=mstates, pstates=pstates,
                                  copy_states=copy_states)

    counts = bin_counts(bins, count_column)
    return segments_from_path(bins, path, labels, counts)
