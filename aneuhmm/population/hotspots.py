"""
SCE hotspot detection.

Event midpoints of all samples are pooled per chromosome and smoothed with a
Gaussian kernel density estimate (count density, bandwidth bw). The density
on a regular grid, plus the event positions, is compared against densities
of the same number of events placed uniformly at random over the chromosome
span; grid points whose empirical p-value falls below pval form hotspots.
"""

import logging
from typing import Dict, List, Mapping, Optional, Sequence, Union

import numpy as np
from scipy.stats import norm

from aneuhmm.core.config import ConfigurationError
from aneuhmm.core.data import Hotspot, SCEEvent

logger = logging.getLogger(__name__)

GRID_STEPS_PER_BW = 8
SPAN_PADDING_BW = 4


def kde_counts(grid: np.ndarray, positions: np.ndarray, bw: float) -> np.ndarray:
    """Gaussian count density of `positions` evaluated at `grid`."""
    if len(positions) == 0:
        return np.zeros(len(grid))
    z = (grid[:, np.newaxis] - positions[np.newaxis, :]) / bw
    return norm.pdf(z).sum(axis=1) / bw


def _pool_midpoints(per_sample_events) -> Dict[str, np.ndarray]:
    if isinstance(per_sample_events, Mapping):
        per_sample_events = per_sample_events.values()
    pooled: Dict[str, List[float]] = {}
    for events in per_sample_events:
        for event in events:
            pooled.setdefault(event.chromosome, []).append(event.midpoint)
    return {chrom: np.array(mids, dtype=float) for chrom, mids in pooled.items()}


def _contiguous_runs(mask: np.ndarray):
    """(first, last) index pairs of the runs of True in a boolean array."""
    padded = np.concatenate([[False], mask, [False]]).astype(np.int8)
    diff = np.diff(padded)
    starts = np.flatnonzero(diff == 1)
    ends = np.flatnonzero(diff == -1) - 1
    return list(zip(starts, ends))


def detect_hotspots(per_sample_events: Union[Mapping[str, Sequence[SCEEvent]],
                                             Sequence[Sequence[SCEEvent]]],
                    bw: float, pval: float = 1e-8,
                    chrom_lengths: Optional[Mapping[str, int]] = None,
                    n_permutations: int = 100, seed: int = 0) -> List[Hotspot]:
    """
    Find regions where SCE events of many samples cluster.

    Args:
        per_sample_events: SCE events per sample (mapping or list of lists)
        bw: kernel bandwidth in bp
        pval: significance threshold on the empirical p-value
        chrom_lengths: chromosome lengths; otherwise the span of each
            chromosome is [min - 4*bw, max + 4*bw] clipped at 0
        n_permutations: number of random placements in the null
        seed: seed of the null placements

    Returns:
        List of Hotspot, ordered by chromosome (first appearance) and start;
        [] if there are no events
    """
    if bw is None or bw <= 0:
        raise ConfigurationError("'bw' must be > 0")
    if n_permutations < 1:
        raise ConfigurationError("'n_permutations' must be >= 1")

    pooled = _pool_midpoints(per_sample_events)
    if len(pooled) == 0:
        return []

    rng = np.random.default_rng(seed)
    step = bw / GRID_STEPS_PER_BW
    hotspots = []

    for chrom, mids in pooled.items():
        if chrom_lengths is not None and chrom in chrom_lengths:
            lo, hi = 0.0, float(chrom_lengths[chrom])
        else:
            lo = max(0.0, mids.min() - SPAN_PADDING_BW * bw)
            hi = mids.max() + SPAN_PADDING_BW * bw
        # Event positions join the grid so the peak of coincident events is measured
        grid = np.union1d(np.arange(lo, hi + step / 2, step), mids)

        observed = kde_counts(grid, mids, bw)
        null = np.concatenate([
            kde_counts(grid, rng.uniform(lo, hi, size=len(mids)), bw)
            for _ in range(n_permutations)
        ])
        null.sort()
        # Fraction of null densities >= observed
        pvalues = 1.0 - np.searchsorted(null, observed, side='left') / len(null)

        for first, last in _contiguous_runs(pvalues < pval):
            start = int(np.floor(max(0.0, grid[first] - step / 2)))
            end = int(np.ceil(grid[last] + step / 2))
            num_events = int(np.sum((mids >= start) & (mids <= end)))
            hotspots.append(Hotspot(
                chromosome=chrom,
                start=start,
                end=end,
                num_events=num_events,
                pvalue=float(pvalues[first:last + 1].min()),
            ))
        logger.debug(f"{chrom}: {len(mids)} events, "
                     f"{sum(h.chromosome == chrom for h in hotspots)} hotspots")

    return hotspots
