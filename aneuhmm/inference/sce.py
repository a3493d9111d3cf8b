"""
Sister-chromatid exchange (SCE) breakpoint refinement.

A candidate event from the bivariate segmentation is localised to two bins.
With read-level data the interval is narrowed in successive resolution
levels: at level n candidate cuts are bin_width/n apart and the cut that best
separates the minus-strand read fraction on its two sides wins.
"""

import logging
from dataclasses import replace
from typing import List, Optional, Sequence

import numpy as np
import pandas as pd

from aneuhmm.core.data import BivariateModel, SCEEvent
from aneuhmm.inference.bivariate import find_breakpoints

logger = logging.getLogger(__name__)

FRAGMENT_COLUMNS = ['chromosome', 'start', 'end', 'strand']


class _StrandReads:
    """Sorted read midpoints of one chromosome with a cumulative minus count."""

    def __init__(self, fragments: pd.DataFrame):
        mid = (fragments['start'].to_numpy(dtype=float)
               + fragments['end'].to_numpy(dtype=float)) / 2.0
        minus = (fragments['strand'].astype(str).to_numpy() == '-').astype(np.int64)
        order = np.argsort(mid, kind='stable')
        self.mid = mid[order]
        self.cum_minus = np.concatenate([[0], np.cumsum(minus[order])])

    def window(self, lo: float, hi: float):
        """(number of reads, number of minus reads) with midpoint in [lo, hi)."""
        i = np.searchsorted(self.mid, lo, side='left')
        j = np.searchsorted(self.mid, hi, side='left')
        return j - i, self.cum_minus[j] - self.cum_minus[i]


def refine_breakpoint(event: SCEEvent, bins: pd.DataFrame,
                      resolution: Sequence[int] = (3, 6), min_segwidth: int = 2,
                      fragments: Optional[pd.DataFrame] = None,
                      min_reads: int = 50) -> Optional[SCEEvent]:
    """
    Refine one SCE event, or reject it.

    Args:
        event: candidate event
        bins: bin table the event was called on
        resolution: refinement levels, applied in order
        min_segwidth: minimum width (bins) of the flanking segments
        fragments: reads with columns chromosome, start, end, strand ('+'/'-')
        min_reads: minimum reads on each side of a candidate cut

    Returns:
        Refined SCEEvent, the unchanged event if there is nothing to refine
        with, or None when both flanking segments are narrower than
        min_segwidth bins
    """
    if event.left_bins < min_segwidth and event.right_bins < min_segwidth:
        logger.debug(f"Dropping SCE at {event.chromosome}:{event.start}-{event.end}: "
                     f"flanks of {event.left_bins} and {event.right_bins} bins")
        return None

    if fragments is None or len(fragments) == 0:
        return event
    chrom_fragments = fragments[fragments['chromosome'].astype(str) == event.chromosome]
    if len(chrom_fragments) == 0:
        return event

    reads = _StrandReads(chrom_fragments)
    bin_width = int(bins['end'].iat[event.bin_index] - bins['start'].iat[event.bin_index])
    cur_start, cur_end = event.start, event.end
    refined = False

    for n in resolution:
        step = max(1, bin_width // int(n))
        candidates = np.arange(cur_start + step, cur_end, step)
        best_score = -1.0
        best_cut = None
        for cut in candidates:
            n_left, m_left = reads.window(cut - bin_width, cut)
            n_right, m_right = reads.window(cut, cut + bin_width)
            if n_left < min_reads or n_right < min_reads:
                continue
            score = abs(m_left / n_left - m_right / n_right)
            if score > best_score:
                best_score = score
                best_cut = int(cut)
        if best_cut is None:
            continue
        cur_start = max(cur_start, best_cut - step)
        cur_end = min(cur_end, best_cut + step)
        refined = True

    return replace(event, start=int(cur_start), end=int(cur_end),
                   resolution=int(cur_end - cur_start), refined=refined)


def get_sce_coordinates(model: BivariateModel, bins: Optional[pd.DataFrame] = None,
                        resolution: Sequence[int] = (3, 6), min_segwidth: int = 2,
                        fragments: Optional[pd.DataFrame] = None,
                        min_reads: int = 50) -> List[SCEEvent]:
    """
    Refine all candidate SCE events of a bivariate model.

    Rejected events are dropped; see refine_breakpoint for the arguments.
    """
    if bins is None:
        bins = model.bins
    events = model.sce if model.sce is not None else find_breakpoints(model, bins)

    refined = []
    for event in events:
        result = refine_breakpoint(event, bins, resolution=resolution,
                                   min_segwidth=min_segwidth, fragments=fragments,
                                   min_reads=min_reads)
        if result is not None:
            refined.append(result)
    logger.debug(f"{model.id}: kept {len(refined)} of {len(events)} SCE events")
    return refined
