"""
AneuHMM data model: bin tables, segments, SCE events, hotspots and fitted
models.

Bin tables are pandas DataFrames, one row per genomic bin:

    chromosome, start, end, counts                (univariate)
    chromosome, start, end, mcounts, pcounts      (strand-seq, bivariate)

An optional 'counts_corrected' column (GC/mappability corrected counts from
the binning step) takes precedence over 'counts'. Bins are ordered by
chromosome (order of first appearance) and start; each chromosome is a
separate observation sequence.
"""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from aneuhmm.core.config import ConfigurationError
from aneuhmm.core.emission import EmissionParams
from aneuhmm.core.states import StateSet

BIN_COLUMNS = ['chromosome', 'start', 'end']
STRAND_COLUMNS = ['mcounts', 'pcounts']


class SegmentationKind(str, Enum):
    UNIVARIATE = 'univariate'
    BIVARIATE = 'bivariate'


# =============================================================================
# Bin tables
# =============================================================================

def validate_bins(bins: pd.DataFrame, bivariate: bool = False) -> pd.DataFrame:
    """
    Check a bin table and return it with a clean RangeIndex.

    Raises:
        ConfigurationError: empty table, missing columns, negative or
            non-finite (NaN/inf) counts, or bins with end <= start
    """
    if bins is None or len(bins) == 0:
        raise ConfigurationError("Observation sequence is empty (no bins).")

    count_columns = STRAND_COLUMNS if bivariate else ['counts']
    if not bivariate and 'counts_corrected' in bins.columns:
        count_columns = ['counts_corrected']
    missing = [c for c in BIN_COLUMNS + count_columns if c not in bins.columns]
    if missing:
        raise ConfigurationError(f"Bin table is missing columns: {missing}")

    for column in count_columns:
        _check_counts(bins, column)
    if (bins['end'] <= bins['start']).any():
        raise ConfigurationError("Bins must satisfy end > start")

    return bins.reset_index(drop=True)


def _check_counts(bins: pd.DataFrame, column: str) -> None:
    values = bins[column].to_numpy(dtype=float)
    # Corrected counts of blacklisted bins are often NaN
    n_bad = int(np.sum(~np.isfinite(values)))
    if n_bad > 0:
        raise ConfigurationError(
            f"{n_bad} non-finite (NaN/inf) values in column '{column}'; "
            f"drop or fill these bins before fitting"
        )
    if (values < 0).any():
        raise ConfigurationError(f"Negative values in column '{column}'")


def bin_counts(bins: pd.DataFrame, column: Optional[str] = None) -> np.ndarray:
    """Integer counts of a bin table; corrected counts are rounded."""
    if column is None:
        column = 'counts_corrected' if 'counts_corrected' in bins.columns else 'counts'
    _check_counts(bins, column)
    return np.rint(bins[column].to_numpy(dtype=float)).astype(np.int64)


def chromosome_slices(bins: pd.DataFrame) -> List[Tuple[str, int, int]]:
    """
    Split a bin table into per-chromosome runs.

    Returns:
        List of (chromosome, first_row, end_row) in order of appearance
    """
    chroms = bins['chromosome'].astype(str).to_numpy()
    if len(chroms) == 0:
        return []
    change = np.flatnonzero(chroms[1:] != chroms[:-1]) + 1
    starts = np.concatenate([[0], change])
    ends = np.concatenate([change, [len(chroms)]])
    slices = [(chroms[s], int(s), int(e)) for s, e in zip(starts, ends)]

    seen = set()
    for chrom, _, _ in slices:
        if chrom in seen:
            raise ConfigurationError(f"Bins of chromosome '{chrom}' are not contiguous")
        seen.add(chrom)
    return slices


def sequence_lengths(bins: pd.DataFrame) -> List[int]:
    """Lengths of the per-chromosome observation sequences."""
    return [end - start for _, start, end in chromosome_slices(bins)]


# =============================================================================
# Results
# =============================================================================

@dataclass(frozen=True)
class Segment:
    """Maximal run of consecutive bins with the same decoded state."""
    chromosome: str
    start: int
    end: int
    state: str
    num_bins: int
    mean_count: float
    mstate: Optional[str] = None
    pstate: Optional[str] = None
    copy_state: Optional[int] = None

    @property
    def width(self) -> int:
        return self.end - self.start


@dataclass(frozen=True)
class SCEEvent:
    """
    Sister-chromatid exchange breakpoint.

    start/end bound the localisation interval; `resolution` is its width in
    bp. Bin indices are row positions in the sample's bin table: the event
    sits at the boundary before `bin_index`, and [bin_start, bin_end) spans
    the two flanking segments.
    """
    chromosome: str
    start: int
    end: int
    bin_index: int
    bin_start: int
    bin_end: int
    resolution: int
    refined: bool = False
    left_state: Optional[str] = None
    right_state: Optional[str] = None

    @property
    def midpoint(self) -> float:
        return (self.start + self.end) / 2.0

    @property
    def left_bins(self) -> int:
        return self.bin_index - self.bin_start

    @property
    def right_bins(self) -> int:
        return self.bin_end - self.bin_index


@dataclass(frozen=True)
class Hotspot:
    """Region with a significant density of SCE events across samples."""
    chromosome: str
    start: int
    end: int
    num_events: int
    pvalue: float


@dataclass
class Model:
    """
    Fitted segmentation of one sample.

    Parameters are fixed once fitting is done; segments (and SCE events for
    the bivariate variant) are attached afterwards.
    """
    id: str
    states: StateSet
    startprob: np.ndarray
    transition: np.ndarray
    emission: Optional[EmissionParams]
    weights: np.ndarray
    loglik: float
    converged: bool
    n_iter: int = 0
    trial: int = 0
    loglik_history: List[float] = field(default_factory=list)
    kind: SegmentationKind = SegmentationKind.UNIVARIATE
    bins: Optional[pd.DataFrame] = field(default=None, repr=False)
    path: Optional[np.ndarray] = field(default=None, repr=False)
    posteriors: Optional[np.ndarray] = field(default=None, repr=False)
    segment_list: Optional[List[Segment]] = field(default=None, repr=False)

    def segments(self) -> List[Segment]:
        return list(self.segment_list) if self.segment_list is not None else []

    def weights_by_state(self) -> Dict[str, float]:
        return {label: float(w) for label, w in zip(self.states.labels, self.weights)}

    def weight(self, label: str) -> float:
        return float(self.weights[self.states.index(label)])

    def path_labels(self) -> List[str]:
        if self.path is None:
            return []
        return [self.states.labels[i] for i in self.path]


@dataclass
class BivariateModel(Model):
    """
    Joint segmentation of the two strands of a Strand-seq sample.

    `states` holds the joint states ('<minus>|<plus>'); `minus` and `plus`
    are the per-strand univariate fits whose emissions the joint model uses.
    """
    minus: Optional[Model] = field(default=None, repr=False)
    plus: Optional[Model] = field(default=None, repr=False)
    joint_pairs: List[Tuple[int, int]] = field(default_factory=list, repr=False)
    sce: Optional[List[SCEEvent]] = field(default=None, repr=False)

    def __post_init__(self):
        self.kind = SegmentationKind.BIVARIATE

    def sce_events(self) -> List[SCEEvent]:
        return list(self.sce) if self.sce is not None else []

    def strand_multipliers(self) -> np.ndarray:
        """(K, 2) minus/plus copy numbers of each joint state."""
        mult_m = self.minus.states.multipliers
        mult_p = self.plus.states.multipliers
        return np.array([[mult_m[i], mult_p[j]] for i, j in self.joint_pairs], dtype=int)


# =============================================================================
# Tabular conversion
# =============================================================================

SEGMENT_COLUMNS = ['chromosome', 'start', 'end', 'state', 'num_bins', 'mean_count',
                   'mstate', 'pstate', 'copy_state']
SCE_COLUMNS = ['chromosome', 'start', 'end', 'bin_index', 'bin_start', 'bin_end',
               'resolution', 'refined', 'left_state', 'right_state']
HOTSPOT_COLUMNS = ['chromosome', 'start', 'end', 'num_events', 'pvalue']


def segments_to_frame(segments: Sequence[Segment]) -> pd.DataFrame:
    return pd.DataFrame([asdict(s) for s in segments], columns=SEGMENT_COLUMNS)


def frame_to_segments(df: pd.DataFrame) -> List[Segment]:
    segments = []
    for row in df.itertuples(index=False):
        row = row._asdict()
        segments.append(Segment(
            chromosome=str(row['chromosome']),
            start=int(row['start']),
            end=int(row['end']),
            state=str(row['state']),
            num_bins=int(row.get('num_bins', 0)),
            mean_count=float(row.get('mean_count', np.nan)),
            mstate=_optional_str(row.get('mstate')),
            pstate=_optional_str(row.get('pstate')),
            copy_state=_optional_int(row.get('copy_state')),
        ))
    return segments


def events_to_frame(events: Sequence[SCEEvent]) -> pd.DataFrame:
    return pd.DataFrame([asdict(e) for e in events], columns=SCE_COLUMNS)


def frame_to_events(df: pd.DataFrame) -> List[SCEEvent]:
    events = []
    for row in df.itertuples(index=False):
        row = row._asdict()
        start, end = int(row['start']), int(row['end'])
        events.append(SCEEvent(
            chromosome=str(row['chromosome']),
            start=start,
            end=end,
            bin_index=int(row.get('bin_index', -1)),
            bin_start=int(row.get('bin_start', -1)),
            bin_end=int(row.get('bin_end', -1)),
            resolution=int(row.get('resolution', end - start)),
            refined=bool(row.get('refined', False)),
            left_state=_optional_str(row.get('left_state')),
            right_state=_optional_str(row.get('right_state')),
        ))
    return events


def hotspots_to_frame(hotspots: Sequence['Hotspot']) -> pd.DataFrame:
    return pd.DataFrame([asdict(h) for h in hotspots], columns=HOTSPOT_COLUMNS)


def _optional_str(value) -> Optional[str]:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    return str(value)


def _optional_int(value) -> Optional[int]:
    if value is None or (isinstance(value, float) and np.isnan(value)):
        return None
    return int(value)
